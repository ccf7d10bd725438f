"""Command line entry point for Gander."""

import asyncio
import sys
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gander import __version__
from gander.config import Config, set_config
from gander.console import ConsoleIO
from gander.exceptions import ConfigurationError, GanderError, PersistenceError
from gander.llm import provider_from_config
from gander.logging import configure_logging, log
from gander.names import generate_name
from gander.session import Session
from gander.session_log import SessionLog
from gander.stats import StatsTracker
from gander.tools.default import DEFAULT_TOOLS, TOOLKIT_DESCRIPTION, build_default_registry

app = typer.Typer(help="Gander - an interactive agent loop for shell, file and process tools")
session_app = typer.Typer(help="Start, resume and manage sessions")
toolkit_app = typer.Typer(help="Inspect the available toolkits")
app.add_typer(session_app, name="session")
app.add_typer(toolkit_app, name="toolkit")

console = Console()


def _fail(message: str) -> NoReturn:
    console.print(f"Error: {escape(message)}", style="bold red")
    raise typer.Exit(code=1)


def _load_config(
    profile: str | None = None,
    log_level: str | None = None,
    ensure_profile: bool = False,
) -> Config:
    """Load config, apply the profile, install it globally and set up logging."""
    try:
        if ensure_profile:
            note = Config.ensure_profile(profile)
            if note:
                console.print(escape(note), style="yellow")
        cfg = Config.load().for_profile(profile)
    except ConfigurationError as e:
        _fail(str(e))
    set_config(cfg)
    configure_logging(log_level)
    return cfg


async def _build_session(name: str, cfg: Config, profile: str | None) -> Session:
    return await Session.new(
        name,
        build_default_registry(cfg),
        provider=provider_from_config(cfg),
        console=ConsoleIO(console),
        session_log=SessionLog(cfg.resolved_sessions_path()),
        config=cfg,
        profile_name=profile,
    )


async def _run_interactive(name: str, cfg: Config, profile: str | None) -> None:
    session = await _build_session(name, cfg, profile)
    try:
        stats = await session.run()
    finally:
        await session.exchange.provider.close()
    console.print(escape(stats.summary()), style="dim")


async def _run_single(name: str, text: str, cfg: Config, profile: str | None) -> bool:
    session = await _build_session(name, cfg, profile)
    try:
        reply = await session.process_one_turn(text)
    finally:
        await session.close()
        await session.exchange.provider.close()
    return reply is not None


def _start(name: str, cfg: Config, profile: str | None) -> None:
    try:
        asyncio.run(_run_interactive(name, cfg, profile))
    except (ConfigurationError, PersistenceError) as e:
        log.error("Session failed to start", session=name, error=str(e))
        _fail(str(e))


@session_app.command("start")
def session_start(
    name: str = typer.Argument(None, help="Session name; generated when omitted"),
    profile: str = typer.Option(None, "--profile", "-p", help="Profile from the config file"),
    log_level: str = typer.Option(None, "--log-level", help="Override the logging level"),
) -> None:
    """Start a new interactive session."""
    cfg = _load_config(profile, log_level, ensure_profile=True)
    name = name or generate_name()
    if SessionLog(cfg.resolved_sessions_path()).exists(name):
        _fail(f"Session {name} already exists; use `gander session resume {name}`")
    _start(name, cfg, profile)


@session_app.command("resume")
def session_resume(
    name: str = typer.Argument(None, help="Session name; the most recent when omitted"),
    profile: str = typer.Option(None, "--profile", "-p", help="Profile from the config file"),
    log_level: str = typer.Option(None, "--log-level", help="Override the logging level"),
) -> None:
    """Resume an existing session."""
    cfg = _load_config(profile, log_level, ensure_profile=True)
    session_log = SessionLog(cfg.resolved_sessions_path())
    try:
        name = name or session_log.latest()
    except PersistenceError as e:
        _fail(str(e))
    if not name:
        _fail("No sessions to resume")
    if not session_log.exists(name):
        _fail(f"Session {name} not found")
    _start(name, cfg, profile)


@session_app.command("list")
def session_list() -> None:
    """List saved sessions, most recent first."""
    cfg = _load_config()
    try:
        sessions = SessionLog(cfg.resolved_sessions_path()).list_sessions()
    except PersistenceError as e:
        _fail(str(e))
    if not sessions:
        console.print("No sessions found", style="dim")
        return
    for item in sessions:
        console.print(f"{escape(item.name)}\t{escape(str(item.path))}")


@session_app.command("clear")
def session_clear(
    keep: int = typer.Option(3, "--keep", help="Number of most recent sessions to keep"),
) -> None:
    """Delete all but the most recent sessions."""
    cfg = _load_config()
    try:
        removed = SessionLog(cfg.resolved_sessions_path()).clear(keep=keep)
    except PersistenceError as e:
        _fail(str(e))
    console.print(f"Removed {len(removed)} session(s)")


@session_app.command("stats")
def session_stats(
    name: str = typer.Argument(None, help="Session name; the most recent when omitted"),
    all_sessions: bool = typer.Option(False, "--all", help="Show every recorded run"),
) -> None:
    """Show recorded statistics."""
    cfg = _load_config()
    session_log = SessionLog(cfg.resolved_sessions_path())
    try:
        tracker = StatsTracker()
        for recorded in session_log.load_stats():
            tracker.track(recorded)
        if not all_sessions:
            name = name or session_log.latest()
    except PersistenceError as e:
        _fail(str(e))

    if all_sessions:
        table = Table("session", "start", "messages", "tokens", "cost")
        for run in tracker.runs():
            table.add_row(
                escape(run.session_id),
                run.start_time.isoformat(timespec="seconds"),
                str(run.message_count),
                str(run.token_count),
                f"{run.accrued_cost:.4f}",
            )
        console.print(table)
        console.print(escape(tracker.total().summary()))
        return

    if not name or not tracker.get(name):
        _fail(f"No statistics recorded for {name or 'any session'}")
    console.print(escape(tracker.total(name).summary()))


@app.command("run")
def run(
    message_file: Path = typer.Argument(None, help="Markdown file with the message; stdin when omitted"),
    profile: str = typer.Option(None, "--profile", "-p", help="Profile from the config file"),
    resume: bool = typer.Option(False, "--resume", help="Continue the most recent session"),
    log_level: str = typer.Option(None, "--log-level", help="Override the logging level"),
) -> None:
    """Process a single message and exit."""
    cfg = _load_config(profile, log_level, ensure_profile=True)
    try:
        text = message_file.read_text(encoding="utf-8") if message_file else sys.stdin.read()
    except OSError as e:
        _fail(f"Cannot read {message_file}: {e}")
    if not text.strip():
        _fail("Message is empty")

    name = None
    if resume:
        try:
            name = SessionLog(cfg.resolved_sessions_path()).latest()
        except PersistenceError as e:
            _fail(str(e))
    name = name or generate_name()

    try:
        completed = asyncio.run(_run_single(name, text, cfg, profile))
    except GanderError as e:
        log.error("Run failed", session=name, error=str(e))
        _fail(str(e))
    if not completed:
        raise typer.Exit(code=1)


@toolkit_app.command("list")
def toolkit_list() -> None:
    """List the tools of the default toolkit."""
    console.print(f"default: {TOOLKIT_DESCRIPTION}")
    for tool_name, tool_cls in DEFAULT_TOOLS.items():
        summary = tool_cls.description.strip().splitlines()[0]
        console.print(f"  {tool_name}: {escape(summary)}")


@app.command("version")
def version() -> None:
    """Show version information."""
    console.print(f"Gander v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
