"""Session loop: read a turn, generate, dispatch tools, recover from interrupts."""

import asyncio
import dataclasses
import signal
from enum import Enum
from typing import Awaitable, TypeVar

from gander.config import Config, get_config
from gander.console import ConsoleIO, OperatorIO
from gander.exceptions import PersistenceError, ProviderError, SessionError
from gander.exchange import Exchange
from gander.interrupt import InterruptSignal
from gander.llm import LLMProvider, get_provider
from gander.logging import get_logger
from gander.message import Message, Role, Text, ToolResult
from gander.session_log import SessionLog
from gander.stats import SessionStats
from gander.tools.executor import ToolExecutor
from gander.tools.registry import ToolRegistry

log = get_logger(__name__)

T = TypeVar("T")

EXIT_COMMANDS = {"/exit", "/quit"}

INTERRUPTED_TOOL_OUTPUT = "Tool call was interrupted by the operator."

ADVISORY_IDLE = "We interrupted before the next processing started."
ADVISORY_REMOVED = "We interrupted before the model replied and removed the last message."
ADVISORY_TOOL_USE = "We interrupted the existing tool call. How would you like to proceed?"


class SessionState(str, Enum):
    """Where the loop currently is."""

    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    GENERATING = "generating"
    DISPATCHING_TOOLS = "dispatching_tools"
    INTERRUPTED = "interrupted"
    TERMINATED = "terminated"


class Session:
    """Drives one conversation between the operator, the model and the tools."""

    def __init__(
        self,
        name: str,
        tool_registry: ToolRegistry,
        provider: LLMProvider | None = None,
        console: OperatorIO | None = None,
        session_log: SessionLog | None = None,
        config: Config | None = None,
        profile_name: str | None = None,
    ):
        self.name = name
        self.config = config or get_config()
        self.profile_name = profile_name or "default"
        self.tool_registry = tool_registry
        self.console = console or ConsoleIO()
        self.session_log = session_log
        self.exchange = Exchange(
            provider=provider or get_provider(),
            executor=ToolExecutor(tool_registry),
            timeout=self.config.model.timeout or None,
        )
        self.state = SessionState.IDLE
        self._interrupt = InterruptSignal()
        self._stats = SessionStats(session_id=name)
        self._tool_definitions = tool_registry.get_definitions()
        self._tokens_seen = 0
        self._persisted = 0

    @classmethod
    async def new(
        cls,
        name: str,
        tool_registry: ToolRegistry,
        **kwargs,
    ) -> "Session":
        """Create a session, resuming its log when one exists.

        Raises:
            PersistenceError if an existing log cannot be read
        """
        session = cls(name, tool_registry, **kwargs)
        if session.session_log is not None:
            messages = session.session_log.load(name)
            if messages:
                await session.exchange.load_history(messages)
                session._persisted = len(messages)
                log.info("Resumed session", session=name, messages=len(messages))
        return session

    # Interruption

    def interrupt(self) -> None:
        """Request cooperative cancellation; safe from signal handlers and threads."""
        self._interrupt.set()

    def is_interrupted(self) -> bool:
        return self._interrupt.is_set()

    async def _recover_if_interrupted(self) -> bool:
        """Run recovery when the flag is set; return whether it was."""
        if not self._interrupt.is_set():
            return False
        epoch = self._interrupt.epoch()
        self.state = SessionState.INTERRUPTED
        log.info("Interrupt observed", session=self.name)

        advisory = ADVISORY_IDLE
        last = await self.exchange.last_message()
        if last is not None and last.is_user and len(self.exchange) > self._persisted:
            await self.exchange.rewind()
            advisory = ADVISORY_REMOVED
            last = await self.exchange.last_message()
        if last is not None and last.is_assistant and last.has_tool_use():
            advisory = ADVISORY_TOOL_USE
        self.console.warn(advisory)

        # Last step: a signal that arrived meanwhile keeps the flag armed.
        self._interrupt.clear(epoch)
        return True

    async def _guarded(self, work: Awaitable[T]) -> tuple[T | None, bool]:
        """Await work, cancelling it on interrupt under the preemptive policy.

        Returns:
            (result, cancelled)
        """
        if self.config.session.interrupt_policy != "preemptive":
            return await work, False

        work_task = asyncio.ensure_future(work)
        wait_task = asyncio.create_task(self._interrupt.wait())
        try:
            done, _ = await asyncio.wait(
                {work_task, wait_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work_task in done:
                return work_task.result(), False

            log.info("Cancelling in-flight work", session=self.name, state=self.state.value)
            work_task.cancel()
            try:
                await work_task
            except asyncio.CancelledError:
                pass
            return None, True
        finally:
            if not wait_task.done():
                wait_task.cancel()
                try:
                    await wait_task
                except asyncio.CancelledError:
                    pass

    # Turn processing

    async def _append(self, message: Message) -> None:
        await self.exchange.add_message(message)
        self._stats.add_message()

    async def _user_turn(self, text: str) -> Message:
        """Build the operator's message, closing out unanswered tool calls."""
        content: list[Text | ToolResult] = []
        last = await self.exchange.last_message()
        if last is not None and last.is_assistant and last.has_tool_use():
            content.extend(
                ToolResult(tool_use_id=use.id, output=INTERRUPTED_TOOL_OUTPUT, is_error=True)
                for use in last.tool_uses()
            )
        content.append(Text(text=text))
        return Message.construct(Role.USER, content)

    async def _account_tokens(self) -> None:
        usage = await self.exchange.token_usage()
        delta = usage.total_tokens - self._tokens_seen
        self._tokens_seen = usage.total_tokens
        self._stats.add_tokens(delta, self.config.model.cost_per_token)

    async def _drive_turn(self, text: str) -> Message | None:
        """Run one operator turn to completion.

        Raises:
            ProviderError when the backend fails
        """
        if await self._recover_if_interrupted():
            return None
        await self._append(await self._user_turn(text))

        max_rounds = max(0, int(self.config.session.max_tool_rounds or 0))
        rounds = 0
        while True:
            if await self._recover_if_interrupted():
                return None

            self.state = SessionState.GENERATING
            reply, cancelled = await self._guarded(self.exchange.generate(self._tool_definitions))
            if cancelled or reply is None:
                await self._recover_if_interrupted()
                return None
            self._stats.add_message()
            await self._account_tokens()

            if reply.text():
                self.console.display(reply.text())
            if not reply.has_tool_use():
                return reply

            if await self._recover_if_interrupted():
                return None

            self.state = SessionState.DISPATCHING_TOOLS
            results: list[ToolResult] = []
            for use in reply.tool_uses():
                self.console.tool_call(use.name, use.parameters)
                result, cancelled = await self._guarded(self.exchange.dispatch_tool(use))
                if cancelled or result is None:
                    await self._recover_if_interrupted()
                    return None
                self.console.tool_result(use.name, result.output, result.is_error)
                results.append(result)

            await self._append(Message.construct(Role.USER, results))
            rounds += 1
            if max_rounds and rounds >= max_rounds:
                self.console.warn(
                    f"Stopped after {rounds} tool rounds; send a message to let the model continue."
                )
                log.warning("Tool round limit reached", session=self.name, rounds=rounds)
                return None

    async def process_one_turn(self, text: str) -> Message | None:
        """Single-shot variant of the loop for non-interactive use.

        Returns:
            The final Assistant message, or None if the turn did not complete
        """
        if self.state == SessionState.TERMINATED:
            raise SessionError(f"Session {self.name} has terminated")
        self._interrupt.bind(asyncio.get_running_loop())
        try:
            return await self._drive_turn(text)
        except ProviderError as e:
            log.error("Turn failed", session=self.name, error=str(e))
            self.console.error(str(e))
            return None
        finally:
            if self.state != SessionState.TERMINATED:
                self.state = SessionState.AWAITING_INPUT
            await self._persist()

    # Lifecycle

    async def _persist(self) -> None:
        """Append completed messages added since the last save; failures are reported only.

        A trailing User message has no reply yet and may still be removed by
        interrupt recovery, so it stays in memory until a reply follows it.
        """
        if self.session_log is None:
            return
        history = await self.exchange.history_snapshot()
        end = len(history)
        while end > self._persisted and history[end - 1].is_user:
            end -= 1
        if end <= self._persisted:
            return
        try:
            self.session_log.append(self.name, history[self._persisted:end])
        except PersistenceError as e:
            log.error("Failed to persist session", session=self.name, error=str(e))
            self.console.error(str(e))
            return
        self._persisted = end

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            loop.add_signal_handler(signal.SIGINT, self.interrupt)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            log.debug("SIGINT handler not installed", error=str(e))
            return False
        return True

    async def run(self) -> SessionStats:
        """Interactive loop until end of input or an exit command."""
        if self.state == SessionState.TERMINATED:
            raise SessionError(f"Session {self.name} has terminated")
        loop = asyncio.get_running_loop()
        self._interrupt.bind(loop)
        installed = self._install_signal_handler(loop)

        self.console.info(f"starting session | name: {self.name} profile: {self.profile_name}")
        if self.session_log is not None:
            self.console.info(f"saving to {self.session_log.path(self.name)}")
        try:
            while True:
                await self._recover_if_interrupted()
                self.state = SessionState.AWAITING_INPUT
                text = await self.console.read_line()
                if text is None or not text.strip() or text.strip().lower() in EXIT_COMMANDS:
                    break
                # Ctrl+C at the prompt only interrupts what came before the typed line.
                await self._recover_if_interrupted()
                await self.process_one_turn(text)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
            await self.close()
        return self.stats()

    async def close(self) -> None:
        """Terminate: stamp stats, persist, release tools, log the summary."""
        if self.state == SessionState.TERMINATED:
            return
        self.state = SessionState.TERMINATED
        self._stats.complete()
        await self._persist()
        if self.session_log is not None:
            try:
                self.session_log.record_stats(self._stats)
            except PersistenceError as e:
                log.error("Failed to record stats", session=self.name, error=str(e))
        await self.tool_registry.close()
        log.info(
            "Session completed",
            session=self.name,
            duration_seconds=round(self._stats.duration().total_seconds(), 3),
            messages=self._stats.message_count,
            tokens=self._stats.token_count,
            cost=round(self._stats.accrued_cost, 6),
        )

    def stats(self) -> SessionStats:
        return dataclasses.replace(self._stats)

    async def history(self) -> list[Message]:
        return await self.exchange.history_snapshot()
