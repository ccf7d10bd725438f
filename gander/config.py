"""Configuration management for Gander."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from gander.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.config/gander/config.yaml").expanduser()
DEFAULT_SESSIONS_PATH = Path("~/.config/gander/sessions").expanduser()
LOCAL_CONFIG_FILENAME = "gander.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful engineering assistant working in the operator's terminal. "
    "Use the provided tools to inspect and change the local environment, "
    "and explain what you did."
)


class ModelConfig(BaseModel):
    """Model backend configuration."""

    provider: str = "openai"
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 4096
    api_key: str = ""
    base_url: str = ""
    timeout: float = 120.0
    cost_per_token: float = 0.0001
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ProfileConfig(BaseModel):
    """Named set of model overrides."""

    provider: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    base_url: str | None = None
    toolkits: list[str] = Field(default_factory=list)


class BashToolConfig(BaseModel):
    """Bash tool configuration."""

    timeout: int = 60
    max_output_chars: int = 10000


class TextEditorToolConfig(BaseModel):
    """Text editor tool configuration."""

    max_view_chars: int = 100000


class ProcessManagerToolConfig(BaseModel):
    """Background process manager configuration."""

    grace_seconds: float = 3.0
    max_buffer_chars: int = 200000


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "bash",
        "text_editor",
        "process_manager",
    ]
    bash: BashToolConfig = Field(default_factory=BashToolConfig)
    text_editor: TextEditorToolConfig = Field(default_factory=TextEditorToolConfig)
    process_manager: ProcessManagerToolConfig = Field(default_factory=ProcessManagerToolConfig)


class SessionConfig(BaseModel):
    """Session configuration."""

    path: str = str(DEFAULT_SESSIONS_PATH)
    interrupt_policy: Literal["cooperative", "preemptive"] = "cooperative"
    max_tool_rounds: int = 50


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must contain a mapping")
    return data


class Config(BaseSettings):
    """Main configuration for Gander."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="GANDER_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """YAML values arrive as init kwargs; environment variables win over them."""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()
        return cls(**_read_yaml(config_path))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration; environment variables override YAML values."""
        return cls.from_yaml()

    @classmethod
    def ensure_profile(cls, name: str | None = None, path: Path | str | None = None) -> str | None:
        """Write profile ``name`` when the config file or that profile is missing.

        The new profile copies the file's own model section, so values coming
        from environment variables are never written to disk.

        Returns:
            A note for the operator when the file was written, otherwise None
        """
        name = name or "default"
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()
        created = not config_path.exists()
        data = {} if created else _read_yaml(config_path)

        profiles = data.get("profiles") or {}
        if not isinstance(profiles, dict):
            raise ConfigurationError(f"Config {config_path} profiles must be a mapping")
        if name in profiles:
            return None

        model = ModelConfig(**(data.get("model") or {}))
        profiles[name] = {"provider": model.provider, "model": model.model}
        data["profiles"] = profiles
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Failed to write config {config_path}: {e}") from e

        if created:
            return (
                f"No configuration present, created profile '{name}' at {config_path}. "
                "Add your own profiles there to configure gander."
            )
        return f"Your configuration has no profile named '{name}'; added one to {config_path}."

    def for_profile(self, name: str | None) -> "Config":
        """Return a copy with the named profile's model overrides applied."""
        if not name or (name == "default" and "default" not in self.profiles):
            return self.model_copy(deep=True)
        profile = self.profiles.get(name)
        if profile is None:
            raise ConfigurationError(f"Unknown profile: {name}")

        overrides: dict[str, Any] = profile.model_dump(
            exclude_none=True,
            exclude={"toolkits"},
        )
        resolved = self.model_copy(deep=True)
        resolved.model = resolved.model.model_copy(update=overrides)
        if profile.toolkits:
            resolved.tools.enabled = list(profile.toolkits)
        return resolved

    def resolved_sessions_path(self) -> Path:
        """Directory holding session logs."""
        return Path(self.session.path).expanduser().resolve()


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
