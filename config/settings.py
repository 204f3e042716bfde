"""Centralized configuration using Pydantic Settings.

Values are resolved from the TOML config file first, then environment
variables (a `.env` file is loaded into the environment), then defaults.
"""

import os
import tomllib
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

APP_NAME = "signal-tui"
CONFIG_ENV_VAR = "SIGNAL_TUI_CONFIG"

SCROLLBACK_LOAD_LIMIT_MIN = 50
SCROLLBACK_LOAD_LIMIT_MAX = 100_000


class ConfigurationError(Exception):
    """Configuration could not be resolved; the process cannot start."""


def _home() -> Path:
    home = os.environ.get("HOME")
    if not home:
        raise ConfigurationError("$HOME not set")
    return Path(home)


def _xdg_dir(env_var: str, *fallback: str) -> Path:
    base = os.environ.get(env_var)
    return Path(base) if base else _home().joinpath(*fallback)


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_NAME / "config.toml"


def default_state_dir() -> Path:
    return _xdg_dir("XDG_STATE_HOME", ".local", "state") / APP_NAME


def default_scrollback_dir() -> Path:
    return default_state_dir() / "scrollback"


def default_log_file() -> Path:
    return default_state_dir() / f"{APP_NAME}.log"


def expand_path(value: str) -> Path:
    """Expand a leading '~/' against $HOME."""
    value = value.strip()
    if not value:
        raise ValueError("empty path in config")
    if value.startswith("~/"):
        return _home() / value[2:]
    return Path(value)


class Settings(BaseSettings):
    """Resolved application settings."""

    # ==================== signal-cli ====================
    signal_cli_bin: str = Field(
        default="signal-cli",
        validation_alias=AliasChoices("signal_cli_bin", "SIGNAL_CLI_BIN"),
    )
    account: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("account", "SIGNAL_ACCOUNT")
    )
    # Seconds signal-cli waits inside one `receive` call
    receive_timeout: int = Field(default=1, ge=1)
    # Pause after a failed receive before polling again
    receive_backoff: float = Field(default=2.0, ge=0)

    # ==================== Scrollback ====================
    scrollback_dir: Path = Field(default_factory=default_scrollback_dir)
    scrollback_load_limit: int = 500
    save_scrollback: bool = True

    # ==================== Notifications ====================
    notify: bool = True

    # ==================== Logging ====================
    log_file: Path = Field(default_factory=default_log_file)
    log_level: str = "INFO"

    @field_validator("account", mode="before")
    @classmethod
    def parse_optional_str(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("scrollback_dir", "log_file", mode="before")
    @classmethod
    def expand_user_path(cls, v):
        if isinstance(v, str):
            return expand_path(v)
        return v

    @field_validator("scrollback_load_limit")
    @classmethod
    def clamp_load_limit(cls, v: int) -> int:
        return max(SCROLLBACK_LOAD_LIMIT_MIN, min(v, SCROLLBACK_LOAD_LIMIT_MAX))

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"):
            raise ValueError(f"unknown log_level {v!r}")
        return level

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def default_config_text() -> str:
    return f"""# {APP_NAME} config
#
# Location of the config file:
#   $XDG_CONFIG_HOME/{APP_NAME}/config.toml (default: ~/.config/{APP_NAME}/config.toml)
#   override with ${CONFIG_ENV_VAR} or --config
#
# Location of scrollback (saved chat history, JSONL per chat):
#   $XDG_STATE_HOME/{APP_NAME}/scrollback (default: ~/.local/state/{APP_NAME}/scrollback)

scrollback_dir = "{default_scrollback_dir()}"
scrollback_load_limit = 500
save_scrollback = true
notify = true
"""


def read_config_file(path: Path) -> dict:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except OSError as e:
        raise ConfigurationError(f"read {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"parse {path}: {e}") from e


def load_or_create_settings(
    config_path: Optional[Path] = None, **overrides
) -> Settings:
    """
    Resolve settings, writing a sample config file on first run.

    Args:
        config_path: Config file to use instead of the default location
        **overrides: Values that win over the file and the environment

    Raises:
        ConfigurationError: if the config cannot be read or validated, or the
            scrollback directory cannot be created or written.
    """
    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(default_config_text(), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"write {path}: {e}") from e
        logger.info(f"Wrote default config to {path}")

    values = read_config_file(path)
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        settings = Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config in {path}: {e}") from e

    try:
        settings.scrollback_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"create scrollback dir {settings.scrollback_dir}: {e}"
        ) from e
    if not os.access(settings.scrollback_dir, os.W_OK):
        raise ConfigurationError(
            f"scrollback dir {settings.scrollback_dir} is not writable"
        )
    return settings
