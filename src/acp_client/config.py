"""Application configuration with environment variable support."""

import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError

MODEL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")


class Settings(BaseSettings):
    """
    Client settings with environment variable support.

    Priority: explicit overrides > ENV > .env.local > .env > defaults
    .env.local is gitignored for local overrides
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Connection
    ACP_WS_URL: str = "ws://127.0.0.1:9000"
    CLAUDE_API_KEY: Optional[str] = None
    CONNECT_TIMEOUT: float = 5.0  # seconds

    # Session
    MODEL: Optional[str] = None
    WORKSPACE_DIR: Path = Path("workspace")
    SESSIONS_DIR: Path = Path("sessions")

    # Streaming
    STREAM_GRACE_SECONDS: float = 1.0   # Retention after a stream completes
    STREAM_STALE_SECONDS: float = 5.0   # Inactivity before an open stream is swept

    # Logging
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    @field_validator("ACP_WS_URL")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("URL must be a non-empty string")
        parsed = urlparse(value)
        if parsed.scheme not in ("ws", "wss"):
            raise ValueError(
                f"URL protocol must be 'ws://' or 'wss://', got '{parsed.scheme}:'"
            )
        if not parsed.netloc:
            raise ValueError(f"Invalid URL format: {value}")
        return value

    @field_validator("CLAUDE_API_KEY")
    @classmethod
    def _check_api_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("API key cannot be empty or whitespace only")
        if len(trimmed) < 10:
            raise ValueError("API key appears to be too short")
        return trimmed

    @field_validator("MODEL")
    @classmethod
    def _check_model(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Model name cannot be empty or whitespace only")
        if not MODEL_NAME_PATTERN.match(trimmed):
            raise ValueError(
                f"Invalid model name format: {trimmed}. Model names should contain "
                "only alphanumeric characters, dots, dashes, and underscores."
            )
        return trimmed

    @field_validator("CONNECT_TIMEOUT")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Timeout must be non-negative")
        if value > 60:
            raise ValueError("Timeout should not exceed 60 seconds")
        return value

    @field_validator("WORKSPACE_DIR", "SESSIONS_DIR")
    @classmethod
    def _check_directory(cls, value: Path) -> Path:
        if not str(value).strip():
            raise ValueError("path cannot be empty or whitespace only")
        return value.expanduser().resolve()


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment plus explicit overrides.

    Overrides whose value is None are ignored so CLI options that were not
    given fall through to the environment.

    Raises:
        ConfigError: If any value fails validation; every bad field is listed
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        lines = []
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "config"
            lines.append(f"  - {field}: {error['msg']}")
        detail = "\n".join(lines)
        raise ConfigError(f"Configuration validation failed:\n{detail}", detail=detail) from e
