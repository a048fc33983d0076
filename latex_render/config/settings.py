"""
Application Settings
===================

Process-wide settings loaded once from the environment using Pydantic Settings.
Variable names match the deployment environment of the render service
(``PORT``, ``COMMAND_TIMEOUT``, ``WORKER_LIMIT`` ...).
"""

import os
import re
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import (
    AliasChoices,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

DEFAULT_MAX_BODY_BYTES = 1 << 20

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style duration strings such as
    ``30s``, ``1m30s`` or ``250ms``.

    Raises:
        ValueError: If the value is not a valid non-negative duration
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            position = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != position:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                position = match.end()
            if not text or position != len(text):
                raise ValueError(f"Invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return seconds


class Settings(BaseSettings):
    """Render service settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="LaTeX Render Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="production", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    read_timeout: float = Field(default=30.0, description="Request body read timeout in seconds")
    read_header_timeout: float = Field(
        default=10.0, description="Request header read timeout in seconds"
    )
    write_timeout: float = Field(default=60.0, description="Handler completion timeout in seconds")
    idle_timeout: float = Field(default=60.0, description="Keep-alive idle timeout in seconds")

    # Security Configuration
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LATEX_SERVICE_API_KEY", "api_key"),
        description="Shared secret required from callers; unset disables authorization",
    )

    # Rendering Configuration
    max_body_bytes: int = Field(
        default=DEFAULT_MAX_BODY_BYTES, description="Maximum accepted request body size"
    )
    command_timeout: float = Field(default=30.0, description="Deadline for one render in seconds")
    worker_limit: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        description="Maximum number of renders running at once",
    )
    allow_shell_escape: bool = Field(
        default=False, description="Pass -shell-escape to pdflatex instead of -no-shell-escape"
    )
    raster_dpi: int = Field(default=150, gt=0, description="Rasterization resolution")
    workspace_root: Optional[Path] = Field(
        default=None, description="Parent directory for render workspaces (system temp if unset)"
    )

    # Toolchain Configuration
    pdflatex_command: str = Field(default="pdflatex", description="Typesetting executable")
    pdfcrop_command: str = Field(default="pdfcrop", description="Cropping executable")
    pdftoppm_command: str = Field(default="pdftoppm", description="Rasterizing executable")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator(
        "command_timeout",
        "read_timeout",
        "read_header_timeout",
        "write_timeout",
        "idle_timeout",
        mode="before",
    )
    @classmethod
    def parse_durations(cls, v: Union[str, int, float], info: ValidationInfo) -> float:
        """Parse duration strings into seconds, keeping the default if unparsable."""
        try:
            return parse_duration(v)
        except ValueError:
            return cls._fall_back(info.field_name, v)

    @field_validator("worker_limit", "max_body_bytes", "allow_shell_escape", mode="wrap")
    @classmethod
    def default_unparsable(
        cls, v: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        """Keep the default for values that are not a valid int or bool."""
        try:
            return handler(v)
        except ValidationError:
            return handler(cls._fall_back(info.field_name, v))

    @field_validator("worker_limit")
    @classmethod
    def clamp_worker_limit(cls, v: int) -> int:
        """At least one render must be able to run."""
        return max(v, 1)

    @field_validator("max_body_bytes")
    @classmethod
    def default_non_positive_body_limit(cls, v: int) -> int:
        """Fall back to the default ceiling for non-positive values."""
        return v if v >= 1 else DEFAULT_MAX_BODY_BYTES

    @field_validator("api_key")
    @classmethod
    def empty_api_key_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty key as no key configured."""
        return v or None

    @classmethod
    def _fall_back(cls, field_name: str, value: Any) -> Any:
        default = cls.model_fields[field_name].get_default(call_default_factory=True)
        logger.warning(
            "Invalid setting, using default", setting=field_name, value=value, default=default
        )
        return default

    @property
    def auth_enabled(self) -> bool:
        """Whether callers must present the API key."""
        return self.api_key is not None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
