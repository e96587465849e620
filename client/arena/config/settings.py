"""Participant client configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, normalize_server_url, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class ArenaClientSettings(BaseSettings):
    model_config = {"env_prefix": "ARENA_"}

    server_url: str = "http://localhost:3001"
    api_prefix: str = "/api"
    state_dir: str = Field(default=".arena", min_length=1)
    log_dir: str | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    request_timeout_seconds: float = Field(default=10.0, gt=0)
    rejoin_timeout_seconds: float = Field(default=10.0, gt=0)
    submit_timeout_seconds: float = Field(default=10.0, gt=0)

    socketio_transports: list[str] = ["websocket", "polling"]
    reconnect_base_delay_seconds: float = Field(default=1.0, gt=0)
    reconnect_max_delay_seconds: float = Field(default=30.0, gt=0)
    max_reconnect_attempts: int = Field(default=10, ge=1)

    # Integrity monitor thresholds
    visibility_threshold_seconds: float = Field(default=5.0, gt=0)
    focus_threshold_seconds: float = Field(default=3.0, gt=0)
    devtools_poll_interval_seconds: float = Field(default=5.0, gt=0)
    devtools_size_threshold_px: int = Field(default=160, ge=1)

    # Answer shape limits
    max_code_bytes: int = Field(default=64 * 1024, ge=1)
    max_text_answer_length: int = Field(default=1000, ge=1)

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        return normalize_server_url(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        stripped = v.strip().strip("/")
        return f"/{stripped}" if stripped else ""

    @field_validator("socketio_transports", mode="before")
    @classmethod
    def validate_socketio_transports(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @property
    def api_base_url(self) -> str:
        return f"{self.server_url}{self.api_prefix}"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
