"""
activeseries.tier0_core.config
────────────────────────────────
Typed configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic. An invalid trackers flag value
fails the config load at startup, not at the first ingested sample.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ActiveSeriesConfig(BaseSettings):
    """
    Typed activeseries configuration. The trackers value uses the same text
    grammar as the -ingester.active-series-custom-trackers flag.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Trackers ──────────────────────────────────────────────────────────────
    custom_trackers: str = Field(default="", alias="ACTIVE_SERIES_CUSTOM_TRACKERS")

    # ── Runtime overrides ─────────────────────────────────────────────────────
    runtime_config_file: str | None = Field(
        default=None, alias="ACTIVESERIES_RUNTIME_CONFIG"
    )
    document_format: str = Field(default="yaml", alias="ACTIVESERIES_DOCUMENT_FORMAT")

    # ── Matchers ──────────────────────────────────────────────────────────────
    matcher_backend: str = Field(default="selector", alias="ACTIVESERIES_MATCHER_BACKEND")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="ACTIVESERIES_LOG_LEVEL")
    log_format: str = Field(default="json", alias="ACTIVESERIES_LOG_FORMAT")

    @field_validator("custom_trackers")
    @classmethod
    def validate_custom_trackers(cls, v: str) -> str:
        from activeseries.tier0_core.errors import TrackerError
        from activeseries.tier1_runtime.trackers import parse_flag_value

        try:
            parse_flag_value(v)
        except TrackerError as exc:
            raise ValueError(exc.user_message) from exc
        return v

    @field_validator("document_format")
    @classmethod
    def validate_document_format(cls, v: str) -> str:
        allowed = {"yaml", "json"}
        if v.lower() not in allowed:
            raise ValueError(f"document_format must be one of {allowed}, got {v!r}")
        return v.lower()


@lru_cache(maxsize=1)
def get_config() -> ActiveSeriesConfig:
    """
    Return the singleton config. Cached after first call.
    Call _reset_config() in tests to pick up new env vars.
    """
    return ActiveSeriesConfig()


def _reset_config() -> None:
    """For tests: clear the config cache."""
    get_config.cache_clear()


__all__ = ["ActiveSeriesConfig", "get_config"]
