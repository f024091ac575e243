"""
Centralized settings for the operator control plane.

All fields can be set via ``OPERATOR_*`` environment variables (e.g.
``OPERATOR_RUNNER_BINARY=/usr/local/bin/greentic-runner``) or through a
``.env`` file.  ``get_settings()`` returns a cached, validated instance.

Tags:
    configuration, settings, pydantic, caching
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OperatorSettings(BaseSettings):
    """Operator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OPERATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Bundle & state ───────────────────────────────────────────
    bundle_root: Path = Field(default=Path("."))
    state_dir: Path | None = Field(
        default=None, description="Defaults to <bundle_root>/state"
    )
    subscription_store_dir: Path | None = Field(
        default=None, description="Defaults to <state_dir>/subscriptions"
    )

    # ── Execution ────────────────────────────────────────────────
    runner_binary: Path | None = Field(
        default=None, description="External runner; direct mode when unset"
    )
    runner_offline: bool = Field(default=True)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="auto | json | console")

    # ── Egress retry ─────────────────────────────────────────────
    retry_max_attempts: int = Field(default=5, ge=1)
    retry_base_delay_ms: int = Field(default=500, ge=0)
    retry_max_delay_ms: int = Field(default=30_000, ge=0)
    retry_jitter_ms: int = Field(default=250, ge=0)
    egress_dry_run: bool = Field(default=False)

    # ── Subscriptions ────────────────────────────────────────────
    subscription_renew_skew_seconds: int = Field(default=300, ge=0)

    # ── Timers ───────────────────────────────────────────────────
    timer_default_interval_seconds: int = Field(default=60, ge=1)

    # ── Domain plans ─────────────────────────────────────────────
    plan_parallel: int = Field(default=1, ge=1)
    plan_best_effort: bool = Field(default=False)
    plan_allow_missing_setup: bool = Field(default=False)

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("auto", "json", "console"):
            raise ValueError(f"log_format must be auto, json or console, got {value!r}")
        return value

    # ── Derived properties ───────────────────────────────────────

    @property
    def resolved_state_dir(self) -> Path:
        return self.state_dir or self.bundle_root / "state"

    @property
    def resolved_subscription_dir(self) -> Path:
        return self.subscription_store_dir or self.resolved_state_dir / "subscriptions"

    @property
    def json_logs(self) -> bool | None:
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, OperatorSettings] = {}


def get_settings(*, env_file: Path | None = None, _force_reload: bool = False) -> OperatorSettings:
    """Load, validate, and cache an :class:`OperatorSettings` instance."""
    cache_key = str(env_file or "")
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file is not None:
        settings = OperatorSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = OperatorSettings()
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
