"""Settings for the clawview probe.

All knobs are read from ``CLAWVIEW_*`` environment variables (or a ``.env``
file) and validated once at startup.

Manifesto:
    The probe is launched by hooks and cron entries that only pass an
    environment. Configuration therefore has to be environment-driven,
    validated up front, and safe by default: sync is a no-op until a sink
    URL is set, and secrets are ``SecretStr`` so they never end up in a
    log line or ``repr``.

Examples:
    >>> from clawview.core.settings import ClawviewSettings
    >>> s = ClawviewSettings(retention_hours=24)
    >>> s.retention_ms
    86400000

Tags:
    settings, configuration, pydantic, environment, clawview
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clawview.core.errors import ConfigError


class ClawviewSettings(BaseSettings):
    """Probe, sync and trigger configuration.

    Fields
    ──────
    data_dir           : Directory holding fact logs, cursors, snapshots, lock
    timezone           : IANA zone used for the "local calendar day" window
    retention_hours    : Fact retention horizon for the compactor
    cursor_max_keys    : Bound on tie-breaking keys kept in a cursor
    sync_*             : Outbound sink settings
    probe_debounce_ms  : Minimum gap between accepted triggers
    """

    model_config = SettingsConfigDict(
        env_prefix="CLAWVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".openclaw" / "clawview-probe",
        description="Directory for fact logs, cursors and snapshots",
    )
    retention_hours: int = Field(default=48, ge=1)
    cursor_max_keys: int = Field(default=300, ge=1)

    # ── Aggregation ──────────────────────────────────────────────
    timezone: str = "Asia/Tokyo"
    top_n: int = Field(default=5, ge=1)
    active_error_window_min: int = Field(default=60, ge=1)

    # ── Upstream collaborators ───────────────────────────────────
    openclaw_bin: str = "openclaw"
    log_limit: int = Field(default=2500, ge=1)
    log_max_bytes: int = Field(default=600_000, ge=1)
    command_timeout_sec: float = Field(default=30.0, gt=0)
    sessions_dir: Path = Field(
        default_factory=lambda: Path.home() / ".openclaw" / "agents",
        description="Root of agent session transcripts (*.jsonl)",
    )

    # ── Trigger ──────────────────────────────────────────────────
    probe_enabled: bool = True
    sync_enabled: bool = True
    probe_debounce_ms: int = Field(default=45_000, ge=0)

    # ── Outbound sync ────────────────────────────────────────────
    sync_url: str = ""
    sync_api_key: SecretStr | None = None
    sync_hmac_secret: SecretStr | None = None
    tenant_id: str = "default"
    project_id: str = "openclaw"
    sync_batch_size: int = Field(default=200, ge=1)
    sync_timeout_sec: float = Field(default=10.0, gt=0)
    sync_max_retries: int = Field(default=2, ge=0)
    sync_backoff_base_sec: float = Field(default=0.5, ge=0)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value!r}") from exc
        return value

    @property
    def retention_ms(self) -> int:
        return self.retention_hours * 60 * 60 * 1000

    @property
    def sync_configured(self) -> bool:
        return bool(self.sync_url)


@lru_cache(maxsize=1)
def get_settings() -> ClawviewSettings:
    """Return the process-wide settings (cached).

    Raises:
        ConfigError: A ``CLAWVIEW_*`` variable failed validation.
    """
    try:
        return ClawviewSettings()
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigError(f"invalid configuration: {fields}", cause=e) from e


__all__ = ["ClawviewSettings", "get_settings"]
