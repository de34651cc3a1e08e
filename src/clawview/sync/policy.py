"""
Outbound privacy policy: strict whitelist plus content-pattern rejection.

Manifesto:
    Nothing leaves the host that was not explicitly allowed. Two gates:

    1. **Field whitelist.** An API-fact record may only carry the fields in
       ``API_FACT_FIELDS``. A record with any other key is dropped whole;
       it is never trimmed down and sent, because an unexpected field means
       the record did not come from the extractor we know.
    2. **Pattern scan.** Every remaining string value is scanned for email
       addresses, bearer tokens and credential-looking ``key=value`` /
       ``key: value`` pairs. One hit drops the whole record.

    Snapshots are aggregates the probe built itself, so they are projected
    onto ``SNAPSHOT_FIELDS`` (unknown keys silently left out) rather than
    rejected.

Examples:
    >>> normalize_api_record({"ts_ms": 1, "dedupe_key": "k", "provider": "lark",
    ...                       "endpoint_group": "auth", "headers": {}}).reason
    'sensitive'
    >>> contains_sensitive_value("/v1/messages/send")
    False

Tags:
    privacy, whitelist, redaction, outbound, clawview
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from clawview.core.timestamps import iso_from_ms
from clawview.facts.models import UNKNOWN

API_FACT_FIELDS = frozenset(
    {
        "ts",
        "ts_ms",
        "provider",
        "method",
        "host",
        "path_template",
        "endpoint_group",
        "status_code",
        "latency_ms",
        "is_rate_limited",
        "is_failure",
        "dedupe_key",
        "request_id",
    }
)

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "ts",
    "timezone",
    "probe_version",
    "snapshot_bytes",
    "gateway_status",
    "service_status_now",
    "service_uptime_ratio_24h",
    "cron_jobs_total",
    "cron_jobs_enabled",
    "cron_runs_24h_total",
    "cron_runs_today_total",
    "cron_storm_top5_5m",
    "trigger_total_24h",
    "trigger_storm_task_top5_5m",
    "api_call_total_24h",
    "api_call_total_today",
    "api_error_rate_24h",
    "api_429_ratio_24h",
    "api_unknown_rate_24h",
    "endpoint_group_top5_calls_24h",
    "api_collection_mode",
    "api_events_new_since_last",
    "api_events_retained",
    "errors_active_count",
    "critical_errors_active_count",
    "restart_unexpected_count_24h",
    "data_freshness_delay_min",
    "p0_core_coverage_ratio",
    "p0_core_filled",
    "p0_core_total",
    "skills_total",
    "healthy_skills",
    "skills_components",
    "skills_top_24h",
    "skill_calls_total_24h",
    "skill_calls_collection_mode",
    "skill_calls_files_scanned",
    "skill_calls_retained_24h",
    "openclaw_system_anomaly",
    "clawview_pipeline_anomaly",
)

SENSITIVE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE),
    re.compile(r"\bbearer\s+[A-Z0-9._~+/=-]{6,}", re.IGNORECASE),
    re.compile(
        r"\b(?:authorization|proxy-authorization|set-cookie|cookie|x-api-key|api[_-]?key|"
        r"access[_-]?token|refresh[_-]?token|token|secret|client[_-]?secret|password|passwd|"
        r"session(?:[_-]?id)?)\s*[:=]",
        re.IGNORECASE,
    ),
    re.compile(r"\bsk-[A-Z0-9_-]{16,}", re.IGNORECASE),
)

OK = "ok"
SENSITIVE = "sensitive"
INVALID = "invalid"

_LEGACY_UNKNOWN = {"other", "others", ""}


@dataclass(frozen=True)
class PolicyDecision:
    reason: str
    record: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.reason == OK


def contains_sensitive_value(value: Any) -> bool:
    """True if ``value`` (or any string nested in it) matches a sensitive pattern."""
    if isinstance(value, str):
        return any(p.search(value) for p in SENSITIVE_PATTERNS)
    if isinstance(value, dict):
        return any(contains_sensitive_value(k) or contains_sensitive_value(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return any(contains_sensitive_value(v) for v in value)
    return False


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _optional(value: Any, check) -> bool:
    return value is None or check(value)


def normalize_api_record(record: Any) -> PolicyDecision:
    """Apply the outbound policy to one stored API-fact record.

    Returns ``ok`` with a normalized copy, ``sensitive`` for a non-whitelisted
    field or a pattern hit, ``invalid`` for a malformed record.
    """
    if not isinstance(record, dict):
        return PolicyDecision(INVALID)
    if not set(record) <= API_FACT_FIELDS:
        return PolicyDecision(SENSITIVE)
    if any(contains_sensitive_value(v) for v in record.values()):
        return PolicyDecision(SENSITIVE)

    ts_ms = record.get("ts_ms")
    key = record.get("dedupe_key")
    if not _is_int(ts_ms) or ts_ms <= 0 or not isinstance(key, str) or not key:
        return PolicyDecision(INVALID)

    checks = (
        _optional(record.get("ts"), lambda v: isinstance(v, str)),
        _optional(record.get("provider"), lambda v: isinstance(v, str)),
        _optional(record.get("endpoint_group"), lambda v: isinstance(v, str)),
        _optional(record.get("host"), lambda v: isinstance(v, str)),
        _optional(record.get("path_template"), lambda v: isinstance(v, str) and v.startswith("/")),
        _optional(record.get("method"), lambda v: isinstance(v, str)),
        _optional(record.get("request_id"), lambda v: isinstance(v, str)),
        _optional(record.get("status_code"), lambda v: _is_int(v) and 100 <= v <= 599),
        _optional(record.get("latency_ms"), lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v >= 0),
        _optional(record.get("is_failure"), lambda v: isinstance(v, bool)),
        _optional(record.get("is_rate_limited"), lambda v: isinstance(v, bool)),
    )
    if not all(checks):
        return PolicyDecision(INVALID)

    out = dict(record)
    out["ts"] = record.get("ts") or iso_from_ms(ts_ms)
    for field_name in ("provider", "endpoint_group"):
        value = str(record.get(field_name) or "").lower()
        out[field_name] = UNKNOWN if value in _LEGACY_UNKNOWN else value
    if out.get("method"):
        out["method"] = out["method"].upper()
    return PolicyDecision(OK, out)


def project_snapshot(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``snapshot`` restricted to whitelisted fields.

    The nested ``metrics`` map is restricted to the same keys.
    """
    out = {k: snapshot[k] for k in SNAPSHOT_FIELDS if k in snapshot}
    metrics = snapshot.get("metrics")
    if isinstance(metrics, dict):
        out["metrics"] = {k: metrics[k] for k in SNAPSHOT_FIELDS if k in metrics}
    return out


__all__ = [
    "API_FACT_FIELDS",
    "SNAPSHOT_FIELDS",
    "SENSITIVE_PATTERNS",
    "OK",
    "SENSITIVE",
    "INVALID",
    "PolicyDecision",
    "contains_sensitive_value",
    "normalize_api_record",
    "project_snapshot",
]
