"""
P0 core metric coverage.

Eleven metrics are the minimum the dashboard needs to be useful. Coverage is
the share of them a snapshot actually filled (non-null), rounded to four
decimals. It measures the probe, not the gateway: a ``down`` status is
filled, a Gap is not.

Examples:
    >>> p0_coverage({"service_status_now": "down"}).filled
    1
    >>> p0_coverage({}).ratio
    0.0

Tags:
    coverage, p0, data-quality, clawview
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from clawview.core.timestamps import DAY_MS, iso_from_ms, now_ms, to_ms

P0_CORE_KEYS: tuple[str, ...] = (
    "service_uptime_ratio_24h",
    "service_status_now",
    "trigger_total_24h",
    "trigger_storm_task_top5_5m",
    "api_call_total_24h",
    "api_error_rate_24h",
    "api_429_ratio_24h",
    "endpoint_group_top5_calls_24h",
    "error_fingerprint_top10_24h",
    "restart_unexpected_count_24h",
    "data_freshness_delay_min",
)

LOOKBACK_MS = DAY_MS


@dataclass(frozen=True)
class Coverage:
    filled: int
    total: int

    @property
    def ratio(self) -> float:
        return round(self.filled / self.total, 4) if self.total else 0.0


def p0_coverage(values: Mapping[str, Any], keys: Iterable[str] = P0_CORE_KEYS) -> Coverage:
    keys = list(keys)
    return Coverage(filled=sum(1 for k in keys if values.get(k) is not None), total=len(keys))


def build_p0_status_report(
    rows: list[dict[str, Any]],
    *,
    generated_at_ms: int | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Per-key ``ready``/``gap`` status observed over the last 24h of snapshots.

    The newest snapshot anchors a 24h lookback; each P0 key takes its value
    from the newest snapshot in that lookback that filled it. With no rows
    the report has ``ok=False``.

    Args:
        rows: Snapshot rows in append order (oldest first).
        generated_at_ms: Report time (defaults to now).
        source: Name of the snapshot file the newest row came from.
    """
    generated = iso_from_ms(generated_at_ms if generated_at_ms is not None else now_ms())
    if not rows:
        return {"ok": False, "reason": "no snapshot rows found", "generated_at": generated}

    indexed = [(seq, to_ms(row.get("ts")), row) for seq, row in enumerate(rows)]
    with_ts = [entry for entry in indexed if entry[1] is not None]
    latest = max(with_ts, key=lambda e: (e[1], e[0])) if with_ts else indexed[-1]
    latest_ts = latest[1] if latest[1] is not None else now_ms()

    lookback = sorted(
        (e for e in with_ts if latest_ts - LOOKBACK_MS <= e[1] <= latest_ts),
        key=lambda e: (e[1], e[0]),
        reverse=True,
    )
    candidates = [e[2] for e in lookback] or [latest[2]]

    fields = []
    for key in P0_CORE_KEYS:
        value = next((row[key] for row in candidates if row.get(key) is not None), None)
        fields.append({"key": key, "status": "ready" if value is not None else "gap", "sample": value})

    ready_count = sum(1 for f in fields if f["status"] == "ready")
    coverage = Coverage(filled=ready_count, total=len(P0_CORE_KEYS))
    return {
        "ok": True,
        "generated_at": generated,
        "source_snapshot_file": source,
        "source_snapshot_ts": latest[2].get("ts"),
        "p0_core_total": coverage.total,
        "p0_core_ready": coverage.filled,
        "p0_core_coverage_ratio": coverage.ratio,
        "fields": fields,
    }


__all__ = ["P0_CORE_KEYS", "Coverage", "p0_coverage", "build_p0_status_report"]
