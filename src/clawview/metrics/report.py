"""Snapshot-history reports: storage footprint and P0 live status."""

from __future__ import annotations

import math
from typing import Any

from clawview.core.storage import StateStorage, write_json
from clawview.core.timestamps import day_tag, iso_from_ms, now_ms
from clawview.metrics.coverage import build_p0_status_report
from clawview.metrics.snapshots import SnapshotStore

P0_STATUS_FILE = "p0-core-live-status.json"
RETENTION_ESTIMATE_DAYS = (3, 7, 14)


def percentile(values: list[float], p: float) -> float:
    """Nearest-rank percentile; ``0`` for no values."""
    if not values:
        return 0
    ordered = sorted(values)
    idx = min(len(ordered) - 1, max(0, math.ceil(p / 100 * len(ordered)) - 1))
    return ordered[idx]


def summarize(rows: list[dict[str, Any]], interval_min: float = 5, *, generated_at_ms: int | None = None) -> dict[str, Any]:
    """Size and coverage summary of a list of snapshot rows.

    Args:
        rows: Snapshot rows.
        interval_min: Sampling interval used to extrapolate daily volume.
    """
    sizes = [n for r in rows if isinstance(n := r.get("snapshot_bytes"), (int, float)) and n > 0]
    avg = round(sum(sizes) / len(sizes)) if sizes else 0
    samples_per_day = round(24 * 60 / max(1, interval_min))
    daily = avg * samples_per_day
    coverage = [
        float(c) for r in rows if isinstance(c := r.get("p0_core_coverage_ratio"), (int, float)) and not isinstance(c, bool)
    ]
    return {
        "generated_at": iso_from_ms(generated_at_ms if generated_at_ms is not None else now_ms()),
        "samples": len(rows),
        "snapshot_bytes_avg": avg,
        "snapshot_bytes_p95": round(percentile(sizes, 95)),
        "estimated_daily_bytes": daily,
        "retention_estimate_kb": {f"{d}d": round(daily * d / 1024) for d in RETENTION_ESTIMATE_DAYS},
        "p0_coverage_avg": round(sum(coverage) / len(coverage), 4) if coverage else None,
    }


def write_summary_report(
    storage: StateStorage,
    day: str | None = None,
    interval_min: float = 5,
) -> dict[str, Any]:
    """Summarize one day of snapshots into ``report-YYYY-MM-DD.json``."""
    store = SnapshotStore(storage)
    day = day or day_tag(now_ms())
    report = summarize(store.read_day(day), interval_min)
    report["file"] = store.file_name(day)
    write_json(storage, f"report-{day}.json", report)
    return report


def write_p0_status_report(storage: StateStorage) -> dict[str, Any]:
    """Build the P0 live-status report over all snapshot history."""
    store = SnapshotStore(storage)
    days = store.days()
    report = build_p0_status_report(store.read_all(), source=store.file_name(days[-1]) if days else None)
    if report["ok"]:
        write_json(storage, P0_STATUS_FILE, report)
    return report


__all__ = ["percentile", "summarize", "write_summary_report", "write_p0_status_report", "P0_STATUS_FILE"]
