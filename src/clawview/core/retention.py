"""Time-bounded retention for fact logs.

On every pipeline run, after newly accepted facts are appended, each
category's log is rewritten keeping only records inside the retention
horizon. The rewrite uses the same temp-file + rename path as every other
state write, so a concurrent sync reader sees the old log or the new one.
This bounds disk and memory use regardless of how often the probe fires.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from clawview.core.factlog import FactLog
from clawview.core.logging import get_logger
from clawview.core.timestamps import HOUR_MS

logger = get_logger(__name__)

DEFAULT_RETENTION_MS = 48 * HOUR_MS


@dataclass
class CompactionResult:
    """Result of compacting one category log."""

    category: str
    kept: int
    dropped: int
    cutoff_ms: int
    retained: list[dict[str, Any]] = field(default_factory=list, repr=False)


def compute_cutoff(now_ms: int, retention_ms: int) -> int:
    """Oldest ``ts_ms`` still retained at ``now_ms``."""
    return now_ms - retention_ms


def record_ts_ms(record: dict[str, Any]) -> int | None:
    value = record.get("ts_ms")
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class RetentionCompactor:
    """Drops fact records older than the retention horizon.

    Args:
        log: Fact log to compact.
        retention_ms: Horizon (default 48h).
    """

    def __init__(self, log: FactLog, retention_ms: int = DEFAULT_RETENTION_MS) -> None:
        self.log = log
        self.retention_ms = retention_ms

    def compact(self, category: str, now_ms: int) -> CompactionResult:
        """Rewrite ``category``'s log keeping records with ``ts_ms >= cutoff``.

        Records without a numeric ``ts_ms`` are dropped. The log is only
        rewritten when something was dropped.
        """
        cutoff = compute_cutoff(now_ms, self.retention_ms)
        rows = self.log.read(category)
        retained = [r for r in rows if (ts := record_ts_ms(r)) is not None and ts >= cutoff]
        dropped = len(rows) - len(retained)

        if dropped:
            self.log.replace(category, retained)
            logger.info(
                "fact_log_compacted",
                category=category,
                kept=len(retained),
                dropped=dropped,
                cutoff_ms=cutoff,
            )

        return CompactionResult(
            category=category,
            kept=len(retained),
            dropped=dropped,
            cutoff_ms=cutoff,
            retained=retained,
        )


__all__ = [
    "CompactionResult",
    "RetentionCompactor",
    "compute_cutoff",
    "DEFAULT_RETENTION_MS",
]
