"""
Readiness-tagged metric values.

Every value the dashboard shows carries where it came from. A metric whose
fact source was never populated is a Gap: it has no value at all, not a
zero, and renders as a fixed placeholder.

STDLIB ONLY - NO PYDANTIC.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Readiness(str, Enum):
    """
    Data-availability class of a metric value.

    Manifesto:
        Three states, never collapsed:
        - **READY:** read directly from an authoritative probe
          (control plane, cron inventory, skill inventory)
        - **DERIVED:** computed from retained facts
        - **GAP:** the defining source is not connected

        ``DERIVED`` with value ``0`` means "observed, nothing happened".
        ``GAP`` means "cannot observe". A dashboard that shows 0 for a gap
        lies; one that shows "--" for a real zero hides information.

    Examples:
        >>> derived(0).readiness
        <Readiness.DERIVED: 'Derived'>
        >>> gap().value is None
        True

    Tags:
        readiness, gap, derived, metric-value, clawview
    """

    READY = "Ready"
    DERIVED = "Derived"
    GAP = "Gap"


GAP_DISPLAY = "--"
GAP_NOTE = "data source not connected"


@dataclass(frozen=True)
class MetricValue:
    """
    One dashboard value.

    Attributes:
        readiness: READY, DERIVED or GAP
        value: The number/string/list, ``None`` iff GAP
        display: Pre-rendered text for the dashboard
        note: Optional explanation (always set for GAP)
    """

    readiness: Readiness
    value: Any
    display: str
    note: str | None = None

    @property
    def is_gap(self) -> bool:
        return self.readiness is Readiness.GAP

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "readiness": self.readiness.value,
            "value": self.value,
            "display": self.display,
        }
        if self.note:
            out["note"] = self.note
        return out


def format_display(value: Any) -> str:
    if value is None:
        return GAP_DISPLAY
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.4g}"
    if isinstance(value, (list, tuple)):
        return f"{len(value)} entries"
    return str(value)


def format_ratio(value: float) -> str:
    return f"{value * 100:.1f}%"


def ready(value: Any, display: str | None = None, note: str | None = None) -> MetricValue:
    return MetricValue(Readiness.READY, value, display or format_display(value), note)


def derived(value: Any, display: str | None = None, note: str | None = None) -> MetricValue:
    return MetricValue(Readiness.DERIVED, value, display or format_display(value), note)


def gap(note: str = GAP_NOTE) -> MetricValue:
    return MetricValue(Readiness.GAP, None, GAP_DISPLAY, note)


def ratio_value(numerator: int, denominator: int) -> MetricValue:
    """Derived ratio; ``0`` when the window is empty but the source is connected."""
    value = numerator / denominator if denominator > 0 else 0
    return derived(value, display=format_ratio(value))


__all__ = [
    "Readiness",
    "MetricValue",
    "GAP_DISPLAY",
    "GAP_NOTE",
    "format_display",
    "format_ratio",
    "ready",
    "derived",
    "gap",
    "ratio_value",
]
