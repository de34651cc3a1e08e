"""Windowed aggregation, readiness tagging, status and snapshot history."""

from clawview.metrics.aggregator import AggregationInput, MetricAggregator
from clawview.metrics.coverage import P0_CORE_KEYS, build_p0_status_report, p0_coverage
from clawview.metrics.readiness import MetricValue, Readiness, derived, gap, ready
from clawview.metrics.snapshots import SnapshotStore
from clawview.metrics.status import ServiceStatus, compute_anomaly_flags, compute_service_status

__all__ = [
    "AggregationInput",
    "MetricAggregator",
    "MetricValue",
    "P0_CORE_KEYS",
    "Readiness",
    "ServiceStatus",
    "SnapshotStore",
    "build_p0_status_report",
    "compute_anomaly_flags",
    "compute_service_status",
    "derived",
    "gap",
    "p0_coverage",
    "ready",
]
