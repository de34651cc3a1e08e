"""Service status and anomaly flags.

Status is recomputed from the current counters on every cycle; there is no
memory of previous cycles, so flapping between ``running`` and
``degraded`` is expected.
"""

from __future__ import annotations

from enum import Enum

CONNECTED_MODE = "fact-event-structured"
NOT_CONNECTED_MODE = "fact-only-not-connected"


class ServiceStatus(str, Enum):
    RUNNING = "running"
    DEGRADED = "degraded"
    DOWN = "down"


def compute_service_status(
    control_plane_reachable: bool,
    restart_unexpected_count_24h: int,
    active_critical_count: int,
) -> ServiceStatus:
    """
    ``down`` if the control plane is unreachable, whatever else is true.
    Otherwise ``degraded`` on any unexpected restart in 24h or any active
    critical error, else ``running``.
    """
    if not control_plane_reachable:
        return ServiceStatus.DOWN
    if restart_unexpected_count_24h > 0 or active_critical_count > 0:
        return ServiceStatus.DEGRADED
    return ServiceStatus.RUNNING


def compute_anomaly_flags(
    service_status: ServiceStatus | str,
    restart_unexpected_count_24h: int | None,
    skill_calls_collection_mode: str,
    api_collection_mode: str = CONNECTED_MODE,
) -> dict[str, bool]:
    """Split monitored-system anomalies from probe-pipeline anomalies.

    A ``degraded`` status alone is not a system anomaly; the gateway being
    down or restarting is. A fact stream that is not connected is a problem
    with this probe, not with the gateway.
    """
    status = ServiceStatus(service_status)
    return {
        "openclaw_system_anomaly": status is ServiceStatus.DOWN or (restart_unexpected_count_24h or 0) > 0,
        "clawview_pipeline_anomaly": NOT_CONNECTED_MODE in (skill_calls_collection_mode, api_collection_mode),
    }


__all__ = [
    "ServiceStatus",
    "CONNECTED_MODE",
    "NOT_CONNECTED_MODE",
    "compute_service_status",
    "compute_anomaly_flags",
]
