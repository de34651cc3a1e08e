"""
Upstream collaborator interfaces.

The pipeline only ever consumes these protocols. Concrete sources wrap the
``openclaw`` CLI, local files, or in-memory fixtures; which one is wired in
is decided by the caller.

Contract:
    A source that cannot reach its upstream raises ``SourceUnavailableError``.
    The pipeline catches it, records the source as *not connected*, and the
    dependent metrics become Gap. A reachable source with nothing to report
    returns an empty result, which is *connected* and yields zeros.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from clawview.facts.models import LogLine, SkillFact


@dataclass(frozen=True)
class ControlPlaneStatus:
    """Reachability and process facts for the monitored gateway."""

    reachable: bool
    pid: int | None = None
    uptime_sec: int | None = None
    runtime_status: str | None = None
    port_status: str | None = None

    @property
    def port_busy(self) -> bool:
        return self.port_status == "busy"

    @classmethod
    def unreachable(cls) -> ControlPlaneStatus:
        return cls(reachable=False)


@dataclass(frozen=True)
class CronJob:
    job_id: str
    name: str
    enabled: bool = True


@dataclass(frozen=True)
class SkillComponent:
    """One entry of the installed-skill inventory."""

    name: str
    source: str = "unknown"
    eligible: bool = False
    disabled: bool = False

    @property
    def healthy(self) -> bool:
        return self.eligible and not self.disabled

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "source": self.source, "eligible": self.eligible, "disabled": self.disabled}


@dataclass
class SessionScan:
    """Skill facts found in session transcripts plus scan bookkeeping."""

    facts: list[SkillFact] = field(default_factory=list)
    files_scanned: int = 0


@runtime_checkable
class LogSource(Protocol):
    def fetch(self) -> list[LogLine]:
        """Ordered, bounded window of the newest log lines."""
        ...


@runtime_checkable
class ControlPlaneProbe(Protocol):
    def probe(self) -> ControlPlaneStatus: ...


@runtime_checkable
class CronSource(Protocol):
    def list_jobs(self) -> list[CronJob]: ...

    def runs(self, job_id: str) -> list[dict[str, Any]]:
        """Raw run-history entries (``runAtMs``, ``status``) for one job."""
        ...


@runtime_checkable
class SkillInventory(Protocol):
    def list_skills(self) -> list[SkillComponent]: ...


@runtime_checkable
class SkillCallSource(Protocol):
    def scan(self, known_skills: list[str]) -> SessionScan: ...


__all__ = [
    "ControlPlaneStatus",
    "CronJob",
    "SkillComponent",
    "SessionScan",
    "LogSource",
    "ControlPlaneProbe",
    "CronSource",
    "SkillInventory",
    "SkillCallSource",
]
