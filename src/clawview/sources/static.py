"""In-memory sources for tests and dry runs.

Each takes its canned data up front; passing ``None`` makes the source
behave as unreachable.
"""

from __future__ import annotations

from typing import Any

from clawview.core.errors import SourceUnavailableError
from clawview.facts.models import LogLine, SkillFact
from clawview.sources.protocol import ControlPlaneStatus, CronJob, SessionScan, SkillComponent


class StaticLogSource:
    def __init__(self, lines: list[LogLine] | None) -> None:
        self.lines = lines

    def fetch(self) -> list[LogLine]:
        if self.lines is None:
            raise SourceUnavailableError("static log source unavailable")
        return list(self.lines)


class StaticControlPlane:
    def __init__(self, status: ControlPlaneStatus | None = None) -> None:
        self.status = status or ControlPlaneStatus.unreachable()

    def probe(self) -> ControlPlaneStatus:
        return self.status


class StaticCronSource:
    def __init__(
        self,
        jobs: list[CronJob] | None,
        runs: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.jobs = jobs
        self._runs = runs or {}

    def list_jobs(self) -> list[CronJob]:
        if self.jobs is None:
            raise SourceUnavailableError("static cron source unavailable")
        return list(self.jobs)

    def runs(self, job_id: str) -> list[dict[str, Any]]:
        return list(self._runs.get(job_id, []))


class StaticSkillInventory:
    def __init__(self, skills: list[SkillComponent] | None) -> None:
        self.skills = skills

    def list_skills(self) -> list[SkillComponent]:
        if self.skills is None:
            raise SourceUnavailableError("static skill inventory unavailable")
        return list(self.skills)


class StaticSkillCallSource:
    def __init__(self, facts: list[SkillFact] | None, files_scanned: int = 1) -> None:
        self.facts = facts
        self.files_scanned = files_scanned

    def scan(self, known_skills: list[str]) -> SessionScan:
        if self.facts is None:
            raise SourceUnavailableError("static session source unavailable")
        return SessionScan(facts=list(self.facts), files_scanned=self.files_scanned)


__all__ = [
    "StaticLogSource",
    "StaticControlPlane",
    "StaticCronSource",
    "StaticSkillInventory",
    "StaticSkillCallSource",
]
