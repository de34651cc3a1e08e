"""
One probe cycle: extract, advance cursors, append, compact, aggregate.

Manifesto:
    A cycle always produces a snapshot. Every upstream collaborator may be
    down; each failure is caught here, logged, and turned into "source not
    connected", which the aggregator renders as Gap. Only storage errors
    (the probe cannot persist its own state) escape.

Architecture:
    ::

        PidLock.acquire ── busy ──► PipelineRun(skipped=True)
              │
              ▼
        control plane ─ logs ─ cron ─ skills        (each may be "down")
              │
              ▼
        FactExtractor.extract(lines)
              │
              ▼   per category: api / critical / cron / skill
        CursorStore.advance ─► FactLog.append ─► RetentionCompactor.compact
              │
              ▼
        MetricAggregator.aggregate ─► SnapshotStore.append
              │
              ▼   (optional)
        SyncTransmitter.sync_once      failure logged, cycle still succeeds
              │
              ▼
        PidLock.release

Tags:
    pipeline, orchestration, probe, clawview
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from clawview.core.cursors import CursorStore
from clawview.core.errors import SourceError, SyncDeliveryError
from clawview.core.factlog import FactLog
from clawview.core.logging import LogContext, get_logger
from clawview.core.retention import RetentionCompactor
from clawview.core.settings import ClawviewSettings
from clawview.core.storage import FileStateStorage, StateStorage
from clawview.core.timestamps import MINUTE_MS, now_ms
from clawview.execution.locks import PidLock
from clawview.facts.extractor import FactExtractor, extract_cron_runs
from clawview.facts.models import FactCategory, LogLine, facts_from_records
from clawview.metrics.aggregator import AggregationInput, MetricAggregator
from clawview.metrics.snapshots import SnapshotStore
from clawview.sources.files import JsonlLogSource, SessionSkillSource
from clawview.sources.openclaw import (
    OpenclawCli,
    OpenclawCronSource,
    OpenclawGatewayProbe,
    OpenclawLogSource,
    OpenclawSkillInventory,
)
from clawview.sources.protocol import (
    ControlPlaneProbe,
    ControlPlaneStatus,
    CronJob,
    CronSource,
    LogSource,
    SkillCallSource,
    SkillComponent,
    SkillInventory,
)
from clawview.sync.transmitter import SyncResult, SyncTransmitter

logger = get_logger(__name__)


@dataclass
class PipelineRun:
    """Outcome of one cycle."""

    run_id: str
    skipped: bool = False
    snapshot: dict[str, Any] | None = None
    accepted: dict[str, int] = field(default_factory=dict)
    dropped: dict[str, int] = field(default_factory=dict)
    sources_down: list[str] = field(default_factory=list)
    sync: SyncResult | None = None
    sync_error: str | None = None


class ProbePipeline:
    """
    Wires collaborators, stores and the aggregator into one cycle.

    Sources left as ``None`` count as not connected.
    """

    def __init__(
        self,
        storage: StateStorage,
        control_plane: ControlPlaneProbe,
        log_source: LogSource | None = None,
        cron_source: CronSource | None = None,
        skill_inventory: SkillInventory | None = None,
        skill_calls: SkillCallSource | None = None,
        *,
        aggregator: MetricAggregator | None = None,
        extractor: FactExtractor | None = None,
        retention_ms: int = 48 * 60 * MINUTE_MS,
        cursor_max_keys: int = 300,
        transmitter: SyncTransmitter | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.storage = storage
        self.control_plane = control_plane
        self.log_source = log_source
        self.cron_source = cron_source
        self.skill_inventory = skill_inventory
        self.skill_calls = skill_calls
        self.aggregator = aggregator or MetricAggregator()
        self.extractor = extractor or FactExtractor()
        self.transmitter = transmitter
        self.clock = clock
        self.cursors = CursorStore(storage, max_keys=cursor_max_keys)
        self.facts = FactLog(storage)
        self.compactor = RetentionCompactor(self.facts, retention_ms)
        self.snapshots = SnapshotStore(storage)
        self.lock = PidLock(storage)

    @classmethod
    def from_settings(
        cls,
        settings: ClawviewSettings,
        storage: StateStorage | None = None,
        *,
        log_file: Path | None = None,
        with_sync: bool | None = None,
    ) -> ProbePipeline:
        """Production wiring: ``openclaw`` CLI sources over the data directory."""
        storage = storage or FileStateStorage(settings.data_dir)
        cli = OpenclawCli(settings.openclaw_bin, timeout_sec=settings.command_timeout_sec)
        log_source: LogSource = (
            JsonlLogSource(log_file, limit=settings.log_limit)
            if log_file
            else OpenclawLogSource(cli, limit=settings.log_limit, max_bytes=settings.log_max_bytes)
        )
        sync_on = settings.sync_enabled if with_sync is None else with_sync
        return cls(
            storage,
            OpenclawGatewayProbe(cli),
            log_source,
            OpenclawCronSource(cli),
            OpenclawSkillInventory(cli),
            SessionSkillSource(settings.sessions_dir, lookback_ms=settings.retention_ms),
            aggregator=MetricAggregator(
                timezone=settings.timezone,
                top_n=settings.top_n,
                active_error_window_ms=settings.active_error_window_min * MINUTE_MS,
            ),
            retention_ms=settings.retention_ms,
            cursor_max_keys=settings.cursor_max_keys,
            transmitter=SyncTransmitter.from_settings(settings, storage) if sync_on and settings.sync_configured else None,
        )

    # -- cycle -----------------------------------------------------------------

    def run_once(self) -> PipelineRun:
        """Run one locked cycle. Lock contention skips the cycle."""
        run = PipelineRun(run_id=uuid.uuid4().hex[:12])
        if not self.lock.acquire():
            logger.info("pipeline_skipped", reason="lock busy", run_id=run.run_id)
            run.skipped = True
            return run
        try:
            with LogContext(run_id=run.run_id):
                self._cycle(run)
                if self.transmitter is not None:
                    self._sync(run)
        finally:
            self.lock.release()
        return run

    def _cycle(self, run: PipelineRun) -> None:
        now = self.clock()

        control_plane = self._probe_control_plane(run)
        lines, log_connected = self._fetch_logs(run)
        extraction = self.extractor.extract(lines)
        cron_jobs, cron_facts = self._collect_cron(run)
        inventory = self._collect_inventory(run)
        skill_facts, skill_connected, files_scanned = self._collect_skill_calls(run, inventory)

        new_facts = {
            FactCategory.API: extraction.api_facts,
            FactCategory.CRITICAL: extraction.critical_facts,
            FactCategory.CRON: cron_facts,
            FactCategory.SKILL: skill_facts,
        }
        retained: dict[FactCategory, list[Any]] = {}
        for category, facts in new_facts.items():
            accepted = self.cursors.advance(category.value, facts)
            self.facts.append(category.value, (f.to_record() for f in accepted))
            compaction = self.compactor.compact(category.value, now)
            retained[category] = facts_from_records(category, compaction.retained)
            run.accepted[category.value] = len(accepted)
            run.dropped[category.value] = compaction.dropped

        logger.info("facts_accepted", **run.accepted)

        snapshot = self.aggregator.aggregate(
            AggregationInput(
                now_ms=now,
                control_plane=control_plane,
                api_facts=retained[FactCategory.API],
                critical_facts=retained[FactCategory.CRITICAL],
                cron_facts=retained[FactCategory.CRON],
                skill_facts=retained[FactCategory.SKILL],
                log_connected=log_connected,
                extraction=extraction,
                cron_jobs=cron_jobs,
                skill_inventory=inventory,
                skill_source_connected=skill_connected,
                skill_files_scanned=files_scanned,
                api_new_since_last=run.accepted[FactCategory.API.value],
            )
        )
        run.snapshot = self.snapshots.append(snapshot)
        logger.info(
            "snapshot_written",
            ts=snapshot["ts"],
            bytes=run.snapshot["snapshot_bytes"],
            status=snapshot["service_status_now"],
            sources_down=run.sources_down,
        )

    def _sync(self, run: PipelineRun) -> None:
        try:
            run.sync = self.transmitter.sync_once()
        except SyncDeliveryError as e:
            # Cursor untouched; the next cycle resends the same batch.
            run.sync_error = e.message

    # -- collaborators ---------------------------------------------------------

    def _source_down(self, run: PipelineRun, name: str, error: SourceError) -> None:
        run.sources_down.append(name)
        error.with_context(source_name=name, run_id=run.run_id)
        logger.warning("source_unavailable", **error.to_dict())

    def _probe_control_plane(self, run: PipelineRun) -> ControlPlaneStatus:
        try:
            status = self.control_plane.probe()
        except SourceError as e:
            self._source_down(run, "control_plane", e)
            return ControlPlaneStatus.unreachable()
        if not status.reachable:
            run.sources_down.append("control_plane")
        return status

    def _fetch_logs(self, run: PipelineRun) -> tuple[Sequence[LogLine], bool]:
        if self.log_source is None:
            run.sources_down.append("logs")
            return [], False
        try:
            return self.log_source.fetch(), True
        except SourceError as e:
            self._source_down(run, "logs", e)
            return [], False

    def _collect_cron(self, run: PipelineRun) -> tuple[list[CronJob] | None, list[Any]]:
        if self.cron_source is None:
            return None, []
        try:
            jobs = self.cron_source.list_jobs()
        except SourceError as e:
            self._source_down(run, "cron", e)
            return None, []
        facts = []
        for job in jobs:
            if not job.enabled:
                continue
            try:
                entries = self.cron_source.runs(job.job_id)
            except SourceError as e:
                logger.warning("cron_runs_unavailable", job_id=job.job_id, error=str(e))
                continue
            facts.extend(extract_cron_runs(job.job_id, job.name, entries))
        return jobs, facts

    def _collect_inventory(self, run: PipelineRun) -> list[SkillComponent] | None:
        if self.skill_inventory is None:
            return None
        try:
            return self.skill_inventory.list_skills()
        except SourceError as e:
            self._source_down(run, "skills", e)
            return None

    def _collect_skill_calls(
        self,
        run: PipelineRun,
        inventory: list[SkillComponent] | None,
    ) -> tuple[list[Any], bool, int]:
        if self.skill_calls is None:
            return [], False, 0
        try:
            scan = self.skill_calls.scan([s.name for s in inventory or []])
        except SourceError as e:
            self._source_down(run, "sessions", e)
            return [], False, 0
        return scan.facts, True, scan.files_scanned


__all__ = ["ProbePipeline", "PipelineRun"]
