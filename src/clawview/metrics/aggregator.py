"""
Rolling-window metric aggregation.

Turns the retained fact set plus the current probe readings into one
snapshot: a flat record of metric values (``None`` where the source is not
connected) and a ``metrics`` map of readiness-tagged ``MetricValue`` dicts
for the dashboard.

Manifesto:
    Windows are computed fresh from the retained facts on every run; there
    is no incremental counter state to drift. Two windows are reported:

    - **trailing 24h:** ``now - 24h <= ts <= now``
    - **local day:** the calendar day containing ``now`` in the configured
      time zone (default ``Asia/Tokyo``), ``start <= ts < end``

    Readiness is decided per source, never per value:

    ==================  ===========================================  =========
    Metric family       Gap when                                     otherwise
    ==================  ===========================================  =========
    API                 no API facts retained at all                 Derived
    cron runs           cron source down *and* no cron facts         Derived
    cron inventory      cron source down                             Ready
    skill inventory     skill inventory down                         Ready
    skill calls         session source down *and* no skill facts     Derived
    restarts/critical   log source down                              Derived
    fingerprints        log source down                              Derived
    freshness           no timestamped log line in the window        Derived
    uptime              control plane down or uptime unknown         Ready
    service status      never (``down`` is a real value)             Ready
    ==================  ===========================================  =========

Architecture:
    ::

        AggregationInput ──► MetricAggregator.aggregate()
          facts (retained)       │
          probe readings         ├─► api / cron / skill / restart sections
          extraction window      ├─► service status + anomaly flags
                                 ├─► P0 coverage
                                 ▼
                            snapshot dict  ──► SnapshotStore.append()

Tags:
    aggregation, rolling-window, readiness, metrics, snapshot, clawview
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from clawview.core.logging import get_logger
from clawview.core.timestamps import DAY_MS, HOUR_MS, MINUTE_MS, iso_from_ms, local_day_range_ms
from clawview.facts.classify import RESTART_SIGNATURES
from clawview.facts.extractor import ExtractionResult
from clawview.facts.models import ApiFact, CriticalErrorFact, CronRunFact, SkillFact
from clawview.metrics.coverage import P0_CORE_KEYS, p0_coverage
from clawview.metrics.readiness import MetricValue, derived, format_ratio, gap, ratio_value, ready
from clawview.metrics.status import (
    CONNECTED_MODE,
    NOT_CONNECTED_MODE,
    compute_anomaly_flags,
    compute_service_status,
)
from clawview.sources.protocol import ControlPlaneStatus, CronJob, SkillComponent

logger = get_logger(__name__)

PROBE_VERSION = "v1.2"
API_COLLECTION_MODE = "hook-cursor-log-inferred"
STORM_WINDOW_MS = 5 * MINUTE_MS


@dataclass
class AggregationInput:
    """Everything one aggregation pass reads.

    ``None`` for ``cron_jobs`` / ``skill_inventory`` means the source was
    unreachable this cycle.
    """

    now_ms: int
    control_plane: ControlPlaneStatus
    api_facts: list[ApiFact] = field(default_factory=list)
    critical_facts: list[CriticalErrorFact] = field(default_factory=list)
    cron_facts: list[CronRunFact] = field(default_factory=list)
    skill_facts: list[SkillFact] = field(default_factory=list)
    log_connected: bool = True
    extraction: ExtractionResult | None = None
    cron_jobs: list[CronJob] | None = None
    skill_inventory: list[SkillComponent] | None = None
    skill_source_connected: bool = False
    skill_files_scanned: int = 0
    api_new_since_last: int = 0


@dataclass
class GroupStats:
    provider: str
    endpoint_group: str
    calls_24h: int = 0
    calls_today: int = 0
    failures_24h: int = 0
    rate_limits_24h: int = 0

    @property
    def name(self) -> str:
        return f"{self.provider}/{self.endpoint_group}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "endpoint_group": self.endpoint_group,
            "calls_24h": self.calls_24h,
            "calls_today": self.calls_today,
            "failures_24h": self.failures_24h,
            "rate_limits_24h": self.rate_limits_24h,
        }


@dataclass
class ApiWindowStats:
    """API counters over the 24h and local-day windows."""

    total_24h: int = 0
    total_today: int = 0
    success_24h: int = 0
    failure_24h: int = 0
    rate_limited_24h: int = 0
    unknown_24h: int = 0
    recent_error_ms: int | None = None
    groups: dict[str, GroupStats] = field(default_factory=dict)

    def top_groups(self, n: int) -> list[GroupStats]:
        """Descending ``calls_24h``; ``sorted`` is stable so ties keep first-seen order."""
        active = [g for g in self.groups.values() if g.calls_24h > 0]
        return sorted(active, key=lambda g: -g.calls_24h)[:n]


def compute_api_window_stats(facts: list[ApiFact], now_ms: int, day_range: tuple[int, int]) -> ApiWindowStats:
    stats = ApiWindowStats()
    start_24h = now_ms - DAY_MS
    day_start, day_end = day_range

    for fact in sorted(facts, key=lambda f: f.ts_ms):
        in_24h = start_24h <= fact.ts_ms <= now_ms
        in_today = day_start <= fact.ts_ms < day_end
        if not in_24h and not in_today:
            continue

        key = f"{fact.provider}::{fact.endpoint_group}"
        group = stats.groups.get(key)
        if group is None:
            group = stats.groups[key] = GroupStats(fact.provider, fact.endpoint_group)

        if in_24h:
            stats.total_24h += 1
            group.calls_24h += 1
            if fact.is_failure:
                stats.failure_24h += 1
                group.failures_24h += 1
                if stats.recent_error_ms is None or fact.ts_ms > stats.recent_error_ms:
                    stats.recent_error_ms = fact.ts_ms
            else:
                stats.success_24h += 1
            if fact.is_rate_limited:
                stats.rate_limited_24h += 1
                group.rate_limits_24h += 1
            if fact.is_unknown:
                stats.unknown_24h += 1

        if in_today:
            stats.total_today += 1
            group.calls_today += 1

    return stats


def count_unexpected_restarts(facts: list[CriticalErrorFact], now_ms: int) -> tuple[int, int | None]:
    """Restart-signature facts in the last 24h, one per minute per fingerprint.

    Returns ``(count, most_recent_ts_ms)``.
    """
    start = now_ms - DAY_MS
    seen: set[tuple[int, str]] = set()
    recent = None
    for fact in facts:
        if fact.signature not in RESTART_SIGNATURES or not start <= fact.ts_ms <= now_ms:
            continue
        bucket = (fact.ts_ms // MINUTE_MS, fact.fingerprint[:80])
        if bucket in seen:
            continue
        seen.add(bucket)
        if recent is None or fact.ts_ms > recent:
            recent = fact.ts_ms
    return len(seen), recent


def count_active_critical(facts: list[CriticalErrorFact], now_ms: int, window_ms: int) -> int:
    return sum(1 for f in facts if now_ms - window_ms <= f.ts_ms <= now_ms)


def _ranked(counts: Counter, n: int) -> list[tuple[str, int]]:
    # Counter preserves insertion order, so equal counts keep first-seen order.
    return sorted(((k, v) for k, v in counts.items() if v > 0), key=lambda kv: -kv[1])[:n]


class MetricAggregator:
    """
    Builds snapshots from retained facts and probe readings.

    Args:
        timezone: IANA zone for the local-day window.
        top_n: Size of top-N group/job rankings.
        active_error_window_ms: How recent a critical error or fingerprint
            must be to count as active.
        fingerprint_top: Number of error fingerprints reported.
    """

    def __init__(
        self,
        timezone: str = "Asia/Tokyo",
        top_n: int = 5,
        active_error_window_ms: int = HOUR_MS,
        fingerprint_top: int = 10,
    ) -> None:
        self.timezone = timezone
        self.top_n = top_n
        self.active_error_window_ms = active_error_window_ms
        self.fingerprint_top = fingerprint_top

    def aggregate(self, inp: AggregationInput) -> dict[str, Any]:
        snapshot: dict[str, Any] = {"ts": iso_from_ms(inp.now_ms), "timezone": self.timezone}
        metrics: dict[str, dict[str, Any]] = {}

        def put(key: str, mv: MetricValue) -> None:
            snapshot[key] = mv.value
            metrics[key] = mv.to_dict()

        day_range = local_day_range_ms(inp.now_ms, self.timezone)

        api_mode = self._api_section(inp, day_range, put, snapshot)
        self._cron_section(inp, day_range, put, snapshot)
        skill_mode = self._skill_section(inp, day_range, put, snapshot)
        restarts, active_critical = self._log_section(inp, put, snapshot)

        cp = inp.control_plane
        status = compute_service_status(cp.reachable, restarts or 0, active_critical or 0)
        put("service_status_now", ready(status.value))
        snapshot["gateway_status"] = status.value
        snapshot["gateway_rpc_ok"] = cp.reachable
        snapshot["gateway_listener_pid"] = cp.pid
        snapshot["gateway_runtime_status"] = cp.runtime_status
        snapshot["gateway_port_status"] = cp.port_status
        snapshot["gateway_port_busy"] = cp.port_busy
        if cp.reachable and cp.uptime_sec is not None:
            snapshot["service_uptime_sec"] = cp.uptime_sec
            ratio = min(1.0, cp.uptime_sec / (DAY_MS / 1000))
            put("service_uptime_ratio_24h", ready(ratio, display=format_ratio(ratio)))
        else:
            snapshot["service_uptime_sec"] = None
            put("service_uptime_ratio_24h", gap())

        snapshot.update(compute_anomaly_flags(status, restarts, skill_mode, api_mode))

        coverage = p0_coverage(snapshot)
        put("p0_core_coverage_ratio", derived(coverage.ratio, display=format_ratio(coverage.ratio)))
        snapshot["p0_core_filled"] = coverage.filled
        snapshot["p0_core_total"] = coverage.total
        snapshot["probe_version"] = PROBE_VERSION
        snapshot["metrics"] = metrics

        logger.info(
            "snapshot_aggregated",
            status=status.value,
            p0_coverage=coverage.ratio,
            api_24h=snapshot.get("api_call_total_24h"),
            gaps=sorted(k for k in P0_CORE_KEYS if snapshot.get(k) is None),
        )
        return snapshot

    # -- sections ------------------------------------------------------------

    def _api_section(self, inp, day_range, put, snapshot) -> str:
        snapshot["api_events_retained"] = len(inp.api_facts)
        snapshot["api_events_new_since_last"] = inp.api_new_since_last
        keys = (
            "api_call_total_24h",
            "api_call_total_today",
            "api_success_total_24h",
            "api_failure_total_24h",
            "api_rate_limit_total_24h",
            "api_unknown_total_24h",
            "api_error_rate_24h",
            "api_429_ratio_24h",
            "api_unknown_rate_24h",
            "endpoint_group_top5_calls_24h",
        )

        if not inp.api_facts:
            for key in keys:
                put(key, gap())
            snapshot["api_metrics_available"] = False
            snapshot["api_recent_error_time"] = None
            snapshot["api_collection_mode"] = NOT_CONNECTED_MODE
            return NOT_CONNECTED_MODE

        stats = compute_api_window_stats(inp.api_facts, inp.now_ms, day_range)
        put("api_call_total_24h", derived(stats.total_24h))
        put("api_call_total_today", derived(stats.total_today))
        put("api_success_total_24h", derived(stats.success_24h))
        put("api_failure_total_24h", derived(stats.failure_24h))
        put("api_rate_limit_total_24h", derived(stats.rate_limited_24h))
        put("api_unknown_total_24h", derived(stats.unknown_24h))
        put("api_error_rate_24h", ratio_value(stats.failure_24h, stats.total_24h))
        put("api_429_ratio_24h", ratio_value(stats.rate_limited_24h, stats.total_24h))
        put("api_unknown_rate_24h", ratio_value(stats.unknown_24h, stats.total_24h))
        top = [g.to_dict() for g in stats.top_groups(self.top_n)]
        put(
            "endpoint_group_top5_calls_24h",
            derived(top, display=", ".join(f"{g['name']} ({g['calls_24h']})" for g in top) or "none"),
        )
        snapshot["api_metrics_available"] = True
        snapshot["api_recent_error_time"] = iso_from_ms(stats.recent_error_ms) if stats.recent_error_ms else None
        snapshot["api_collection_mode"] = API_COLLECTION_MODE
        return CONNECTED_MODE

    def _cron_section(self, inp, day_range, put, snapshot) -> None:
        if inp.cron_jobs is None:
            put("cron_jobs_total", gap())
            put("cron_jobs_enabled", gap())
        else:
            put("cron_jobs_total", ready(len(inp.cron_jobs)))
            put("cron_jobs_enabled", ready(sum(1 for j in inp.cron_jobs if j.enabled)))

        run_keys = (
            "cron_runs_24h_total",
            "cron_runs_today_total",
            "cron_max_single_job_24h",
            "cron_top_jobs_24h",
            "cron_storm_top5_5m",
            "trigger_total_24h",
            "trigger_storm_task_top5_5m",
        )
        if inp.cron_jobs is None and not inp.cron_facts:
            for key in run_keys:
                put(key, gap())
            return

        now = inp.now_ms
        day_start, day_end = day_range
        names: dict[str, str] = {}
        per_job_24h: Counter = Counter()
        per_job_5m: Counter = Counter()
        runs_today = 0
        for fact in sorted(inp.cron_facts, key=lambda f: f.ts_ms):
            names.setdefault(fact.job_id, fact.job_name)
            if now - DAY_MS <= fact.ts_ms <= now:
                per_job_24h[fact.job_id] += 1
            if now - STORM_WINDOW_MS <= fact.ts_ms <= now:
                per_job_5m[fact.job_id] += 1
            if day_start <= fact.ts_ms < day_end:
                runs_today += 1

        total_24h = sum(per_job_24h.values())
        top_24h = [
            {"job_id": job, "job_name": names[job], "runs_24h": n} for job, n in _ranked(per_job_24h, self.top_n)
        ]
        storm = [{"job_id": job, "job_name": names[job], "runs_5m": n} for job, n in _ranked(per_job_5m, self.top_n)]

        put("cron_runs_24h_total", derived(total_24h))
        put("cron_runs_today_total", derived(runs_today))
        put("cron_max_single_job_24h", derived(max(per_job_24h.values(), default=0)))
        put("cron_top_jobs_24h", derived(top_24h))
        put("cron_storm_top5_5m", derived(storm))
        put("trigger_total_24h", derived(total_24h))
        put("trigger_storm_task_top5_5m", derived(storm))

    def _skill_section(self, inp, day_range, put, snapshot) -> str:
        if inp.skill_inventory is None:
            put("skills_total", gap())
            put("healthy_skills", gap())
            snapshot["skills_components"] = []
        else:
            put("skills_total", ready(len(inp.skill_inventory)))
            put("healthy_skills", ready(sum(1 for s in inp.skill_inventory if s.healthy)))
            snapshot["skills_components"] = [s.to_dict() for s in inp.skill_inventory]

        snapshot["skill_calls_files_scanned"] = inp.skill_files_scanned
        connected = inp.skill_source_connected or bool(inp.skill_facts)
        if not connected:
            for key in ("skill_calls_total_24h", "skill_calls_total_today", "skills_top_24h"):
                put(key, gap())
            snapshot["skill_calls_retained_24h"] = None
            snapshot["skill_calls_collection_mode"] = NOT_CONNECTED_MODE
            return NOT_CONNECTED_MODE

        now = inp.now_ms
        day_start, day_end = day_range
        per_skill: Counter = Counter()
        today = 0
        for fact in sorted(inp.skill_facts, key=lambda f: f.ts_ms):
            if now - DAY_MS <= fact.ts_ms <= now:
                per_skill[fact.skill_name] += 1
            if day_start <= fact.ts_ms < day_end:
                today += 1
        total = sum(per_skill.values())
        top = [{"name": name, "calls_24h": n} for name, n in _ranked(per_skill, 10)]

        put("skill_calls_total_24h", derived(total))
        put("skill_calls_total_today", derived(today))
        put("skills_top_24h", derived(top))
        snapshot["skill_calls_retained_24h"] = total
        snapshot["skill_calls_collection_mode"] = CONNECTED_MODE
        return CONNECTED_MODE

    def _log_section(self, inp, put, snapshot) -> tuple[int | None, int | None]:
        extraction = inp.extraction
        snapshot["error_log_window_lines"] = extraction.lines_total if extraction else 0
        snapshot["malformed_log_lines"] = extraction.malformed_lines if extraction else 0

        if extraction is not None and extraction.latest_log_ts_ms is not None:
            delay = max(0, round((inp.now_ms - extraction.latest_log_ts_ms) / MINUTE_MS))
            put("data_freshness_delay_min", derived(delay, display=f"{delay} min"))
        else:
            put("data_freshness_delay_min", gap())

        if not inp.log_connected:
            for key in (
                "restart_unexpected_count_24h",
                "critical_errors_active_count",
                "errors_active_count",
                "error_fingerprint_top10_24h",
            ):
                put(key, gap())
            snapshot["restart_unexpected_recent_time"] = None
            return None, None

        restarts, recent = count_unexpected_restarts(inp.critical_facts, inp.now_ms)
        active_critical = count_active_critical(inp.critical_facts, inp.now_ms, self.active_error_window_ms)
        put("restart_unexpected_count_24h", derived(restarts))
        put("critical_errors_active_count", derived(active_critical))
        snapshot["restart_unexpected_recent_time"] = iso_from_ms(recent) if recent else None

        top = extraction.top_fingerprints(self.fingerprint_top) if extraction else []
        active = sum(
            1 for fp in top if fp.last_seen_ms is not None and inp.now_ms - fp.last_seen_ms <= self.active_error_window_ms
        )
        put("errors_active_count", derived(active))
        put("error_fingerprint_top10_24h", derived([fp.to_dict() for fp in top]))
        return restarts, active_critical


__all__ = [
    "AggregationInput",
    "ApiWindowStats",
    "GroupStats",
    "MetricAggregator",
    "compute_api_window_stats",
    "count_unexpected_restarts",
    "count_active_critical",
    "PROBE_VERSION",
]
