"""Tests for ``clawview.metrics.aggregator``: windows, readiness, status."""

from __future__ import annotations

import pytest

from clawview.facts.extractor import ExtractionResult
from clawview.facts.models import ErrorFingerprint
from clawview.metrics.aggregator import AggregationInput, MetricAggregator, count_unexpected_restarts
from clawview.metrics.readiness import GAP_DISPLAY, GAP_NOTE
from clawview.sources.protocol import ControlPlaneStatus, CronJob, SkillComponent

MINUTE = 60_000
HOUR = 60 * MINUTE

REACHABLE = ControlPlaneStatus(reachable=True, pid=100, uptime_sec=12 * 3600, runtime_status="running")


@pytest.fixture
def aggregator() -> MetricAggregator:
    return MetricAggregator(timezone="Asia/Tokyo", top_n=5)


def build(aggregator, now_ms, **kwargs):
    kwargs.setdefault("control_plane", REACHABLE)
    return aggregator.aggregate(AggregationInput(now_ms=now_ms, **kwargs))


class TestGapVersusZero:
    def test_no_api_facts_is_gap(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms)

        metric = snapshot["metrics"]["api_error_rate_24h"]
        assert metric["readiness"] == "Gap"
        assert metric["value"] is None
        assert metric["display"] == GAP_DISPLAY
        assert metric["note"] == GAP_NOTE
        assert snapshot["api_error_rate_24h"] is None
        assert snapshot["api_call_total_24h"] is None

    def test_facts_without_failures_is_derived_zero(self, aggregator, now_ms, make_api_fact):
        facts = [make_api_fact(now_ms - HOUR), make_api_fact(now_ms - 2 * HOUR)]

        snapshot = build(aggregator, now_ms, api_facts=facts)

        metric = snapshot["metrics"]["api_error_rate_24h"]
        assert metric["readiness"] == "Derived"
        assert metric["value"] == 0
        assert "note" not in metric

    def test_facts_outside_window_give_derived_zero_totals(self, aggregator, now_ms, make_api_fact):
        snapshot = build(aggregator, now_ms, api_facts=[make_api_fact(now_ms - 30 * HOUR)])

        assert snapshot["metrics"]["api_call_total_24h"]["readiness"] == "Derived"
        assert snapshot["api_call_total_24h"] == 0
        assert snapshot["api_error_rate_24h"] == 0


class TestApiWindows:
    def test_lark_scenario(self, aggregator, now_ms, make_api_fact, make_unknown_api_fact):
        facts = [
            make_api_fact(now_ms - 1 * HOUR),
            make_api_fact(now_ms - 2 * HOUR),
            make_api_fact(now_ms - 3 * HOUR),
            make_unknown_api_fact(now_ms - 4 * HOUR),
        ]

        snapshot = build(aggregator, now_ms, api_facts=facts)

        assert snapshot["api_call_total_24h"] == 4
        assert snapshot["api_unknown_rate_24h"] == 0.25
        top = snapshot["endpoint_group_top5_calls_24h"]
        assert top[0]["name"] == "lark/message_send"
        assert top[0]["calls_24h"] == 3
        assert top[1]["name"] == "unknown/unknown"

    def test_error_and_429_ratios(self, aggregator, now_ms, make_api_fact):
        facts = [
            make_api_fact(now_ms - MINUTE, status_code=200),
            make_api_fact(now_ms - 2 * MINUTE, status_code=500),
            make_api_fact(now_ms - 3 * MINUTE, status_code=429, is_rate_limited=True),
            make_api_fact(now_ms - 4 * MINUTE, status_code=None),
        ]

        snapshot = build(aggregator, now_ms, api_facts=facts)

        assert snapshot["api_failure_total_24h"] == 3
        assert snapshot["api_success_total_24h"] == 1
        assert snapshot["api_error_rate_24h"] == 0.75
        assert snapshot["api_429_ratio_24h"] == 0.25
        assert snapshot["metrics"]["api_error_rate_24h"]["display"] == "75.0%"
        assert snapshot["api_recent_error_time"] == "2026-03-01T02:58:00.000Z"

    def test_local_day_differs_from_trailing_24h(self, aggregator, now_ms, make_api_fact):
        # now is 12:00 in Tokyo; 13h ago is 23:00 the previous local day
        facts = [make_api_fact(now_ms - HOUR), make_api_fact(now_ms - 13 * HOUR)]

        snapshot = build(aggregator, now_ms, api_facts=facts)

        assert snapshot["api_call_total_24h"] == 2
        assert snapshot["api_call_total_today"] == 1

    def test_top_n_ties_keep_first_seen_order(self, now_ms, make_api_fact):
        facts = [
            make_api_fact(now_ms - 3 * HOUR, provider="discord", endpoint_group="message_send"),
            make_api_fact(now_ms - 2 * HOUR, provider="lark", endpoint_group="auth"),
            make_api_fact(now_ms - 1 * HOUR, provider="github", endpoint_group="webhooks"),
        ]

        snapshot = build(MetricAggregator(top_n=2), now_ms, api_facts=facts)

        names = [g["name"] for g in snapshot["endpoint_group_top5_calls_24h"]]
        assert names == ["discord/message_send", "lark/auth"]

    def test_collection_mode(self, aggregator, now_ms, make_api_fact):
        assert build(aggregator, now_ms)["api_collection_mode"] == "fact-only-not-connected"
        assert build(aggregator, now_ms, api_facts=[make_api_fact()])["api_collection_mode"] == "hook-cursor-log-inferred"


class TestServiceStatus:
    def test_panic_with_zero_restarts_is_degraded(self, aggregator, now_ms, make_critical_fact):
        snapshot = build(aggregator, now_ms, critical_facts=[make_critical_fact(now_ms - 5 * MINUTE)])

        assert snapshot["restart_unexpected_count_24h"] == 0
        assert snapshot["critical_errors_active_count"] == 1
        assert snapshot["service_status_now"] == "degraded"
        assert snapshot["openclaw_system_anomaly"] is False

    def test_old_critical_error_is_not_active(self, aggregator, now_ms, make_critical_fact):
        snapshot = build(aggregator, now_ms, critical_facts=[make_critical_fact(now_ms - 3 * HOUR)])
        assert snapshot["critical_errors_active_count"] == 0
        assert snapshot["service_status_now"] == "running"

    def test_unexpected_restart_is_degraded_and_anomalous(self, aggregator, now_ms, make_critical_fact):
        fact = make_critical_fact(now_ms - 5 * HOUR, signature="unexpected_restart", fingerprint="gateway restarted unexpectedly")

        snapshot = build(aggregator, now_ms, critical_facts=[fact])

        assert snapshot["restart_unexpected_count_24h"] == 1
        assert snapshot["service_status_now"] == "degraded"
        assert snapshot["openclaw_system_anomaly"] is True

    def test_unreachable_is_down_whatever_else(self, aggregator, now_ms, make_critical_fact):
        snapshot = build(
            aggregator,
            now_ms,
            control_plane=ControlPlaneStatus.unreachable(),
            critical_facts=[make_critical_fact(now_ms - MINUTE)],
        )

        assert snapshot["service_status_now"] == "down"
        assert snapshot["metrics"]["service_status_now"]["readiness"] == "Ready"
        assert snapshot["service_uptime_ratio_24h"] is None
        assert snapshot["openclaw_system_anomaly"] is True

    def test_running_uptime_ratio(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms)
        assert snapshot["service_status_now"] == "running"
        assert snapshot["service_uptime_ratio_24h"] == 0.5
        assert snapshot["metrics"]["service_uptime_ratio_24h"]["readiness"] == "Ready"

    def test_log_source_down_gaps_log_metrics(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms, log_connected=False)

        for key in ("restart_unexpected_count_24h", "critical_errors_active_count", "error_fingerprint_top10_24h"):
            assert snapshot["metrics"][key]["readiness"] == "Gap"
        assert snapshot["service_status_now"] == "running"


class TestRestartCounting:
    def test_same_minute_same_fingerprint_counted_once(self, now_ms, make_critical_fact):
        base = now_ms - HOUR - (now_ms % MINUTE)
        facts = [
            make_critical_fact(base + 1_000, signature="startup_failure", fingerprint="gateway failed to start"),
            make_critical_fact(base + 2_000, signature="startup_failure", fingerprint="gateway failed to start"),
            make_critical_fact(base + 3 * MINUTE, signature="startup_failure", fingerprint="gateway failed to start"),
            make_critical_fact(now_ms - 30 * HOUR, signature="startup_failure"),
            make_critical_fact(base, signature="panic"),
        ]

        count, recent = count_unexpected_restarts(facts, now_ms)

        assert count == 2
        assert recent == base + 3 * MINUTE


class TestCronAndSkills:
    def test_cron_source_down_is_gap(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms, cron_jobs=None)
        assert snapshot["metrics"]["cron_jobs_total"]["readiness"] == "Gap"
        assert snapshot["metrics"]["trigger_total_24h"]["readiness"] == "Gap"

    def test_cron_connected_without_runs_is_zero(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms, cron_jobs=[CronJob("a", "A"), CronJob("b", "B", enabled=False)])

        assert snapshot["cron_jobs_total"] == 2
        assert snapshot["cron_jobs_enabled"] == 1
        assert snapshot["metrics"]["cron_jobs_total"]["readiness"] == "Ready"
        assert snapshot["trigger_total_24h"] == 0
        assert snapshot["metrics"]["trigger_total_24h"]["readiness"] == "Derived"

    def test_cron_runs_and_storm(self, aggregator, now_ms, make_cron_fact):
        facts = [
            make_cron_fact(now_ms - MINUTE, "storm"),
            make_cron_fact(now_ms - 2 * MINUTE, "storm"),
            make_cron_fact(now_ms - 3 * MINUTE, "storm"),
            make_cron_fact(now_ms - 2 * HOUR, "daily"),
        ]

        snapshot = build(aggregator, now_ms, cron_jobs=[CronJob("storm", "storm"), CronJob("daily", "daily")], cron_facts=facts)

        assert snapshot["cron_runs_24h_total"] == 4
        assert snapshot["cron_max_single_job_24h"] == 3
        assert snapshot["trigger_storm_task_top5_5m"] == [{"job_id": "storm", "job_name": "storm", "runs_5m": 3}]
        assert [j["job_id"] for j in snapshot["cron_top_jobs_24h"]] == ["storm", "daily"]

    def test_skill_inventory_and_calls(self, aggregator, now_ms, make_skill_fact):
        inventory = [SkillComponent("weather", eligible=True), SkillComponent("github", eligible=True, disabled=True)]
        facts = [make_skill_fact(now_ms - HOUR), make_skill_fact(now_ms - 2 * HOUR), make_skill_fact(now_ms - HOUR, "github")]

        snapshot = build(
            aggregator, now_ms, skill_inventory=inventory, skill_facts=facts, skill_source_connected=True
        )

        assert snapshot["skills_total"] == 2
        assert snapshot["healthy_skills"] == 1
        assert snapshot["skill_calls_total_24h"] == 3
        assert snapshot["skills_top_24h"][0] == {"name": "weather", "calls_24h": 2}
        assert snapshot["skill_calls_collection_mode"] == "fact-event-structured"

    def test_skill_source_down_flags_pipeline_anomaly(self, aggregator, now_ms, make_api_fact):
        snapshot = build(aggregator, now_ms, api_facts=[make_api_fact()], skill_inventory=None)

        assert snapshot["metrics"]["skills_total"]["readiness"] == "Gap"
        assert snapshot["metrics"]["skill_calls_total_24h"]["readiness"] == "Gap"
        assert snapshot["clawview_pipeline_anomaly"] is True


class TestFreshnessAndCoverage:
    def test_freshness_from_latest_log_line(self, aggregator, now_ms):
        extraction = ExtractionResult(latest_log_ts_ms=now_ms - 3 * MINUTE, lines_total=10)
        snapshot = build(aggregator, now_ms, extraction=extraction)
        assert snapshot["data_freshness_delay_min"] == 3
        assert snapshot["error_log_window_lines"] == 10

    def test_fingerprint_top_and_active_count(self, aggregator, now_ms):
        fresh = ErrorFingerprint("fresh", count=3, first_seen_ms=now_ms - MINUTE, last_seen_ms=now_ms - MINUTE)
        stale = ErrorFingerprint("stale", count=1, first_seen_ms=now_ms - 5 * HOUR, last_seen_ms=now_ms - 5 * HOUR)
        extraction = ExtractionResult(fingerprints={"stale": stale, "fresh": fresh}, latest_log_ts_ms=now_ms)

        snapshot = build(aggregator, now_ms, extraction=extraction)

        assert [fp["fingerprint"] for fp in snapshot["error_fingerprint_top10_24h"]] == ["fresh", "stale"]
        assert snapshot["errors_active_count"] == 1

    def test_full_coverage(self, aggregator, now_ms, make_api_fact):
        snapshot = build(
            aggregator,
            now_ms,
            api_facts=[make_api_fact()],
            cron_jobs=[],
            extraction=ExtractionResult(latest_log_ts_ms=now_ms),
        )
        assert snapshot["p0_core_coverage_ratio"] == 1.0
        assert snapshot["p0_core_filled"] == snapshot["p0_core_total"] == 11

    def test_minimal_coverage(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms, control_plane=ControlPlaneStatus.unreachable(), log_connected=False)
        assert snapshot["p0_core_filled"] == 1
        assert snapshot["p0_core_coverage_ratio"] == 0.0909

    def test_every_metric_has_readiness(self, aggregator, now_ms):
        snapshot = build(aggregator, now_ms)
        assert snapshot["metrics"]
        for key, metric in snapshot["metrics"].items():
            assert metric["readiness"] in {"Ready", "Derived", "Gap"}, key
            if metric["readiness"] == "Gap":
                assert metric["value"] is None and snapshot[key] is None
