"""Tests for the ``clawview`` Typer CLI."""

from __future__ import annotations

import json
import subprocess
import time
from datetime import UTC, datetime

import pytest
from typer.testing import CliRunner

from clawview import __version__
from clawview.cli.app import app

runner = CliRunner()

LARK_SEND = "POST https://open.larksuite.com/open-apis/im/v1/messages/send status code 200"


def parse_json(output: str) -> dict:
    """Extract the pretty-printed JSON object from command output."""
    lines = output.splitlines()
    start = lines.index("{")
    end = len(lines) - lines[::-1].index("}")
    return json.loads("\n".join(lines[start:end]))


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "probe-data"


@pytest.fixture(autouse=True)
def _offline_env(monkeypatch, tmp_path):
    """No openclaw binary, empty sessions directory, no sink."""
    sessions = tmp_path / "agents"
    sessions.mkdir()
    monkeypatch.setenv("CLAWVIEW_OPENCLAW_BIN", str(tmp_path / "missing-openclaw"))
    monkeypatch.setenv("CLAWVIEW_SESSIONS_DIR", str(sessions))
    monkeypatch.setenv("CLAWVIEW_JSON_LOGS", "false")


@pytest.fixture
def log_file(tmp_path):
    now = time.time()
    path = tmp_path / "gateway.jsonl"
    entries = [
        {"time": datetime.fromtimestamp(now - 7200, tz=UTC).isoformat(), "level": "info", "message": LARK_SEND},
        {"time": datetime.fromtimestamp(now - 3600, tz=UTC).isoformat(), "level": "info", "message": LARK_SEND},
    ]
    path.write_text("\n".join(json.dumps(e) for e in entries) + "\n", encoding="utf-8")
    return path


def probe_once(data_dir, log_file, *extra: str):
    return runner.invoke(
        app,
        ["probe", "once", "--data-dir", str(data_dir), "--log-file", str(log_file), "--no-sync", *extra],
    )


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"clawview-probe {__version__}" in result.stdout

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "probe" in result.output
        assert "trigger" in result.output

    def test_invalid_configuration_fails(self, monkeypatch, data_dir):
        monkeypatch.setenv("CLAWVIEW_TIMEZONE", "Mars/Olympus_Mons")

        result = runner.invoke(app, ["probe", "status", "--data-dir", str(data_dir)])

        assert result.exit_code == 1


class TestProbeOnce:
    def test_json_snapshot(self, data_dir, log_file):
        result = probe_once(data_dir, log_file, "--json")

        assert result.exit_code == 0, result.output
        snapshot = parse_json(result.stdout)
        assert snapshot["api_call_total_24h"] == 2
        assert snapshot["service_status_now"] == "down"
        assert snapshot["metrics"]["cron_jobs_total"]["readiness"] == "Gap"
        assert list(data_dir.glob("snapshots-*.jsonl"))
        assert (data_dir / "api-events.jsonl").exists()
        assert not (data_dir / "probe.lock").exists()

    def test_table_output(self, data_dir, log_file):
        result = probe_once(data_dir, log_file)

        assert result.exit_code == 0, result.output
        assert "Snapshot" in result.stdout
        assert "Sources down" in result.stdout

    def test_data_dir_from_environment(self, monkeypatch, data_dir, log_file):
        monkeypatch.setenv("CLAWVIEW_DATA_DIR", str(data_dir))

        result = runner.invoke(app, ["probe", "once", "--log-file", str(log_file), "--no-sync"])

        assert result.exit_code == 0, result.output
        assert list(data_dir.glob("snapshots-*.jsonl"))


class TestProbeReports:
    def test_status_without_snapshots_fails(self, data_dir):
        result = runner.invoke(app, ["probe", "status", "--data-dir", str(data_dir)])
        assert result.exit_code == 1

    def test_status_after_run(self, data_dir, log_file):
        probe_once(data_dir, log_file)

        result = runner.invoke(app, ["probe", "status", "--data-dir", str(data_dir), "--json"])

        assert result.exit_code == 0, result.output
        assert parse_json(result.stdout)["api_call_total_24h"] == 2

    def test_summarize(self, data_dir, log_file):
        probe_once(data_dir, log_file)
        day = datetime.now(tz=UTC).strftime("%Y-%m-%d")

        result = runner.invoke(app, ["probe", "summarize", "--data-dir", str(data_dir), "--day", day, "--json"])

        assert result.exit_code == 0, result.output
        report = parse_json(result.stdout)
        assert report["samples"] == 1
        assert report["snapshot_bytes_avg"] > 0
        assert (data_dir / f"report-{day}.json").exists()

    def test_p0_status(self, data_dir, log_file):
        assert runner.invoke(app, ["probe", "p0-status", "--data-dir", str(data_dir)]).exit_code == 1

        probe_once(data_dir, log_file)
        result = runner.invoke(app, ["probe", "p0-status", "--data-dir", str(data_dir), "--json"])

        assert result.exit_code == 0, result.output
        report = parse_json(result.stdout)
        assert report["ok"] is True
        assert report["p0_core_total"] == 11
        assert (data_dir / "p0-core-live-status.json").exists()


class FakePopen:
    """Records detached launches instead of spawning processes."""

    calls: list[tuple[list[str], dict]] = []

    def __init__(self, args, **kwargs) -> None:
        FakePopen.calls.append((args, kwargs))
        self.pid = 4242


@pytest.fixture
def popen(monkeypatch):
    FakePopen.calls = []
    monkeypatch.setattr("clawview.execution.trigger.subprocess.Popen", FakePopen)
    return FakePopen


class TestTrigger:
    def test_unsupported_event_ignored(self, data_dir, popen):
        result = runner.invoke(app, ["trigger", "fire", "message", "received", "--data-dir", str(data_dir)])

        assert result.exit_code == 0, result.output
        assert "ignored" in result.stdout
        assert not (data_dir / "hook-trigger-state.json").exists()
        assert popen.calls == []

    def test_disabled(self, monkeypatch, data_dir, popen):
        monkeypatch.setenv("CLAWVIEW_PROBE_ENABLED", "false")

        result = runner.invoke(app, ["trigger", "fire", "message", "sent", "--data-dir", str(data_dir)])

        assert "disabled" in result.stdout
        assert popen.calls == []

    def test_accept_launches_detached_run_then_debounce(self, data_dir, popen):
        first = runner.invoke(app, ["trigger", "fire", "gateway", "startup", "--data-dir", str(data_dir)])
        second = runner.invoke(app, ["trigger", "fire", "message", "sent", "--data-dir", str(data_dir)])

        assert first.exit_code == 0, first.output
        assert "accepted" in first.stdout
        assert "4242" in first.stdout
        assert "debounced" in second.stdout

        assert len(popen.calls) == 1
        args, kwargs = popen.calls[0]
        assert args[-5:] == ["clawview", "probe", "once", "--data-dir", str(data_dir)]
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] == kwargs["stdout"] == kwargs["stderr"] == subprocess.DEVNULL

    def test_accept_does_not_run_pipeline_in_process(self, monkeypatch, data_dir, popen):
        from clawview.execution.pipeline import ProbePipeline

        def slow_pipeline(*args, **kwargs):
            time.sleep(3)
            raise AssertionError("pipeline must run in the detached child")

        monkeypatch.setattr(ProbePipeline, "from_settings", classmethod(slow_pipeline))

        started = time.monotonic()
        result = runner.invoke(app, ["trigger", "fire", "message", "sent", "--data-dir", str(data_dir)])

        assert result.exit_code == 0, result.output
        assert "accepted message:sent" in result.stdout
        assert time.monotonic() - started < 2
        assert not list(data_dir.glob("snapshots-*.jsonl"))

    def test_spawn_failure_exits_non_zero(self, monkeypatch, data_dir):
        def broken(*args, **kwargs):
            raise FileNotFoundError("python")

        monkeypatch.setattr("clawview.execution.trigger.subprocess.Popen", broken)

        result = runner.invoke(app, ["trigger", "fire", "message", "sent", "--data-dir", str(data_dir)])

        assert result.exit_code == 1
        assert not result.stdout.startswith("accepted")


class TestSync:
    def test_skips_without_url(self, data_dir):
        result = runner.invoke(app, ["sync", "once", "--data-dir", str(data_dir), "--json"])

        assert result.exit_code == 0, result.output
        payload = parse_json(result.stdout)
        assert payload["skipped"] is True
        assert payload["reason"] == "sync url not set"
