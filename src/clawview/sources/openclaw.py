"""
Sources backed by the ``openclaw`` command-line tool.

Every call shells out to ``openclaw ... --json`` with a timeout and parses
the JSON it prints. The CLI sometimes prefixes its JSON with banner text,
so the payload is located by scanning for the first ``{`` or ``[`` that
parses. Any failure (binary missing, non-zero exit, timeout, no JSON)
surfaces as ``SourceUnavailableError``.

All calls are read-only; nothing here changes the gateway's state.
"""

from __future__ import annotations

import json
import subprocess
from typing import Any

from clawview.core.errors import ErrorContext, ParseError, SourceUnavailableError
from clawview.core.logging import get_logger
from clawview.facts.models import LogLine
from clawview.sources.protocol import ControlPlaneStatus, CronJob, SkillComponent

logger = get_logger(__name__)


def extract_json_payload(text: str) -> Any:
    """Parse the first JSON object or array embedded in ``text``."""
    text = text or ""
    decoder = json.JSONDecoder()
    for i, ch in enumerate(text):
        if ch not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text[i:])
        except json.JSONDecodeError:
            continue
        return value
    raise ParseError("no JSON payload in command output")


def parse_elapsed_to_sec(text: str) -> int | None:
    """Parse ``ps`` elapsed time: plain seconds or ``[[dd-]hh:]mm:ss``."""
    t = (text or "").strip()
    if not t:
        return None
    if t.isdigit():
        return int(t)

    days = 0
    rest = t
    if "-" in t:
        day_part, rest = t.split("-", 1)
        if not day_part.isdigit():
            return None
        days = int(day_part)

    try:
        parts = [int(p) for p in rest.split(":")]
    except ValueError:
        return None
    if len(parts) == 3:
        hh, mm, ss = parts
    elif len(parts) == 2:
        hh, (mm, ss) = 0, parts
    else:
        return None
    return days * 86400 + hh * 3600 + mm * 60 + ss


class OpenclawCli:
    """Thin runner for ``openclaw`` subcommands."""

    def __init__(self, binary: str = "openclaw", timeout_sec: float = 30.0) -> None:
        self.binary = binary
        self.timeout_sec = timeout_sec

    def run(self, *args: str) -> str:
        cmd = [self.binary, *args]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise SourceUnavailableError(
                f"{self.binary} {' '.join(args)} failed: {e}",
                cause=e,
                context=ErrorContext(source_name=self.binary),
            ) from e
        if proc.returncode != 0:
            raise SourceUnavailableError(
                f"{self.binary} {' '.join(args)} exited {proc.returncode}",
                context=ErrorContext(source_name=self.binary, metadata={"stderr": proc.stderr[-500:]}),
            )
        return proc.stdout

    def run_json(self, *args: str) -> Any:
        output = self.run(*args)
        try:
            return extract_json_payload(output)
        except ParseError as e:
            raise SourceUnavailableError(f"{self.binary} {' '.join(args)} printed no JSON", cause=e) from e

    def run_json_lines(self, *args: str) -> list[Any]:
        """One JSON value per output line; non-JSON lines are skipped."""
        rows = []
        for line in self.run(*args).splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return rows


class OpenclawLogSource:
    """``openclaw logs --json`` tail as ``LogLine`` records."""

    def __init__(self, cli: OpenclawCli, limit: int = 2500, max_bytes: int = 600_000) -> None:
        self.cli = cli
        self.limit = limit
        self.max_bytes = max_bytes

    def fetch(self) -> list[LogLine]:
        rows = self.cli.run_json_lines("logs", "--json", "--limit", str(self.limit), "--max-bytes", str(self.max_bytes))
        lines = []
        for row in rows:
            if not isinstance(row, dict) or row.get("type", "log") != "log":
                continue
            line = LogLine.from_entry(row)
            if line is not None:
                lines.append(line)
        return lines


class OpenclawGatewayProbe:
    """``openclaw gateway status --json`` plus ``ps`` for listener uptime."""

    def __init__(self, cli: OpenclawCli) -> None:
        self.cli = cli

    def probe(self) -> ControlPlaneStatus:
        try:
            status = self.cli.run_json("gateway", "status", "--json")
        except SourceUnavailableError as e:
            logger.warning("control_plane_unreachable", error=e.message)
            return ControlPlaneStatus.unreachable()
        if not isinstance(status, dict):
            return ControlPlaneStatus.unreachable()

        port = status.get("port") or {}
        listeners = port.get("listeners") if isinstance(port, dict) else None
        pid = None
        if isinstance(listeners, list) and listeners and isinstance(listeners[0], dict):
            try:
                pid = int(listeners[0].get("pid") or 0) or None
            except (TypeError, ValueError):
                pid = None
        runtime = (status.get("service") or {}).get("runtime") or {}

        return ControlPlaneStatus(
            reachable=bool((status.get("rpc") or {}).get("ok")),
            pid=pid,
            uptime_sec=self.pid_elapsed_seconds(pid) if pid else None,
            runtime_status=runtime.get("status") if isinstance(runtime, dict) else None,
            port_status=port.get("status") if isinstance(port, dict) else None,
        )

    def pid_elapsed_seconds(self, pid: int) -> int | None:
        # Linux understands etimes; macOS only etime.
        for keyword in ("etimes=", "etime="):
            try:
                proc = subprocess.run(
                    ["ps", "-p", str(pid), "-o", keyword],
                    capture_output=True,
                    text=True,
                    timeout=self.cli.timeout_sec,
                )
            except (subprocess.TimeoutExpired, OSError):
                continue
            if proc.returncode != 0:
                continue
            seconds = parse_elapsed_to_sec(proc.stdout)
            if seconds is not None:
                return seconds
        return None


class OpenclawCronSource:
    def __init__(self, cli: OpenclawCli, run_limit: int = 200) -> None:
        self.cli = cli
        self.run_limit = run_limit

    def list_jobs(self) -> list[CronJob]:
        payload = self.cli.run_json("cron", "list", "--all", "--json")
        jobs = payload.get("jobs") if isinstance(payload, dict) else None
        result = []
        for job in jobs if isinstance(jobs, list) else []:
            if not isinstance(job, dict) or not job.get("id"):
                continue
            job_id = str(job["id"])
            result.append(CronJob(job_id=job_id, name=str(job.get("name") or job_id), enabled=job.get("enabled") is not False))
        return result

    def runs(self, job_id: str) -> list[dict[str, Any]]:
        payload = self.cli.run_json("cron", "runs", "--id", job_id, "--limit", str(self.run_limit))
        entries = payload.get("entries") if isinstance(payload, dict) else None
        return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []


class OpenclawSkillInventory:
    def __init__(self, cli: OpenclawCli) -> None:
        self.cli = cli

    def list_skills(self) -> list[SkillComponent]:
        payload = self.cli.run_json("skills", "list", "--json")
        items = payload.get("skills") if isinstance(payload, dict) else None
        return [
            SkillComponent(
                name=str(item.get("name") or "--"),
                source=str(item.get("source") or "unknown"),
                eligible=bool(item.get("eligible")),
                disabled=bool(item.get("disabled")),
            )
            for item in (items if isinstance(items, list) else [])
            if isinstance(item, dict)
        ]


__all__ = [
    "extract_json_payload",
    "parse_elapsed_to_sec",
    "OpenclawCli",
    "OpenclawLogSource",
    "OpenclawGatewayProbe",
    "OpenclawCronSource",
    "OpenclawSkillInventory",
]
