"""File-backed sources: a JSONL log file and the session transcript tree."""

from __future__ import annotations

import json
import time
from pathlib import Path

from clawview.core.errors import SourceError, SourceUnavailableError
from clawview.core.logging import get_logger
from clawview.core.timestamps import HOUR_MS
from clawview.facts.models import LogLine
from clawview.facts.skills import build_session_skill_result_index, known_skill_map, skill_facts_from_index
from clawview.sources.protocol import SessionScan

logger = get_logger(__name__)


class JsonlLogSource:
    """Reads the newest ``limit`` entries of a JSON-lines log file."""

    def __init__(self, path: Path | str, limit: int = 2500) -> None:
        self.path = Path(path)
        self.limit = limit

    def fetch(self) -> list[LogLine]:
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as e:
            raise SourceUnavailableError(f"log file not found: {self.path}", cause=e) from e
        except OSError as e:
            raise SourceUnavailableError(f"cannot read log file {self.path}", cause=e) from e

        lines = []
        for raw in text.splitlines()[-self.limit:]:
            if not raw.strip():
                continue
            try:
                entry = json.loads(raw)
            except json.JSONDecodeError:
                # Kept as a timestamp-less line so it is counted as malformed.
                lines.append(LogLine(ts_ms=None, level="", message="", raw=raw))
                continue
            line = LogLine.from_entry(entry)
            lines.append(line if line is not None else LogLine(ts_ms=None, level="", message="", raw=raw))
        return lines


class SessionSkillSource:
    """Scans ``*.jsonl`` session transcripts for skill loads.

    Only files modified within ``lookback_ms`` are read.
    """

    def __init__(self, root: Path | str, lookback_ms: int = 48 * HOUR_MS) -> None:
        self.root = Path(root)
        self.lookback_ms = lookback_ms

    def scan(self, known_skills: list[str]) -> SessionScan:
        if not self.root.is_dir():
            raise SourceUnavailableError(f"sessions directory not found: {self.root}")

        known = known_skill_map(known_skills)
        cutoff = time.time() - self.lookback_ms / 1000
        scan = SessionScan()
        for path in sorted(self.root.rglob("*.jsonl")):
            try:
                if path.stat().st_mtime < cutoff:
                    continue
                index = build_session_skill_result_index(path, known)
            except (OSError, SourceError) as e:
                logger.warning("session_file_skipped", path=str(path), error=str(e))
                continue
            scan.files_scanned += 1
            scan.facts.extend(skill_facts_from_index(index))
        return scan


__all__ = ["JsonlLogSource", "SessionSkillSource"]
