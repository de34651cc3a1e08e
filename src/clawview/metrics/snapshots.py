"""Append-only, day-partitioned snapshot history."""

from __future__ import annotations

import json
import re
from typing import Any

from clawview.core.storage import StateStorage, append_jsonl, read_jsonl
from clawview.core.timestamps import day_tag, to_ms

_SNAPSHOT_FILE = re.compile(r"^snapshots-(\d{4}-\d{2}-\d{2})\.jsonl$")


def snapshot_bytes(snapshot: dict[str, Any]) -> int:
    """UTF-8 size of the compact JSON form, excluding the size field itself."""
    body = {k: v for k, v in snapshot.items() if k != "snapshot_bytes"}
    return len(json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


class SnapshotStore:
    """``snapshots-YYYY-MM-DD.jsonl`` files, partitioned by the snapshot's UTC day."""

    def __init__(self, storage: StateStorage) -> None:
        self.storage = storage

    @staticmethod
    def file_name(day: str) -> str:
        return f"snapshots-{day}.jsonl"

    def append(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        """Stamp ``snapshot_bytes`` and append. Returns the stored row."""
        ts = to_ms(snapshot.get("ts"))
        if ts is None:
            raise ValueError("snapshot has no parseable ts")
        row = dict(snapshot)
        row["snapshot_bytes"] = snapshot_bytes(row)
        append_jsonl(self.storage, self.file_name(day_tag(ts)), [row])
        return row

    def days(self) -> list[str]:
        return [m.group(1) for name in self.storage.list_names() if (m := _SNAPSHOT_FILE.match(name))]

    def read_day(self, day: str) -> list[dict[str, Any]]:
        return read_jsonl(self.storage, self.file_name(day))

    def read_all(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for day in self.days():
            rows.extend(self.read_day(day))
        return rows

    def latest(self, day: str | None = None) -> dict[str, Any] | None:
        """Last row of ``day`` (default: the newest day on disk)."""
        days = [day] if day else self.days()[-1:]
        for d in days:
            rows = self.read_day(d)
            if rows:
                return rows[-1]
        return None


__all__ = ["SnapshotStore", "snapshot_bytes"]
