"""Append-only JSONL fact logs, one file per fact category."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from clawview.core.storage import StateStorage, append_jsonl, read_jsonl, write_jsonl


class FactLog:
    """``<category>-events.jsonl`` files over a ``StateStorage``."""

    def __init__(self, storage: StateStorage) -> None:
        self.storage = storage

    @staticmethod
    def file_name(category: str) -> str:
        return f"{category}-events.jsonl"

    def read(self, category: str) -> list[dict[str, Any]]:
        return read_jsonl(self.storage, self.file_name(category))

    def append(self, category: str, records: Iterable[dict[str, Any]]) -> int:
        return append_jsonl(self.storage, self.file_name(category), records)

    def replace(self, category: str, records: Iterable[dict[str, Any]]) -> None:
        write_jsonl(self.storage, self.file_name(category), records)


__all__ = ["FactLog"]
