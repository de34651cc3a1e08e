"""
State storage for cursors, fact logs, snapshots and the pipeline lock.

Every piece of shared state lives in a small named file under the probe's
data directory. The extraction pipeline and the outbound sync may run as
separate, overlapping processes; they share nothing but these files, so
every whole-file write goes through ``write_atomic`` (temp file, fsync,
``os.replace``). A reader always sees the fully-old or the fully-new file.

Manifesto:
    Components never touch ``open()`` directly. They are handed a
    ``StateStorage`` so unit tests run against ``MemoryStateStorage`` and
    production runs against ``FileStateStorage`` with the same code.

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │                 StateStorage (Protocol)                     │
        │  read_text / write_atomic / create_exclusive               │
        │  delete / list_names                                        │
        └────────────────────────────────────────────────────────────┘
                 ▲                               ▲
        FileStateStorage(root)           MemoryStateStorage()
        tmp + fsync + os.replace         dict[str, str]

        read_json / write_json / read_jsonl / write_jsonl / append_jsonl
        (helpers over any StateStorage)

Tags:
    storage, atomic-write, jsonl, state-files, clawview
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from clawview.core.errors import StorageError
from clawview.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class StateStorage(Protocol):
    """Named text blobs with atomic replacement."""

    def read_text(self, name: str) -> str | None:
        """Return the content of ``name`` or ``None`` if it does not exist."""
        ...

    def write_atomic(self, name: str, text: str) -> None:
        """Replace ``name`` so readers see either the old or the new content."""
        ...

    def create_exclusive(self, name: str, text: str) -> bool:
        """Create ``name`` only if it does not exist. Returns False if it did."""
        ...

    def delete(self, name: str) -> bool:
        """Remove ``name``. Returns True if it existed."""
        ...

    def list_names(self) -> list[str]:
        """All stored names, sorted."""
        ...


class FileStateStorage:
    """StateStorage backed by a directory on the local filesystem."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        if "/" in name or "\\" in name or name in ("", ".", ".."):
            raise StorageError(f"invalid state file name: {name!r}")
        return self.root / name

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def read_text(self, name: str) -> str | None:
        path = self._path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot read {path}", cause=e) from e

    def write_atomic(self, name: str, text: str) -> None:
        path = self._path(name)
        self.ensure_root()
        fd, tmp = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise StorageError(f"cannot replace {path}", cause=e) from e

    def create_exclusive(self, name: str, text: str) -> bool:
        # Content is written to a temp file first and hard-linked into place,
        # so ``name`` never exists without its full content.
        path = self._path(name)
        self.ensure_root()
        fd, tmp = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.link(tmp, path)
        except FileExistsError:
            return False
        except OSError as e:
            raise StorageError(f"cannot create {path}", cause=e) from e
        finally:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
        return True

    def delete(self, name: str) -> bool:
        path = self._path(name)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"cannot delete {path}", cause=e) from e

    def list_names(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def __repr__(self) -> str:
        return f"FileStateStorage({str(self.root)!r})"


class MemoryStateStorage:
    """In-memory StateStorage for tests and dry runs."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self._lock = threading.Lock()

    def read_text(self, name: str) -> str | None:
        with self._lock:
            return self.files.get(name)

    def write_atomic(self, name: str, text: str) -> None:
        with self._lock:
            self.files[name] = text

    def create_exclusive(self, name: str, text: str) -> bool:
        with self._lock:
            if name in self.files:
                return False
            self.files[name] = text
            return True

    def delete(self, name: str) -> bool:
        with self._lock:
            return self.files.pop(name, None) is not None

    def list_names(self) -> list[str]:
        with self._lock:
            return sorted(self.files)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def read_json(storage: StateStorage, name: str, default: Any = None) -> Any:
    """Parse a single-object JSON file; ``default`` when missing or corrupt."""
    text = storage.read_text(name)
    if text is None or not text.strip():
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("state_file_corrupt", file=name)
        return default


def write_json(storage: StateStorage, name: str, value: Any) -> None:
    """Atomically replace ``name`` with pretty-printed JSON."""
    storage.write_atomic(name, json.dumps(value, indent=2, ensure_ascii=False) + "\n")


def read_jsonl(storage: StateStorage, name: str) -> list[dict[str, Any]]:
    """Read one JSON object per line, skipping blank and malformed lines."""
    text = storage.read_text(name)
    if not text:
        return []
    rows: list[dict[str, Any]] = []
    malformed = 0
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            malformed += 1
            continue
        if isinstance(row, dict):
            rows.append(row)
        else:
            malformed += 1
    if malformed:
        logger.warning("jsonl_lines_skipped", file=name, malformed=malformed)
    return rows


def _dump_lines(rows: Iterable[dict[str, Any]]) -> str:
    return "".join(json.dumps(row, ensure_ascii=False, separators=(",", ":")) + "\n" for row in rows)


def append_jsonl(storage: StateStorage, name: str, rows: Iterable[dict[str, Any]]) -> int:
    """Append rows to a JSONL log. Returns the number of rows written.

    The append is a read-then-replace, so a concurrent reader never sees a
    half-written line. Each log has a single writer (the locked pipeline).
    """
    rows = list(rows)
    if rows:
        existing = storage.read_text(name) or ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        storage.write_atomic(name, existing + _dump_lines(rows))
    return len(rows)


def write_jsonl(storage: StateStorage, name: str, rows: Iterable[dict[str, Any]]) -> None:
    """Atomically replace a JSONL log with ``rows``."""
    storage.write_atomic(name, _dump_lines(rows))


__all__ = [
    "StateStorage",
    "FileStateStorage",
    "MemoryStateStorage",
    "read_json",
    "write_json",
    "read_jsonl",
    "append_jsonl",
    "write_jsonl",
]
