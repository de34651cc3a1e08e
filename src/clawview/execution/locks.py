"""PID lock file that keeps pipeline runs from overlapping.

Manifesto:
    Two full pipeline runs must never interleave their read-then-replace
    updates of the same fact log and cursor. The lock is a file holding the
    owner's PID and a per-acquisition token, created with exclusive-create
    so only one process wins. Storage guarantees the file never exists
    without its content.

    Holder rules:

    - another PID, alive (signal 0): busy
    - another PID, dead: stale, removed and acquisition retried once
    - our own PID, token held by a live ``PidLock`` in this process: busy
      (a second in-process job on the worker pool)
    - our own PID, unknown token: stale, left by an earlier process whose
      PID was recycled
    - unreadable content: busy, never taken over automatically

Tags:
    lock, pid, mutual-exclusion, clawview
"""

from __future__ import annotations

import os
import threading
import uuid
from collections.abc import Callable

from clawview.core.errors import LockError
from clawview.core.logging import get_logger
from clawview.core.storage import StateStorage

logger = get_logger(__name__)

LOCK_FILE = "probe.lock"

# Tokens of locks currently held by this process.
_live_tokens: set[str] = set()
_live_tokens_guard = threading.Lock()


def pid_alive(pid: int) -> bool:
    """True if a process with ``pid`` exists (``os.kill(pid, 0)``)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else.
        return True
    except OSError:
        return False
    return True


def parse_lock(text: str | None) -> tuple[int, str | None] | None:
    """Split lock content ``"<pid> <token>"`` (token optional).

    >>> parse_lock("4242 9f1c")
    (4242, '9f1c')
    >>> parse_lock("garbage") is None
    True
    """
    if text is None:
        return None
    parts = text.split()
    if not parts:
        return None
    try:
        pid = int(parts[0])
    except ValueError:
        return None
    return pid, (parts[1] if len(parts) > 1 else None)


class PidLock:
    """Exclusive PID lock over a ``StateStorage`` file.

    Example:
        >>> lock = PidLock(storage)
        >>> if lock.acquire():
        ...     try:
        ...         run_pipeline()
        ...     finally:
        ...         lock.release()
    """

    def __init__(
        self,
        storage: StateStorage,
        name: str = LOCK_FILE,
        *,
        pid: int | None = None,
        is_alive: Callable[[int], bool] = pid_alive,
    ) -> None:
        self.storage = storage
        self.name = name
        self.pid = pid if pid is not None else os.getpid()
        self.is_alive = is_alive
        self.token = uuid.uuid4().hex
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def holder(self) -> int | None:
        """PID recorded in the lock file, or ``None`` if absent/unreadable."""
        parsed = parse_lock(self.storage.read_text(self.name))
        return parsed[0] if parsed else None

    def _is_busy(self, text: str) -> bool:
        parsed = parse_lock(text)
        if parsed is None:
            logger.warning("pipeline_lock_unreadable", lock_file=self.name)
            return True
        pid, token = parsed
        if pid == self.pid:
            with _live_tokens_guard:
                return token in _live_tokens
        return self.is_alive(pid)

    def acquire(self) -> bool:
        """Take the lock. Returns False if another live run holds it."""
        if self._held:
            return True
        for _ in range(2):
            if self.storage.create_exclusive(self.name, f"{self.pid} {self.token}"):
                with _live_tokens_guard:
                    _live_tokens.add(self.token)
                self._held = True
                return True
            text = self.storage.read_text(self.name)
            if text is None:
                # Released between our create and read.
                continue
            if self._is_busy(text):
                logger.info("pipeline_lock_busy", holder_pid=self.holder())
                return False
            logger.warning("pipeline_lock_stale", holder_pid=self.holder())
            self.storage.delete(self.name)
        return False

    def release(self) -> None:
        if not self._held:
            return
        parsed = parse_lock(self.storage.read_text(self.name))
        if parsed is not None and parsed != (self.pid, self.token):
            raise LockError(f"lock {self.name} is held by pid {parsed[0]}, not {self.pid}")
        self.storage.delete(self.name)
        with _live_tokens_guard:
            _live_tokens.discard(self.token)
        self._held = False

    def __enter__(self) -> PidLock:
        if not self.acquire():
            raise LockError(f"lock {self.name} is busy")
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


__all__ = ["PidLock", "pid_alive", "parse_lock", "LOCK_FILE"]
