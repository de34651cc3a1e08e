"""
Debounced trigger controller.

Manifesto:
    Gateway hooks fire in bursts (every sent message is an event). The
    controller turns that stream into at most one pipeline submission per
    debounce window and never blocks the hook:

    - **Filter:** only ``gateway:startup`` and ``message:sent`` qualify
    - **Debounce:** an event within ``debounce_ms`` of the last accepted
      one is skipped and logged
    - **Claim first:** ``last_triggered_ms`` is written atomically *before*
      the job is submitted, so a second burst event that reads the state a
      moment later already sees the claim
    - **Fire and forget:** the job goes to a ``concurrent.futures.Executor``;
      from the hook command the job only spawns a detached ``probe once``
      process, and the PID lock inside that run keeps runs from overlapping

State machine::

        idle ──event──► debounced-skip   (now - last < debounce)
          │
          └──────────► running           (state written, job submitted)

Tags:
    trigger, debounce, hook, executor, clawview
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from clawview.core.errors import categorize_error
from clawview.core.logging import get_logger
from clawview.core.storage import StateStorage, read_json, write_json
from clawview.core.timestamps import now_ms

logger = get_logger(__name__)

STATE_FILE = "hook-trigger-state.json"
SUPPORTED_EVENTS = frozenset({"gateway:startup", "message:sent"})
DEFAULT_DEBOUNCE_MS = 45_000


class TriggerOutcome(str, Enum):
    IGNORED = "ignored"  # unsupported event
    DISABLED = "disabled"
    DEBOUNCED = "debounced"
    ACCEPTED = "accepted"


@dataclass
class TriggerDecision:
    outcome: TriggerOutcome
    event: str
    remaining_ms: int | None = None
    future: Future | None = None


def event_key(event_type: str | None, action: str | None) -> str:
    t = (event_type or "").strip()
    a = (action or "").strip()
    return f"{t}:{a}" if t and a else ""


class TriggerController:
    """Accepts qualifying events and submits the pipeline job.

    Args:
        storage: Where ``hook-trigger-state.json`` lives.
        executor: Pool the job is submitted to.
        job: Zero-argument callable running one pipeline cycle.
        debounce_ms: Minimum gap between accepted triggers.
        enabled: Master switch; disabled controllers accept nothing.
        clock: Epoch-ms clock.
    """

    def __init__(
        self,
        storage: StateStorage,
        executor: Executor,
        job: Callable[[], Any],
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        enabled: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.storage = storage
        self.executor = executor
        self.job = job
        self.debounce_ms = max(0, debounce_ms)
        self.enabled = enabled
        self.clock = clock

    def last_triggered_ms(self) -> int:
        state = read_json(self.storage, STATE_FILE, default={})
        if not isinstance(state, dict):
            return 0
        try:
            return max(0, int(state.get("last_triggered_ms") or 0))
        except (TypeError, ValueError):
            return 0

    def fire(self, event_type: str | None, action: str | None) -> TriggerDecision:
        key = event_key(event_type, action)
        if key not in SUPPORTED_EVENTS:
            return TriggerDecision(TriggerOutcome.IGNORED, key)
        if not self.enabled:
            return TriggerDecision(TriggerOutcome.DISABLED, key)

        now = self.clock()
        last = self.last_triggered_ms()
        if last > 0 and now - last < self.debounce_ms:
            remaining = self.debounce_ms - (now - last)
            logger.info("trigger_debounced", trigger_event=key, remaining_ms=remaining)
            return TriggerDecision(TriggerOutcome.DEBOUNCED, key, remaining_ms=remaining)

        write_json(self.storage, STATE_FILE, {"last_triggered_ms": now, "last_event": key})
        future = self.executor.submit(self.job)
        future.add_done_callback(_log_job_failure)
        logger.info("trigger_accepted", trigger_event=key, debounce_ms=self.debounce_ms)
        return TriggerDecision(TriggerOutcome.ACCEPTED, key, future=future)


def detached_probe_command(data_dir: Path, *, python: str | None = None) -> list[str]:
    """Command line for one ``probe once`` run against ``data_dir``."""
    return [python or sys.executable, "-m", "clawview", "probe", "once", "--data-dir", str(data_dir)]


def launch_detached(command: Sequence[str]) -> int:
    """Start ``command`` in its own session with no stdio. Returns its PID.

    The child outlives the caller; nothing waits on it.
    """
    proc = subprocess.Popen(
        list(command),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )
    logger.info("probe_launched", pid=proc.pid)
    return proc.pid


def _log_job_failure(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(
            "triggered_job_failed",
            error=str(error),
            error_type=type(error).__name__,
            error_category=categorize_error(error).value,
        )


__all__ = [
    "TriggerController",
    "TriggerDecision",
    "TriggerOutcome",
    "SUPPORTED_EVENTS",
    "STATE_FILE",
    "event_key",
    "detached_probe_command",
    "launch_detached",
]
