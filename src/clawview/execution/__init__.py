"""Clawview execution: lock, retry and the debounced trigger.

ARCHITECTURE
────────────
::

    TriggerController.fire(event)      (debounced, non-blocking)
      │
      ▼  executor.submit
    ProbePipeline.run_once()           (clawview.execution.pipeline)
      ├── PidLock           ─ one run at a time
      ├── cycle             ─ extract → cursor → append → compact → aggregate
      └── SyncTransmitter   ─ optional, retried with ExponentialBackoff

``clawview.execution.pipeline`` sits on top of every other layer (it wires the
sync transmitter, which itself uses the retry primitives here), so it is not
re-exported from this package.
"""

from clawview.execution.locks import PidLock, pid_alive
from clawview.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from clawview.execution.trigger import TriggerController, TriggerDecision, TriggerOutcome

__all__ = [
    "ExponentialBackoff",
    "NoRetry",
    "PidLock",
    "RetryContext",
    "RetryStrategy",
    "TriggerController",
    "TriggerDecision",
    "TriggerOutcome",
    "pid_alive",
]
