"""
Cursor tracking for idempotent incremental reads.

A cursor records how far a consumer has read a stream of facts, so that
repeated, overlapping invocations (the probe is fired by bursty hooks and
re-reads the last few thousand log lines each time) record each physical
occurrence at most once.

Manifesto:
    Log windows overlap by construction. A plain high-water timestamp is
    not enough, because several facts can share the boundary millisecond
    and the next window will see them again. The cursor therefore keeps
    the boundary timestamp *and* the dedupe keys seen at exactly that
    timestamp:

    - **Skip rule:** ``ts < last_ts`` or (``ts == last_ts`` and key seen)
    - **Forward-only:** ``last_ts`` never decreases
    - **Bounded ties:** only the newest ``max_keys`` boundary keys are kept
    - **Atomic:** cursors are replaced via temp-file + rename

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                     CursorStore                           │
        └──────────────────────────────────────────────────────────┘

        advance("api", facts)                 select("api", facts, limit)
              │                                     │
              ▼                                     ▼
        filter covered facts ──► next cursor ◄── (sync: commit only
              │                  {last_ts_ms,      after delivery)
              ▼                   last_keys[]}
        write_atomic("<prefix><category>-cursor.json")

    The extraction pipeline and the outbound sync own separate stores
    (different ``prefix``), so neither can move the other's position.

Examples:
    >>> store = CursorStore(MemoryStateStorage())
    >>> accepted = store.advance("api", facts)
    >>> store.advance("api", facts)   # same window again
    []

Tags:
    cursor, watermark, incremental, idempotent, dedupe, clawview
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

from clawview.core.logging import get_logger
from clawview.core.storage import StateStorage, read_json, write_json

logger = get_logger(__name__)

DEFAULT_MAX_KEYS = 300


class Keyed(Protocol):
    """Anything with an occurrence time and a dedupe key."""

    ts_ms: int
    dedupe_key: str


K = TypeVar("K", bound=Keyed)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Cursor:
    """Read position for one fact category.

    Attributes:
        category: Fact category (``api``, ``cron``, ``skill``...).
        last_ts_ms: Greatest occurrence time processed so far.
        last_keys: Dedupe keys processed at exactly ``last_ts_ms``.
        updated_at: When the cursor was last persisted.
    """

    category: str
    last_ts_ms: int = 0
    last_keys: tuple[str, ...] = ()
    updated_at: str | None = None

    def covers(self, ts_ms: int, dedupe_key: str) -> bool:
        """True if a fact at ``ts_ms`` with ``dedupe_key`` was already processed."""
        if ts_ms < self.last_ts_ms:
            return True
        return ts_ms == self.last_ts_ms and dedupe_key in self.last_keys

    def to_record(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "last_ts_ms": self.last_ts_ms,
            "last_keys": list(self.last_keys),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, category: str, record: Any) -> Cursor:
        if not isinstance(record, dict):
            return cls(category=category)
        try:
            last_ts = int(record.get("last_ts_ms") or 0)
        except (TypeError, ValueError):
            last_ts = 0
        keys = record.get("last_keys")
        keys = tuple(str(k) for k in keys) if isinstance(keys, list) else ()
        return cls(
            category=category,
            last_ts_ms=max(0, last_ts),
            last_keys=keys,
            updated_at=record.get("updated_at"),
        )


@dataclass(frozen=True)
class CursorAdvance:
    """Outcome of filtering a batch of facts against a cursor.

    Attributes:
        accepted: Facts not covered by ``previous``, in time order.
        previous: Cursor before the batch.
        cursor: Cursor after the batch (equal to ``previous`` if nothing new).
    """

    accepted: list[Any] = field(default_factory=list)
    previous: Cursor = field(default_factory=lambda: Cursor(category=""))
    cursor: Cursor = field(default_factory=lambda: Cursor(category=""))

    @property
    def changed(self) -> bool:
        return (self.cursor.last_ts_ms, self.cursor.last_keys) != (
            self.previous.last_ts_ms,
            self.previous.last_keys,
        )


# ---------------------------------------------------------------------------
# CursorStore
# ---------------------------------------------------------------------------


class CursorStore:
    """Persisted per-category cursors over an injected ``StateStorage``.

    Args:
        storage: Where cursor files live.
        prefix: File-name prefix; separates independent cursor owners
            (``""`` for extraction, ``"sync-"`` for outbound sync).
        max_keys: Bound on boundary keys retained per cursor.
    """

    def __init__(
        self,
        storage: StateStorage,
        *,
        prefix: str = "",
        max_keys: int = DEFAULT_MAX_KEYS,
    ) -> None:
        self._storage = storage
        self._prefix = prefix
        self._max_keys = max(1, max_keys)

    def file_name(self, category: str) -> str:
        return f"{self._prefix}{category}-cursor.json"

    # -- core operations -----------------------------------------------------

    def peek(self, category: str) -> Cursor:
        """Return the stored cursor (a zero cursor if none was ever written)."""
        return Cursor.from_record(category, read_json(self._storage, self.file_name(category)))

    def select(
        self,
        category: str,
        facts: Iterable[K],
        *,
        limit: int | None = None,
    ) -> CursorAdvance:
        """Filter ``facts`` against the stored cursor without persisting.

        Facts are considered in time order. Facts without a positive
        timestamp or without a dedupe key are ignored. Duplicates inside
        the batch are accepted once. With ``limit`` only the first
        ``limit`` new facts are accepted and the next cursor covers
        exactly those.
        """
        previous = self.peek(category)
        ordered = sorted(
            (f for f in facts if _valid(f)),
            key=lambda f: f.ts_ms,
        )

        accepted: list[K] = []
        seen: set[str] = set()
        max_ts = previous.last_ts_ms
        boundary_keys: list[str] = list(previous.last_keys)

        for fact in ordered:
            if previous.covers(fact.ts_ms, fact.dedupe_key):
                continue
            if fact.dedupe_key in seen:
                continue
            if limit is not None and len(accepted) >= limit:
                break
            seen.add(fact.dedupe_key)
            accepted.append(fact)

            if fact.ts_ms > max_ts:
                max_ts = fact.ts_ms
                boundary_keys = [fact.dedupe_key]
            elif fact.ts_ms == max_ts and fact.dedupe_key not in boundary_keys:
                boundary_keys.append(fact.dedupe_key)

        if not accepted:
            return CursorAdvance(accepted=[], previous=previous, cursor=previous)

        nxt = Cursor(
            category=category,
            last_ts_ms=max_ts,
            last_keys=tuple(boundary_keys[-self._max_keys:]),
            updated_at=datetime.now(UTC).isoformat(),
        )
        return CursorAdvance(accepted=accepted, previous=previous, cursor=nxt)

    def commit(self, cursor: Cursor) -> Cursor:
        """Persist ``cursor`` atomically (forward-only).

        A cursor behind the stored one is ignored and the stored cursor
        is returned unchanged.
        """
        stored = self.peek(cursor.category)
        if cursor.last_ts_ms < stored.last_ts_ms:
            logger.warning(
                "cursor_backward_ignored",
                category=cursor.category,
                stored_ts_ms=stored.last_ts_ms,
                offered_ts_ms=cursor.last_ts_ms,
            )
            return stored
        write_json(self._storage, self.file_name(cursor.category), cursor.to_record())
        return cursor

    def advance(self, category: str, facts: Iterable[K]) -> list[K]:
        """Return only new facts and move the cursor past them.

        Idempotent: calling it again with the same (or an overlapping)
        batch returns only facts it has not returned before.
        """
        result = self.select(category, facts)
        if result.changed:
            self.commit(result.cursor)
        logger.debug(
            "cursor_advanced",
            category=category,
            accepted=len(result.accepted),
            last_ts_ms=result.cursor.last_ts_ms,
        )
        return result.accepted


def _valid(fact: Keyed) -> bool:
    ts = getattr(fact, "ts_ms", None)
    key = getattr(fact, "dedupe_key", None)
    return isinstance(ts, int) and ts > 0 and bool(key)


__all__ = [
    "Cursor",
    "CursorAdvance",
    "CursorStore",
    "Keyed",
    "DEFAULT_MAX_KEYS",
]
