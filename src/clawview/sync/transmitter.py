"""
Outbound sync: deliver undelivered API facts and the latest snapshot.

Manifesto:
    Delivery is at-least-once. The sync owns its own cursor (file prefix
    ``sync-``), independent of the extraction cursor, and only commits it
    after the sink acknowledged the batch with a 2xx:

    - **Select:** ``CursorStore.select`` picks at most ``batch_size``
      undelivered facts without persisting anything
    - **Filter:** each record goes through ``normalize_api_record``;
      rejected records are counted and never sent
    - **Deliver:** one signed POST, retried a bounded number of times with
      exponential backoff, each attempt with a timeout
    - **Commit:** on success only, the cursor moves past the selected
      facts (delivered *and* rejected, so a bad record cannot wedge the
      stream)

    A failed POST raises ``SyncDeliveryError`` and leaves the cursor where
    it was, so the next call selects the same batch again. Because the
    batch is capped, a sink that stays down never makes the batch grow.

Architecture:
    ::

        api-events.jsonl ─► select(limit) ─► policy ─► POST api_events ─► commit
        snapshots-*.jsonl ─► latest ─► project ─► POST snapshot ─► commit marker

    Envelope::

        {"kind": "api_events" | "snapshot", "tenant_id": ..., "project_id": ...,
         "generated_at": ISO-8601, "payload": {...}}

    Headers: ``content-type: application/json``, ``authorization: Bearer
    <key>`` when a key is set, ``x-signature: <hex HMAC-SHA256(body)>`` when
    a secret is set.

Tags:
    sync, outbound, at-least-once, hmac, cursor, clawview
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from clawview.core.cursors import Cursor, CursorStore
from clawview.core.errors import ErrorContext, SyncDeliveryError
from clawview.core.factlog import FactLog
from clawview.core.logging import get_logger
from clawview.core.settings import ClawviewSettings
from clawview.core.storage import StateStorage
from clawview.core.timestamps import iso_from_ms, now_ms, to_ms
from clawview.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy
from clawview.facts.models import FactCategory
from clawview.metrics.snapshots import SnapshotStore
from clawview.sync.policy import INVALID, SENSITIVE, normalize_api_record, project_snapshot

logger = get_logger(__name__)

SYNC_CURSOR_PREFIX = "sync-"
SNAPSHOT_CURSOR = "snapshot"
SIGNATURE_HEADER = "x-signature"


@dataclass(frozen=True, slots=True)
class PendingRecord:
    """A stored fact record with the fields the cursor needs."""

    ts_ms: int
    dedupe_key: str
    record: dict[str, Any]

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> PendingRecord | None:
        ts = record.get("ts_ms")
        if not isinstance(ts, int) or isinstance(ts, bool):
            ts = to_ms(record.get("ts"))
        key = record.get("dedupe_key")
        if not ts or not isinstance(key, str) or not key:
            return None
        return cls(ts_ms=ts, dedupe_key=key, record=record)


@dataclass
class SyncResult:
    """Outcome of one ``sync_once`` call."""

    skipped: bool = False
    reason: str | None = None
    api_events_total: int = 0
    api_events_selected: int = 0
    api_events_sent: int = 0
    rejected: dict[str, int] = field(default_factory=lambda: {SENSITIVE: 0, INVALID: 0})
    snapshot_sent: bool = False
    cursor: Cursor | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "skipped": self.skipped,
            "reason": self.reason,
            "api_events_total": self.api_events_total,
            "api_events_selected": self.api_events_selected,
            "api_events_sent": self.api_events_sent,
            "rejected": dict(self.rejected),
            "snapshot_sent": self.snapshot_sent,
            "cursor": self.cursor.to_record() if self.cursor else None,
            "mode": "whitelist+redaction",
        }


def sign_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class SyncTransmitter:
    """
    Pushes whitelisted API facts and snapshots to the configured sink.

    Args:
        storage: State storage shared with the extraction pipeline.
        url: Sink URL; empty means sync is disabled and ``sync_once`` skips.
        api_key: Optional bearer key.
        hmac_secret: Optional signing secret.
        tenant_id / project_id: Envelope labels.
        batch_size: Max API facts per call.
        timeout_sec: Per-attempt HTTP timeout.
        retry: Retry strategy for one POST.
        client: ``httpx.Client`` to use (a private one is created otherwise).
        clock: Epoch-ms clock for ``generated_at``.
    """

    def __init__(
        self,
        storage: StateStorage,
        url: str,
        *,
        api_key: str | None = None,
        hmac_secret: str | None = None,
        tenant_id: str = "default",
        project_id: str = "openclaw",
        batch_size: int = 200,
        timeout_sec: float = 10.0,
        retry: RetryStrategy | None = None,
        client: httpx.Client | None = None,
        cursor_max_keys: int = 300,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.tenant_id = tenant_id
        self.project_id = project_id
        self.batch_size = max(1, batch_size)
        self.timeout_sec = timeout_sec
        self.retry = retry or ExponentialBackoff()
        self.client = client
        self.clock = clock
        self.sleep = sleep
        self.facts = FactLog(storage)
        self.snapshots = SnapshotStore(storage)
        self.cursors = CursorStore(storage, prefix=SYNC_CURSOR_PREFIX, max_keys=cursor_max_keys)

    @classmethod
    def from_settings(
        cls,
        settings: ClawviewSettings,
        storage: StateStorage,
        client: httpx.Client | None = None,
    ) -> SyncTransmitter:
        return cls(
            storage,
            settings.sync_url,
            api_key=settings.sync_api_key.get_secret_value() if settings.sync_api_key else None,
            hmac_secret=settings.sync_hmac_secret.get_secret_value() if settings.sync_hmac_secret else None,
            tenant_id=settings.tenant_id,
            project_id=settings.project_id,
            batch_size=settings.sync_batch_size,
            timeout_sec=settings.sync_timeout_sec,
            retry=ExponentialBackoff(
                max_retries=settings.sync_max_retries,
                base_delay=settings.sync_backoff_base_sec,
            ),
            client=client,
            cursor_max_keys=settings.cursor_max_keys,
        )

    # -- public --------------------------------------------------------------

    def sync_once(self) -> SyncResult:
        """Deliver one batch of API facts, then the latest snapshot.

        Raises:
            SyncDeliveryError: The sink failed after retries. Nothing that
                was part of the failed POST is marked delivered.
        """
        if not self.url:
            logger.info("sync_skipped", reason="no sink url")
            return SyncResult(skipped=True, reason="sync url not set")

        result = SyncResult()
        self._sync_api_events(result)
        self._sync_snapshot(result)
        logger.info(
            "sync_completed",
            selected=result.api_events_selected,
            sent=result.api_events_sent,
            rejected=result.rejected,
            snapshot_sent=result.snapshot_sent,
        )
        return result

    # -- internals -----------------------------------------------------------

    def _sync_api_events(self, result: SyncResult) -> None:
        category = FactCategory.API.value
        records = self.facts.read(category)
        result.api_events_total = len(records)
        pending = [p for r in records if (p := PendingRecord.from_record(r)) is not None]

        selection = self.cursors.select(category, pending, limit=self.batch_size)
        result.api_events_selected = len(selection.accepted)
        result.cursor = selection.previous
        if not selection.accepted:
            return

        items = []
        for entry in selection.accepted:
            decision = normalize_api_record(entry.record)
            if decision.ok:
                items.append(decision.record)
            else:
                result.rejected[decision.reason] += 1
        if result.rejected[SENSITIVE] or result.rejected[INVALID]:
            logger.warning("sync_records_rejected", **result.rejected)

        if items:
            self._post("api_events", {"items": items, "count": len(items)})
            result.api_events_sent = len(items)
        result.cursor = self.cursors.commit(selection.cursor)

    def _sync_snapshot(self, result: SyncResult) -> None:
        latest = self.snapshots.latest()
        if latest is None:
            return
        ts = str(latest.get("ts") or "")
        ts_ms = to_ms(ts)
        if ts_ms is None:
            return
        marker = self.cursors.peek(SNAPSHOT_CURSOR)
        if marker.covers(ts_ms, ts):
            return
        self._post("snapshot", project_snapshot(latest))
        self.cursors.commit(Cursor(category=SNAPSHOT_CURSOR, last_ts_ms=ts_ms, last_keys=(ts,), updated_at=iso_from_ms(self.clock())))
        result.snapshot_sent = True

    def envelope(self, kind: str, payload: Any) -> dict[str, Any]:
        return {
            "kind": kind,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "generated_at": iso_from_ms(self.clock()),
            "payload": payload,
        }

    def _post(self, kind: str, payload: Any) -> None:
        body = json.dumps(self.envelope(kind, payload), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        if self.hmac_secret:
            headers[SIGNATURE_HEADER] = sign_body(body, self.hmac_secret)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning("sync_delivery_retry", kind=kind, attempt=attempt, delay_sec=round(delay, 2), error=str(error))

        ctx = RetryContext(self.retry, on_retry=on_retry)
        if self.sleep is not None:
            ctx.sleep = self.sleep
        try:
            ctx.run(self._send, body, headers)
        except SyncDeliveryError as e:
            logger.error("sync_delivery_failed", kind=kind, attempts=ctx.attempts, status_code=e.status_code, error=e.message)
            raise

    def _send(self, body: bytes, headers: dict[str, str]) -> None:
        client = self.client or httpx.Client()
        try:
            response = client.post(self.url, content=body, headers=headers, timeout=self.timeout_sec)
        except httpx.TimeoutException as e:
            raise SyncDeliveryError("sink timed out", cause=e, context=ErrorContext(url=self.url)) from e
        except httpx.HTTPError as e:
            raise SyncDeliveryError(f"sink unreachable: {e}", cause=e, context=ErrorContext(url=self.url)) from e
        finally:
            if client is not self.client:
                client.close()

        if not response.is_success:
            raise SyncDeliveryError(
                f"sink returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                context=ErrorContext(url=self.url),
            )


__all__ = ["SyncTransmitter", "SyncResult", "PendingRecord", "sign_body", "SIGNATURE_HEADER"]
