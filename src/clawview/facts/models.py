"""
Typed fact records.

A fact is an immutable record of one observed occurrence: an outbound API
call, a scheduled-job run, a skill invocation, or a hard system failure.
Facts are produced by the extractor, filtered through the cursor store,
appended to a per-category JSONL log and removed only by retention.

Every fact carries:
    - ``ts_ms``: occurrence time (epoch ms) used for ordering and windows
    - ``ts``: the same instant as ISO-8601 UTC
    - ``dedupe_key``: stable hash of its defining fields

``to_record`` / ``from_record`` are the on-disk form. ``from_record``
returns ``None`` for rows it cannot interpret rather than raising, because
a single bad line must never stop aggregation.

STDLIB ONLY - NO PYDANTIC.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from clawview.core.timestamps import iso_from_ms, to_ms


class FactCategory(str, Enum):
    """Fact categories; each has its own log, cursor and retention."""

    API = "api"
    CRON = "cron"
    SKILL = "skill"
    CRITICAL = "critical"


UNKNOWN = "unknown"

# Values older logs used before ``unknown`` became the escape hatch.
_LEGACY_UNKNOWN = {"other", "others", ""}


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _record_ts(record: dict[str, Any]) -> int | None:
    ts = _int_or_none(record.get("ts_ms"))
    if ts is None:
        ts = to_ms(record.get("ts"))
    return ts if ts and ts > 0 else None


# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LogLine:
    """One line from the upstream log window.

    ``ts_ms`` is ``None`` when the line had no parseable timestamp; such
    lines are counted as malformed and never become facts.
    """

    ts_ms: int | None
    level: str
    message: str
    raw: str = ""

    @property
    def text(self) -> str:
        return f"{self.message} {self.raw}".strip()

    @classmethod
    def from_entry(cls, entry: Any) -> LogLine | None:
        """Build from a JSON log entry (``time``, ``level``, ``message``, ``raw``)."""
        if not isinstance(entry, dict):
            return None
        ts = to_ms(entry.get("time", entry.get("ts")))
        return cls(
            ts_ms=ts,
            level=str(entry.get("level") or "").lower(),
            message=str(entry.get("message") or ""),
            raw=str(entry.get("raw") or ""),
        )


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ApiFact:
    """One outbound API call inferred from a log line."""

    ts_ms: int
    provider: str
    endpoint_group: str
    host: str
    path_template: str
    status_code: int | None
    is_failure: bool
    is_rate_limited: bool
    dedupe_key: str
    method: str | None = None
    latency_ms: int | None = None
    request_id: str | None = None

    category = FactCategory.API

    @property
    def ts(self) -> str:
        return iso_from_ms(self.ts_ms)

    @property
    def is_unknown(self) -> bool:
        return self.provider == UNKNOWN or self.endpoint_group == UNKNOWN

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "ts": self.ts,
            "ts_ms": self.ts_ms,
            "provider": self.provider,
            "method": self.method,
            "host": self.host,
            "path_template": self.path_template,
            "endpoint_group": self.endpoint_group,
            "status_code": self.status_code,
            "latency_ms": self.latency_ms,
            "is_rate_limited": self.is_rate_limited,
            "is_failure": self.is_failure,
            "dedupe_key": self.dedupe_key,
        }
        if self.request_id:
            record["request_id"] = self.request_id
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ApiFact | None:
        ts = _record_ts(record)
        key = str(record.get("dedupe_key") or "")
        if ts is None or not key:
            return None
        provider = str(record.get("provider") or "").lower()
        group = str(record.get("endpoint_group") or "").lower()
        method = record.get("method")
        return cls(
            ts_ms=ts,
            provider=UNKNOWN if provider in _LEGACY_UNKNOWN else provider,
            endpoint_group=UNKNOWN if group in _LEGACY_UNKNOWN else group,
            host=str(record.get("host") or ""),
            path_template=str(record.get("path_template") or ""),
            status_code=_int_or_none(record.get("status_code")),
            is_failure=bool(record.get("is_failure")),
            is_rate_limited=bool(record.get("is_rate_limited")),
            dedupe_key=key,
            method=str(method).upper() if method else None,
            latency_ms=_int_or_none(record.get("latency_ms")),
            request_id=record.get("request_id") or None,
        )


@dataclass(frozen=True, slots=True)
class CronRunFact:
    """One run of a scheduled job."""

    ts_ms: int
    job_id: str
    job_name: str
    status: str
    dedupe_key: str

    category = FactCategory.CRON

    @property
    def ts(self) -> str:
        return iso_from_ms(self.ts_ms)

    def to_record(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "ts_ms": self.ts_ms,
            "job_id": self.job_id,
            "job_name": self.job_name,
            "status": self.status,
            "dedupe_key": self.dedupe_key,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CronRunFact | None:
        ts = _record_ts(record)
        key = str(record.get("dedupe_key") or "")
        job_id = str(record.get("job_id") or "")
        if ts is None or not key or not job_id:
            return None
        return cls(
            ts_ms=ts,
            job_id=job_id,
            job_name=str(record.get("job_name") or job_id),
            status=str(record.get("status") or UNKNOWN),
            dedupe_key=key,
        )


@dataclass(frozen=True, slots=True)
class SkillFact:
    """One skill invocation seen in a session transcript."""

    ts_ms: int
    skill_name: str
    tool_call_id: str
    is_error: bool
    dedupe_key: str

    category = FactCategory.SKILL

    @property
    def ts(self) -> str:
        return iso_from_ms(self.ts_ms)

    def to_record(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "ts_ms": self.ts_ms,
            "skill_name": self.skill_name,
            "tool_call_id": self.tool_call_id,
            "is_error": self.is_error,
            "dedupe_key": self.dedupe_key,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SkillFact | None:
        ts = _record_ts(record)
        key = str(record.get("dedupe_key") or "")
        name = str(record.get("skill_name") or "")
        if ts is None or not key or not name:
            return None
        return cls(
            ts_ms=ts,
            skill_name=name,
            tool_call_id=str(record.get("tool_call_id") or ""),
            is_error=bool(record.get("is_error")),
            dedupe_key=key,
        )


@dataclass(frozen=True, slots=True)
class CriticalErrorFact:
    """A hard-failure signature (startup failure, OOM, panic...) in the logs."""

    ts_ms: int
    signature: str
    fingerprint: str
    dedupe_key: str

    category = FactCategory.CRITICAL

    @property
    def ts(self) -> str:
        return iso_from_ms(self.ts_ms)

    def to_record(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "ts_ms": self.ts_ms,
            "signature": self.signature,
            "fingerprint": self.fingerprint,
            "dedupe_key": self.dedupe_key,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CriticalErrorFact | None:
        ts = _record_ts(record)
        key = str(record.get("dedupe_key") or "")
        signature = str(record.get("signature") or "")
        if ts is None or not key or not signature:
            return None
        return cls(
            ts_ms=ts,
            signature=signature,
            fingerprint=str(record.get("fingerprint") or ""),
            dedupe_key=key,
        )


Fact = ApiFact | CronRunFact | SkillFact | CriticalErrorFact

FACT_TYPES: dict[FactCategory, type] = {
    FactCategory.API: ApiFact,
    FactCategory.CRON: CronRunFact,
    FactCategory.SKILL: SkillFact,
    FactCategory.CRITICAL: CriticalErrorFact,
}


def facts_from_records(category: FactCategory, records: list[dict[str, Any]]) -> list[Any]:
    """Rebuild facts of ``category`` from log rows, skipping unreadable rows."""
    fact_type = FACT_TYPES[category]
    facts = []
    for record in records:
        fact = fact_type.from_record(record)
        if fact is not None:
            facts.append(fact)
    return facts


# ---------------------------------------------------------------------------
# Error fingerprints (aggregate, not a fact)
# ---------------------------------------------------------------------------


@dataclass
class ErrorFingerprint:
    """Occurrences of one normalized warn/error message."""

    fingerprint: str
    count: int = 0
    first_seen_ms: int | None = None
    last_seen_ms: int | None = None

    def observe(self, ts_ms: int | None) -> None:
        self.count += 1
        if ts_ms is None:
            return
        if self.first_seen_ms is None or ts_ms < self.first_seen_ms:
            self.first_seen_ms = ts_ms
        if self.last_seen_ms is None or ts_ms > self.last_seen_ms:
            self.last_seen_ms = ts_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "count": self.count,
            "first_seen": iso_from_ms(self.first_seen_ms) if self.first_seen_ms else None,
            "last_seen": iso_from_ms(self.last_seen_ms) if self.last_seen_ms else None,
        }


__all__ = [
    "FactCategory",
    "UNKNOWN",
    "LogLine",
    "ApiFact",
    "CronRunFact",
    "SkillFact",
    "CriticalErrorFact",
    "Fact",
    "FACT_TYPES",
    "facts_from_records",
    "ErrorFingerprint",
]
