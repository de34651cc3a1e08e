"""
Fact extraction from raw log windows.

The extractor is a pure function of its input: the same window of log lines
always yields the same facts with the same dedupe keys. It keeps no state;
deciding which facts are *new* is the cursor store's job.

Manifesto:
    Upstream logs are unstructured text and every invocation re-reads an
    overlapping tail of them. Extraction therefore has to be:

    - **Deterministic:** dedupe keys hash only what is in the line
    - **Conservative:** unknown status is failure, unknown host is ``unknown``
    - **Narrow on criticals:** only fixed hard-failure signatures count
    - **Non-fatal:** a line that cannot be parsed is counted, never raised

Architecture:
    ::

        list[LogLine] ──► FactExtractor.extract()
                              │
              ┌───────────────┼──────────────────┐
              ▼               ▼                  ▼
          ApiFact      CriticalErrorFact   ErrorFingerprint
        (URL found)    (signature match)   (warn/error lines)
              │               │                  │
              └───────────────┴──────► ExtractionResult

        cron run entries ──► extract_cron_runs() ──► CronRunFact

Examples:
    >>> line = LogLine(ts_ms=1772276400000, level="info",
    ...                message="POST https://open.larksuite.com/open-apis/im/v1/messages/send status code 200")
    >>> result = FactExtractor().extract([line])
    >>> result.api_facts[0].provider, result.api_facts[0].endpoint_group
    ('lark', 'message_send')

Tags:
    extraction, classification, log-parsing, facts, clawview
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from clawview.core.hashing import compute_hash, normalize_fingerprint, one_line
from clawview.core.logging import get_logger
from clawview.core.timestamps import iso_from_ms, to_ms
from clawview.facts import classify
from clawview.facts.models import ApiFact, CriticalErrorFact, CronRunFact, ErrorFingerprint, LogLine

logger = get_logger(__name__)

FINGERPRINT_LEVELS = frozenset({"warn", "warning", "error", "fatal"})
_DEDUPE_FINGERPRINT_LEN = 96


@dataclass
class ExtractionResult:
    """Everything one pass over a log window produced.

    Attributes:
        api_facts: Outbound API calls, in input order.
        critical_facts: Hard-failure signatures, in input order.
        fingerprints: Warn/error fingerprint aggregates keyed by fingerprint.
        lines_total: Lines seen, including malformed ones.
        malformed_lines: Lines skipped for lack of a timestamp.
        latest_log_ts_ms: Newest timestamp in the window (data freshness).
    """

    api_facts: list[ApiFact] = field(default_factory=list)
    critical_facts: list[CriticalErrorFact] = field(default_factory=list)
    fingerprints: dict[str, ErrorFingerprint] = field(default_factory=dict)
    lines_total: int = 0
    malformed_lines: int = 0
    latest_log_ts_ms: int | None = None

    def top_fingerprints(self, n: int = 10) -> list[ErrorFingerprint]:
        """Most frequent fingerprints; ties keep first-seen order."""
        return sorted(self.fingerprints.values(), key=lambda fp: -fp.count)[:n]


class FactExtractor:
    """Turns a bounded window of log lines into typed facts."""

    def extract(self, lines: Iterable[LogLine]) -> ExtractionResult:
        result = ExtractionResult()

        for line in lines:
            result.lines_total += 1
            if line.ts_ms is None or line.ts_ms <= 0:
                result.malformed_lines += 1
                continue

            if result.latest_log_ts_ms is None or line.ts_ms > result.latest_log_ts_ms:
                result.latest_log_ts_ms = line.ts_ms

            api_fact = self.api_fact_from_line(line)
            if api_fact is not None:
                result.api_facts.append(api_fact)

            critical = self.critical_fact_from_line(line)
            if critical is not None:
                result.critical_facts.append(critical)

            if line.level in FINGERPRINT_LEVELS:
                fingerprint = normalize_fingerprint(line.message or line.raw)
                result.fingerprints.setdefault(fingerprint, ErrorFingerprint(fingerprint)).observe(line.ts_ms)

        if result.malformed_lines:
            logger.debug("log_lines_malformed", malformed=result.malformed_lines, total=result.lines_total)
        logger.debug(
            "facts_extracted",
            lines=result.lines_total,
            api=len(result.api_facts),
            critical=len(result.critical_facts),
            fingerprints=len(result.fingerprints),
        )
        return result

    def api_fact_from_line(self, line: LogLine) -> ApiFact | None:
        """Build an API fact if the line mentions a well-formed URL."""
        if line.ts_ms is None:
            return None
        text = one_line(line.text)
        url = classify.extract_first_url(text)
        if url is None:
            return None

        provider = classify.detect_provider(url.host)
        group = classify.classify_endpoint_group(url.path)
        status = classify.parse_status_code(text, url=url.url)
        rate_limited = classify.is_rate_limited(text, status)
        fingerprint = normalize_fingerprint(text)[:_DEDUPE_FINGERPRINT_LEN]

        return ApiFact(
            ts_ms=line.ts_ms,
            provider=provider,
            endpoint_group=group,
            host=url.host,
            path_template=classify.path_template(url.path),
            status_code=status,
            is_failure=classify.is_failure(status, line.level),
            is_rate_limited=rate_limited,
            dedupe_key=compute_hash(
                iso_from_ms(line.ts_ms),
                line.level,
                provider,
                group,
                status,
                int(rate_limited),
                fingerprint,
            ),
            method=classify.parse_method(text),
            latency_ms=classify.parse_latency_ms(text),
            request_id=classify.parse_request_id(text),
        )

    def critical_fact_from_line(self, line: LogLine) -> CriticalErrorFact | None:
        if line.ts_ms is None:
            return None
        text = one_line(line.text)
        signature = classify.match_critical_signature(text)
        if signature is None:
            return None
        fingerprint = normalize_fingerprint(text)
        return CriticalErrorFact(
            ts_ms=line.ts_ms,
            signature=signature,
            fingerprint=fingerprint,
            dedupe_key=compute_hash(iso_from_ms(line.ts_ms), "critical", signature, fingerprint[:_DEDUPE_FINGERPRINT_LEN]),
        )


def extract_cron_runs(job_id: str, job_name: str, entries: Iterable[Any]) -> list[CronRunFact]:
    """Cron-run facts from a job's run-history entries.

    Entries carry ``runAtMs`` (or ``ts``) and an optional ``status``; entries
    without a usable timestamp are skipped.
    """
    facts = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        ts = to_ms(entry.get("runAtMs", entry.get("run_at_ms", entry.get("ts"))))
        if ts is None:
            continue
        status = str(entry.get("status") or "unknown").lower()
        facts.append(
            CronRunFact(
                ts_ms=ts,
                job_id=job_id,
                job_name=job_name,
                status=status,
                dedupe_key=compute_hash(iso_from_ms(ts), "cron", job_id, status),
            )
        )
    return facts


__all__ = ["ExtractionResult", "FactExtractor", "extract_cron_runs", "FINGERPRINT_LEVELS"]
