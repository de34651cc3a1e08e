"""Typed facts and the rules that extract them from raw logs."""

from clawview.facts.extractor import ExtractionResult, FactExtractor, extract_cron_runs
from clawview.facts.models import (
    UNKNOWN,
    ApiFact,
    CriticalErrorFact,
    CronRunFact,
    ErrorFingerprint,
    FactCategory,
    LogLine,
    SkillFact,
    facts_from_records,
)

__all__ = [
    "UNKNOWN",
    "ApiFact",
    "CriticalErrorFact",
    "CronRunFact",
    "ErrorFingerprint",
    "ExtractionResult",
    "FactCategory",
    "FactExtractor",
    "LogLine",
    "SkillFact",
    "extract_cron_runs",
    "facts_from_records",
]
