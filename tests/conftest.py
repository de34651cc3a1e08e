"""
Shared pytest fixtures for clawview-probe tests.

This module provides:
- In-memory and on-disk state storage
- A fixed clock (2026-03-01T03:00:00Z, noon in Asia/Tokyo)
- Fact factories with stable dedupe keys
- Logging/settings isolation between tests
"""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
import structlog

from clawview.core.hashing import compute_hash
from clawview.core.settings import get_settings
from clawview.core.storage import FileStateStorage, MemoryStateStorage
from clawview.facts.models import UNKNOWN, ApiFact, CriticalErrorFact, CronRunFact, SkillFact

# 2026-03-01T03:00:00Z == 2026-03-01 12:00 Asia/Tokyo
NOW_MS = 1_772_334_000_000
MINUTE = 60_000
HOUR = 60 * MINUTE


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Generator[None, None, None]:
    """Reset structlog config and cached settings around each test."""
    get_settings.cache_clear()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep developer CLAWVIEW_* variables (and .env files) out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("CLAWVIEW_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Storage / clock
# =============================================================================


@pytest.fixture
def storage() -> MemoryStateStorage:
    return MemoryStateStorage()


@pytest.fixture
def file_storage(tmp_path) -> FileStateStorage:
    return FileStateStorage(tmp_path / "state")


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


# =============================================================================
# Fact factories
# =============================================================================


@pytest.fixture
def make_api_fact() -> Callable[..., ApiFact]:
    def _make(
        ts_ms: int = NOW_MS - HOUR,
        provider: str = "lark",
        endpoint_group: str = "message_send",
        status_code: int | None = 200,
        *,
        is_failure: bool | None = None,
        is_rate_limited: bool = False,
        host: str | None = None,
        key: str | None = None,
    ) -> ApiFact:
        failure = is_failure if is_failure is not None else (status_code is None or status_code >= 400)
        return ApiFact(
            ts_ms=ts_ms,
            provider=provider,
            endpoint_group=endpoint_group,
            host=host or ("open.larksuite.com" if provider == "lark" else "example.net"),
            path_template="/open-apis/im/v1/messages/send" if endpoint_group == "message_send" else "/x",
            status_code=status_code,
            is_failure=failure,
            is_rate_limited=is_rate_limited,
            dedupe_key=key or compute_hash(ts_ms, provider, endpoint_group, status_code),
            method="POST",
        )

    return _make


@pytest.fixture
def make_unknown_api_fact(make_api_fact) -> Callable[..., ApiFact]:
    def _make(ts_ms: int = NOW_MS - HOUR, **kwargs) -> ApiFact:
        return make_api_fact(ts_ms, provider=UNKNOWN, endpoint_group=UNKNOWN, **kwargs)

    return _make


@pytest.fixture
def make_critical_fact() -> Callable[..., CriticalErrorFact]:
    def _make(
        ts_ms: int = NOW_MS - 10 * MINUTE,
        signature: str = "panic",
        fingerprint: str = "panic: runtime error",
    ) -> CriticalErrorFact:
        return CriticalErrorFact(
            ts_ms=ts_ms,
            signature=signature,
            fingerprint=fingerprint,
            dedupe_key=compute_hash(ts_ms, "critical", signature, fingerprint),
        )

    return _make


@pytest.fixture
def make_cron_fact() -> Callable[..., CronRunFact]:
    def _make(ts_ms: int, job_id: str = "job-a", status: str = "ok") -> CronRunFact:
        return CronRunFact(
            ts_ms=ts_ms,
            job_id=job_id,
            job_name=job_id.replace("-", " "),
            status=status,
            dedupe_key=compute_hash(ts_ms, "cron", job_id, status),
        )

    return _make


@pytest.fixture
def make_skill_fact() -> Callable[..., SkillFact]:
    def _make(ts_ms: int, skill_name: str = "weather", call_id: str | None = None) -> SkillFact:
        call_id = call_id or f"call-{ts_ms}"
        return SkillFact(
            ts_ms=ts_ms,
            skill_name=skill_name,
            tool_call_id=call_id,
            is_error=False,
            dedupe_key=compute_hash(ts_ms, "skill", call_id, skill_name),
        )

    return _make
