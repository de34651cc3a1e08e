"""
Structured error types for the clawview probe.

Every failure the probe can surface carries a category, an explicit retry
flag and optional structured context, so the pipeline can decide locally
whether a failure degrades a metric, skips a cycle, or is retried by the
next sync.

Manifesto:
    The probe observes a system it does not own. Most failures (a log
    command that is missing, a gateway that is down, a sink that answers
    500) are expected operating conditions, not bugs. Typed errors make
    that distinction explicit:

    - **Source errors** degrade a metric to Gap and the run continues
    - **Transient errors** are retried, and never advance a cursor
    - **Config errors** are fixed by the operator and never retried

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      ClawviewError                           │
        │  (category, retryable, retry_after, context, cause)         │
        ├─────────────────────────────────────────────────────────────┤
        │  TransientError        SourceError        ConfigError       │
        │  (retryable=True)      (SOURCE)           (CONFIG)          │
        │       │                    │                  │             │
        │  SyncDeliveryError     SourceUnavailable                    │
        │                        ParseError                           │
        │                                                             │
        │  StorageError          LockError                            │
        │  (STORAGE)             (PIPELINE)                           │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = SyncDeliveryError("sink answered 500", status_code=500)
    >>> error.retryable
    True
    >>> error.with_context(url="https://sink.example/ingest").context.url
    'https://sink.example/ingest'

Tags:
    error-handling, exception-hierarchy, retry-logic, clawview
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"           # Connection, timeout, DNS
    STORAGE = "STORAGE"           # Disk, state files

    # Source/data errors
    SOURCE = "SOURCE"             # Upstream command or file
    PARSE = "PARSE"               # Malformed upstream output

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"

    # Application errors
    PIPELINE = "PIPELINE"         # Pipeline run, lock contention

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        run_id: Pipeline run identifier.
        category: Fact category being processed (``api``, ``cron``...).
        source_name: Collaborator that failed (``openclaw.logs``...).
        url: URL that was being accessed.
        http_status: HTTP status code if applicable.
        metadata: Additional key-value pairs.
    """

    run_id: str | None = None
    category: str | None = None
    source_name: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["run_id", "category", "source_name", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ClawviewError(Exception):
    """
    Base exception for all probe errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message and whatever context they have.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ClawviewError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SourceUnavailableError("logs failed").with_context(
                source_name="openclaw.logs",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Usually Retryable)
# =============================================================================


class TransientError(ClawviewError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class SyncDeliveryError(TransientError):
    """The outbound sink rejected or never received a batch.

    The sync cursor is never advanced when this is raised, so the same
    batch is offered again on the next cycle.
    """

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.context.http_status = status_code
        # 4xx other than 408/429 will not fix itself by resending the same body
        if status_code is not None and 400 <= status_code < 500 and status_code not in (408, 429):
            self.retryable = False


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(ClawviewError):
    """Error from an upstream collaborator (log command, gateway, cron)."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class SourceUnavailableError(SourceError):
    """The collaborator could not be reached or returned nothing usable."""

    default_retryable = True


class ParseError(SourceError):
    """Error parsing collaborator output."""

    default_category = ErrorCategory.PARSE


# =============================================================================
# CONFIGURATION / STORAGE / PIPELINE ERRORS
# =============================================================================


class ConfigError(ClawviewError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG


class StorageError(ClawviewError):
    """State file could not be read or replaced."""

    default_category = ErrorCategory.STORAGE


class LockError(ClawviewError):
    """Pipeline lock could not be acquired or released."""

    default_category = ErrorCategory.PIPELINE


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ClawviewError):
        return error.retryable
    retryable_types = (
        ConnectionError,
        ConnectionResetError,
        ConnectionRefusedError,
        BrokenPipeError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ClawviewError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ClawviewError",
    "TransientError",
    "SyncDeliveryError",
    "SourceError",
    "SourceUnavailableError",
    "ParseError",
    "ConfigError",
    "StorageError",
    "LockError",
    "is_retryable",
    "categorize_error",
]
