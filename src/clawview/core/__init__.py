"""Core primitives: storage, cursors, fact log, retention, errors, settings.

Nothing in ``clawview.core`` imports from the fact, metric or sync layers.
"""

from clawview.core.cursors import Cursor, CursorAdvance, CursorStore
from clawview.core.errors import (
    ClawviewError,
    ConfigError,
    LockError,
    ParseError,
    SourceError,
    SourceUnavailableError,
    StorageError,
    SyncDeliveryError,
)
from clawview.core.factlog import FactLog
from clawview.core.hashing import compute_hash
from clawview.core.logging import LogContext, configure_logging, get_logger
from clawview.core.retention import CompactionResult, RetentionCompactor
from clawview.core.settings import ClawviewSettings, get_settings
from clawview.core.storage import FileStateStorage, MemoryStateStorage, StateStorage

__all__ = [
    "ClawviewError",
    "ClawviewSettings",
    "CompactionResult",
    "ConfigError",
    "Cursor",
    "CursorAdvance",
    "CursorStore",
    "FactLog",
    "FileStateStorage",
    "LockError",
    "LogContext",
    "MemoryStateStorage",
    "ParseError",
    "RetentionCompactor",
    "SourceError",
    "SourceUnavailableError",
    "StateStorage",
    "StorageError",
    "SyncDeliveryError",
    "compute_hash",
    "configure_logging",
    "get_logger",
    "get_settings",
]
