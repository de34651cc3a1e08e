"""Outbound sync: privacy policy and the signed batch transmitter."""

from clawview.sync.policy import contains_sensitive_value, normalize_api_record, project_snapshot
from clawview.sync.transmitter import SyncResult, SyncTransmitter

__all__ = [
    "SyncResult",
    "SyncTransmitter",
    "contains_sensitive_value",
    "normalize_api_record",
    "project_snapshot",
]
