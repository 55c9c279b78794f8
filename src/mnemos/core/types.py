"""
Shared type definitions.

Sync state and queued operation records used by both the sync queue and
the reconciliation pass, plus timestamp helpers shared with the binary store.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import uuid4

from mnemos.core.typing import JSONDict

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision, which the binary file cannot hold."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utc_now() -> datetime:
    return truncate_ms(datetime.now(timezone.utc))


def to_epoch_ms(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (accepts a trailing 'Z')."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass
class SyncState:
    """Externally visible sync progress."""

    status: SyncStatus = SyncStatus.IDLE
    pending_operations: int = 0
    last_sync: datetime | None = None
    error: str | None = None

    def copy(self) -> "SyncState":
        return replace(self)


class OperationType(Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class PendingOperation:
    """A remote mutation waiting in the sync queue."""

    type: OperationType
    memory_id: str | None = None
    content: str | None = None
    id: str = ""
    timestamp: datetime | None = None
    retry_count: int = 0

    def __post_init__(self) -> None:
        if not self.id:
            self.id = str(uuid4())
        if self.timestamp is None:
            self.timestamp = utc_now()

    def to_dict(self) -> JSONDict:
        """Convert to dict for the queue file."""
        data: JSONDict = {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "retryCount": self.retry_count,
        }
        if self.memory_id is not None:
            data["memoryId"] = self.memory_id
        if self.content is not None:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: JSONDict) -> "PendingOperation":
        """Create from dict loaded from the queue file."""
        return cls(
            id=data["id"],
            type=OperationType(data["type"]),
            memory_id=data.get("memoryId"),
            content=data.get("content"),
            timestamp=parse_timestamp(data["timestamp"]) if data.get("timestamp") else None,
            retry_count=int(data.get("retryCount", 0)),
        )
