"""
Memory records and the remote store interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

TEMP_ID_PREFIX = "temp_"


def new_provisional_id() -> str:
    """Identity for a memory created while its remote page does not exist yet."""
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


def is_provisional_id(memory_id: str | None) -> bool:
    """True if the id has not been bound to a remote identity."""
    return bool(memory_id) and memory_id.startswith(TEMP_ID_PREFIX)


class MemoryNotFoundError(KeyError):
    """Raised when a memory id is not in the cache."""


class EmbeddingError(RuntimeError):
    """Raised when an embedding cannot be produced."""


class RemoteStoreError(RuntimeError):
    """Raised when the remote document store rejects or fails a request."""


@dataclass
class Memory:
    """Single memory record."""

    id: str
    content: str
    embedding: list[float]
    created_at: datetime
    updated_at: datetime


@dataclass
class MemoryMatch:
    """Search hit with its cosine similarity to the query."""

    memory: Memory
    similarity: float


@dataclass
class RemoteMemory:
    """Memory as stored remotely (no embedding)."""

    id: str
    content: str
    updated_at: datetime


class RemoteStore(ABC):
    """Authoritative remote document store."""

    @abstractmethod
    async def load_all(self) -> list[RemoteMemory]:
        """Fetch every live memory."""
        ...

    @abstractmethod
    async def create(self, content: str) -> str:
        """Create a memory, return its remote ID."""
        ...

    @abstractmethod
    async def update(self, memory_id: str, content: str) -> bool:
        """Replace memory content. False if the memory no longer exists."""
        ...

    @abstractmethod
    async def archive(self, memory_id: str) -> bool:
        """Delete (archive) a memory. False if it no longer exists."""
        ...

    async def close(self) -> None:
        """Release network resources. No-op by default."""
        return None
