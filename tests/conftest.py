"""Shared fixtures: in-memory embedding provider and remote store."""

import hashlib
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mnemos.core.config import Settings
from mnemos.llm.embeddings import EmbeddingProvider
from mnemos.memory.base import EmbeddingError, RemoteMemory, RemoteStore, RemoteStoreError
from mnemos.memory.binary import BinaryStore
from mnemos.memory.cache import MemoryCache
from mnemos.sync.state import SyncMonitor

DIM = 8


class FakeEmbeddings(EmbeddingProvider):
    """Bag-of-words hashed into DIM buckets; identical text gives identical vectors."""

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls: list[str] = []
        self.fail = False

    async def create_embedding(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding service unavailable")
        vector = [0.0] * self.dim
        for word in text.lower().split():
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vector[bucket] += 1.0
        return vector


class FakeRemoteStore(RemoteStore):
    """Dict-backed remote store with scriptable failures."""

    def __init__(self):
        self.pages: dict[str, RemoteMemory] = {}
        self.calls: list[tuple] = []
        self.failures = 0  # next N mutating calls raise
        self.fail_load = False
        self.closed = False
        self._counter = 0
        self.clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self.clock += timedelta(seconds=1)
        return self.clock

    def _maybe_fail(self) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise RemoteStoreError("remote unavailable")

    def seed(self, page_id: str, content: str, updated_at: datetime) -> None:
        self.pages[page_id] = RemoteMemory(id=page_id, content=content, updated_at=updated_at)

    async def load_all(self) -> list[RemoteMemory]:
        self.calls.append(("load_all",))
        if self.fail_load:
            raise RemoteStoreError("remote unavailable")
        return list(self.pages.values())

    async def create(self, content: str) -> str:
        self.calls.append(("create", content))
        self._maybe_fail()
        self._counter += 1
        page_id = f"page-{self._counter}"
        self.pages[page_id] = RemoteMemory(id=page_id, content=content, updated_at=self._tick())
        return page_id

    async def update(self, memory_id: str, content: str) -> bool:
        self.calls.append(("update", memory_id, content))
        self._maybe_fail()
        if memory_id not in self.pages:
            return False
        self.pages[memory_id] = RemoteMemory(id=memory_id, content=content, updated_at=self._tick())
        return True

    async def archive(self, memory_id: str) -> bool:
        self.calls.append(("archive", memory_id))
        self._maybe_fail()
        return self.pages.pop(memory_id, None) is not None

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def monitor() -> SyncMonitor:
    return SyncMonitor()


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "memories.bin"


@pytest.fixture
def cache(cache_path: Path, embeddings: FakeEmbeddings) -> MemoryCache:
    return MemoryCache(BinaryStore(cache_path, embedding_dim=DIM), embeddings)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        embedding_dim=DIM,
        retry_delays=[0.0, 0.0, 0.0],
        sync_on_open=False,
        _env_file=None,
    )
