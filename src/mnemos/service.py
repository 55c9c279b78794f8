"""Caller-facing memory service: local-first CRUD with background sync."""

import asyncio
import contextlib

from mnemos.core.config import Settings
from mnemos.core.logging import get_logger
from mnemos.core.types import OperationType, SyncState
from mnemos.core.typing import Unsubscribe
from mnemos.llm.embeddings import EmbeddingProvider, LiteLLMEmbeddingProvider
from mnemos.memory.base import Memory, MemoryMatch, MemoryNotFoundError, RemoteStore, is_provisional_id
from mnemos.memory.binary import BinaryStore
from mnemos.memory.cache import MemoryCache
from mnemos.remote.notion import NotionRemoteStore
from mnemos.sync.orchestrator import SyncOrchestrator
from mnemos.sync.queue import SyncQueue
from mnemos.sync.state import RefreshCallback, StateChangeListener, SyncMonitor

logger = get_logger("service")


class MemoryService:
    """Owns the cache, sync queue and reconciliation for one data directory.

    Construct once at startup, `await open()`, pass the instance to
    consumers, and `await close()` on shutdown. Writes complete locally and
    are propagated to the remote store in the background.
    """

    def __init__(
        self,
        settings: Settings,
        embeddings: EmbeddingProvider,
        remote: RemoteStore,
    ):
        self.settings = settings
        self.embeddings = embeddings
        self.remote = remote
        self.monitor = SyncMonitor()
        self.cache = MemoryCache(
            BinaryStore(settings.cache_path, settings.embedding_dim), embeddings
        )
        self.queue = SyncQueue(
            settings.queue_path,
            remote,
            self.cache,
            self.monitor,
            max_size=settings.max_queue_size,
            max_retries=settings.max_retries,
            retry_delays=settings.retry_delays,
        )
        self.orchestrator = SyncOrchestrator(
            self.cache, remote, embeddings, self.queue, self.monitor
        )
        self._sync_task: asyncio.Task | None = None
        self._opened = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryService":
        """Build with the LiteLLM embedding provider and the Notion store."""
        embeddings = LiteLLMEmbeddingProvider(
            model=settings.embedding_model,
            dimensions=settings.embedding_dim,
            api_key=settings.embedding_api_key,
        )
        remote = NotionRemoteStore(
            api_key=settings.notion_api_key,
            database_id=settings.notion_database_id,
            title_property=settings.notion_title_property,
            notion_version=settings.notion_version,
        )
        return cls(settings, embeddings, remote)

    async def open(self, start_worker: bool = True) -> None:
        """Load state, start the queue worker, optionally kick off a sync.

        With start_worker=False pending operations stay on disk untouched
        (read-only use).
        """
        if self._opened:
            return
        self._opened = True
        self.queue.load()
        self.monitor.set_last_sync(self.cache.last_sync)
        if start_worker:
            self.queue.start()
        logger.info(
            f"Memory service opened: {len(self.cache)} memories, "
            f"{len(self.queue)} pending operations"
        )
        if self.settings.sync_on_open:
            self.sync_with_notion()

    async def close(self) -> None:
        """Cancel background work and release the remote client."""
        if not self._opened:
            return
        self._opened = False
        task, self._sync_task = self._sync_task, None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.queue.stop()
        await self.remote.close()
        logger.info("Memory service closed")

    async def __aenter__(self) -> "MemoryService":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Reads

    def get_memory(self, memory_id: str) -> Memory | None:
        return self.cache.get(memory_id)

    def get_all_memories(self) -> list[Memory]:
        return self.cache.get_all()

    async def search_memories(self, query: str, top_k: int = 5) -> list[MemoryMatch]:
        return await self.cache.search(query, top_k)

    # Writes

    async def add_memory(self, content: str) -> str:
        """Store locally and queue creation in the remote store."""
        memory_id = await self.cache.add(content)
        self.queue.enqueue(OperationType.ADD, memory_id, content)
        return memory_id

    async def update_memory(self, memory_id: str, content: str) -> bool:
        """Update locally and queue the remote update. False if not found."""
        try:
            await self.cache.update(memory_id, content)
        except MemoryNotFoundError:
            return False

        if is_provisional_id(memory_id) and not self.queue.has_pending(memory_id):
            # Its add was dropped earlier; create it instead
            self.queue.enqueue(OperationType.ADD, memory_id, content)
        else:
            self.queue.enqueue(OperationType.UPDATE, memory_id, content)
        return True

    async def delete_memory(self, memory_id: str) -> bool:
        """Delete locally and queue the remote archive. False if not found."""
        if not await self.cache.delete(memory_id):
            return False

        if not is_provisional_id(memory_id) or self.queue.has_pending(memory_id):
            self.queue.enqueue(OperationType.DELETE, memory_id)
        return True

    # Sync

    def sync_with_notion(self) -> asyncio.Task | None:
        """Start a reconciliation pass in the background (fire-and-forget)."""
        if self._sync_task is not None and not self._sync_task.done():
            return self._sync_task
        if self.orchestrator.running:
            return None
        self._sync_task = asyncio.create_task(self.orchestrator.sync(), name="memory-sync")
        return self._sync_task

    async def wait_for_sync(self) -> None:
        """Wait for the running reconciliation pass and the queue to settle."""
        if self._sync_task is not None:
            await asyncio.wait({self._sync_task})
        await self.queue.drain()

    def get_state(self) -> SyncState:
        return self.monitor.state

    def on_state_change(self, callback: StateChangeListener) -> Unsubscribe:
        return self.monitor.on_state_change(callback)

    def on_memories_refresh(self, callback: RefreshCallback) -> Unsubscribe:
        return self.monitor.on_memories_refresh(callback)
