"""Full bidirectional reconciliation between the local cache and the remote store."""

from mnemos.core.logging import get_logger
from mnemos.core.types import OperationType, truncate_ms, utc_now
from mnemos.llm.embeddings import EmbeddingProvider
from mnemos.memory.base import EmbeddingError, Memory, RemoteStore, is_provisional_id
from mnemos.memory.cache import MemoryCache
from mnemos.sync.queue import SyncQueue
from mnemos.sync.state import SyncMonitor

logger = get_logger("sync.orchestrator")


class SyncOrchestrator:
    """Runs reconciliation passes, one at a time.

    The sync queue is suspended for the duration of a pass so that queued
    operations never race with the bulk pull/push.
    """

    def __init__(
        self,
        cache: MemoryCache,
        remote: RemoteStore,
        embeddings: EmbeddingProvider,
        queue: SyncQueue,
        monitor: SyncMonitor,
    ):
        self.cache = cache
        self.remote = remote
        self.embeddings = embeddings
        self.queue = queue
        self.monitor = monitor
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def sync(self) -> bool:
        """Reconcile once. Returns True if the pass completed.

        Never raises: failures are logged and reported through SyncState,
        leaving the local cache authoritative.
        """
        if self._running:
            logger.debug("Sync already in progress, skipping")
            return False

        self._running = True
        self.monitor.begin_sync()
        try:
            await self.queue.suspend()
            await self._reconcile()
        except Exception as e:
            logger.warning(f"Failed to sync with remote store, using local cache: {e}")
            self.monitor.fail_sync(str(e) or type(e).__name__)
            return False
        else:
            self.monitor.finish_sync(self.cache.last_sync or utc_now())
            self.monitor.notify_refresh()
            return True
        finally:
            self._running = False
            self.queue.resume()

    async def _reconcile(self) -> None:
        logger.info("Syncing memories with remote store...")
        remote_memories = await self.remote.load_all()
        logger.info(f"Loaded {len(remote_memories)} memories from remote store")

        local_by_id = {m.id: m for m in self.cache.get_all()}
        remote_ids = {r.id for r in remote_memories}

        imports: list[Memory] = []
        overwrites: list[Memory] = []

        for remote in remote_memories:
            updated_at = truncate_ms(remote.updated_at)
            local = local_by_id.get(remote.id)

            if local is None:
                if self.queue.pending_type(remote.id) == OperationType.DELETE:
                    continue
                try:
                    embedding = await self.embeddings.create_embedding(remote.content)
                except EmbeddingError as e:
                    logger.warning(f"Skipping import of {remote.id}: {e}")
                    continue
                imports.append(
                    Memory(
                        id=remote.id,
                        content=remote.content,
                        embedding=embedding,
                        created_at=updated_at,
                        updated_at=updated_at,
                    )
                )
                logger.debug(f"Importing remote memory {remote.id}")
                continue

            if updated_at <= local.updated_at:
                continue

            # Remote is strictly newer: it wins, and any queued local edit is stale
            if self.queue.discard(remote.id):
                logger.info(f"Discarded stale local operation for {remote.id}")

            if remote.content == local.content:
                embedding = local.embedding
            else:
                try:
                    embedding = await self.embeddings.create_embedding(remote.content)
                except EmbeddingError as e:
                    logger.warning(f"Skipping refresh of {remote.id}: {e}")
                    continue
            overwrites.append(
                Memory(
                    id=remote.id,
                    content=remote.content,
                    embedding=embedding,
                    created_at=local.created_at,
                    updated_at=updated_at,
                )
            )
            logger.debug(f"Remote copy of {remote.id} is newer ({updated_at} > {local.updated_at})")

        # Bound locally but gone remotely (deleted or archived there)
        removals = [
            memory_id
            for memory_id in local_by_id
            if not is_provisional_id(memory_id)
            and memory_id not in remote_ids
            and not self.queue.has_pending(memory_id)
        ]
        for memory_id in removals:
            logger.debug(f"Pruning {memory_id}, no longer present remotely")

        changed = await self.cache.apply_remote(imports, overwrites, removals)
        logger.info(
            f"Applied remote changes: {len(imports)} imported, {len(overwrites)} refreshed, "
            f"{len(removals)} removed ({changed} records changed)"
        )

        await self._push_unbound()
        await self.cache.mark_synced(utc_now())
        logger.info(f"Memory sync completed ({len(self.cache)} memories)")

    async def _push_unbound(self) -> None:
        """Create remote pages for local-only memories not already queued."""
        for memory in self.cache.get_all():
            if not is_provisional_id(memory.id) or self.queue.has_pending(memory.id):
                continue
            try:
                remote_id = await self.remote.create(memory.content)
            except Exception as e:
                logger.warning(f"Failed to push memory {memory.id}, queueing for retry: {e}")
                self.queue.enqueue(OperationType.ADD, memory.id, memory.content)
                continue
            await self.cache.rebind(memory.id, remote_id)
            logger.debug(f"Pushed local memory {memory.id} as {remote_id}")
