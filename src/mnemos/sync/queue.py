"""Durable outbox of remote operations, drained by a background worker."""

import asyncio
import contextlib
import json
from collections.abc import Sequence
from pathlib import Path

from mnemos.core.logging import get_logger
from mnemos.core.types import OperationType, PendingOperation
from mnemos.memory.base import RemoteStore, RemoteStoreError, is_provisional_id
from mnemos.memory.cache import MemoryCache
from mnemos.sync.state import SyncMonitor

logger = get_logger("sync.queue")

QUEUE_FILE_VERSION = 1
MAX_QUEUE_SIZE = 100
MAX_RETRIES = 3
RETRY_DELAYS = (1.0, 2.0, 4.0)


class SyncQueue:
    """Pending remote operations, applied one at a time in FIFO order.

    Each enqueue rewrites the JSON file; so does every change the worker
    makes. A failing head operation is retried with backoff and blocks the
    operations behind it until it succeeds or exhausts its retries.
    """

    def __init__(
        self,
        path: Path,
        remote: RemoteStore,
        cache: MemoryCache,
        monitor: SyncMonitor,
        max_size: int = MAX_QUEUE_SIZE,
        max_retries: int = MAX_RETRIES,
        retry_delays: Sequence[float] = RETRY_DELAYS,
    ):
        self.path = path
        self.remote = remote
        self.cache = cache
        self.monitor = monitor
        self.max_size = max_size
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)

        self._operations: list[PendingOperation] = []
        self._in_flight: PendingOperation | None = None
        self._worker: asyncio.Task | None = None
        self._running = False
        self._suspended = False
        # Held while a single operation is being applied
        self._op_lock = asyncio.Lock()

    # Persistence

    def load(self) -> None:
        """Load pending operations from disk. Missing or corrupt file = empty."""
        if not self.path.exists():
            self._operations = []
        else:
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                self._operations = [
                    PendingOperation.from_dict(op) for op in data.get("operations", [])
                ]
                logger.info(f"Loaded {len(self._operations)} pending sync operations")
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Failed to load sync queue {self.path}: {e}")
                self._operations = []
        self.monitor.set_pending(len(self._operations))

    def _save(self) -> None:
        data = {
            "operations": [op.to_dict() for op in self._operations],
            "version": QUEUE_FILE_VERSION,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save sync queue {self.path}: {e}")

    def _changed(self) -> None:
        self._save()
        self.monitor.set_pending(len(self._operations))

    # Inspection

    @property
    def operations(self) -> list[PendingOperation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def _find(self, memory_id: str, include_in_flight: bool = True) -> PendingOperation | None:
        for op in self._operations:
            if op.memory_id == memory_id and (include_in_flight or op is not self._in_flight):
                return op
        return None

    def has_pending(self, memory_id: str) -> bool:
        return self._find(memory_id) is not None

    def pending_type(self, memory_id: str) -> OperationType | None:
        op = self._find(memory_id)
        return op.type if op else None

    # Mutation

    def enqueue(
        self,
        op_type: OperationType,
        memory_id: str,
        content: str | None = None,
    ) -> bool:
        """Queue a remote operation, coalescing with any pending one for the memory.

        Returns False (and logs) if the queue is full; existing entries are kept.
        """
        existing = self._find(memory_id, include_in_flight=False)

        operation = PendingOperation(type=op_type, memory_id=memory_id, content=content)
        if existing is not None and existing.type == OperationType.ADD:
            if op_type == OperationType.DELETE:
                # Never reached the remote store; nothing left to do
                self._operations.remove(existing)
                self._changed()
                self._kick()
                logger.debug(f"Dropped pending add for deleted memory {memory_id}")
                return True
            operation.type = OperationType.ADD

        occupied = len(self._operations) - (1 if existing is not None else 0)
        if occupied >= self.max_size:
            message = f"Sync queue full ({self.max_size}), dropped {op_type.value} for {memory_id}"
            logger.error(message)
            self.monitor.set_error(message)
            return False

        if existing is not None:
            self._operations.remove(existing)
        self._operations.append(operation)
        self._changed()
        logger.debug(f"Queued {operation.type.value} for {memory_id}")
        self._kick()
        return True

    def discard(self, memory_id: str) -> bool:
        """Drop the pending (not in-flight) operation for a memory."""
        existing = self._find(memory_id, include_in_flight=False)
        if existing is None:
            return False
        self._operations.remove(existing)
        self._changed()
        return True

    def _rebind(self, old_id: str, new_id: str) -> None:
        for op in self._operations:
            if op.memory_id == old_id:
                op.memory_id = new_id

    # Worker lifecycle

    def start(self) -> None:
        """Allow the worker to run and kick it if work is pending."""
        self._running = True
        self._kick()

    async def stop(self) -> None:
        """Cancel the worker and wait for it to exit."""
        self._running = False
        worker, self._worker = self._worker, None
        if worker and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

    async def suspend(self) -> None:
        """Pause draining; waits for the in-flight operation to settle."""
        self._suspended = True
        async with self._op_lock:
            pass

    def resume(self) -> None:
        self._suspended = False
        self._kick()

    async def drain(self) -> None:
        """Wait until the worker has nothing left to do (or is paused)."""
        while self._worker is not None and not self._worker.done():
            await asyncio.wait({self._worker})

    def _kick(self) -> None:
        if not self._running or self._suspended or not self._operations:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run(), name="sync-queue-worker")

    async def _run(self) -> None:
        while self._running and not self._suspended and self._operations:
            operation = self._operations[0]

            if operation.type != OperationType.ADD and is_provisional_id(operation.memory_id):
                logger.warning(
                    f"Skipping {operation.type.value} for unbound memory {operation.memory_id}"
                )
                self._operations.pop(0)
                self._changed()
                continue

            async with self._op_lock:
                self._in_flight = operation
                try:
                    await self._apply(operation)
                except Exception as e:
                    failure = e
                else:
                    failure = None
                finally:
                    self._in_flight = None

            if failure is None:
                if operation in self._operations:
                    self._operations.remove(operation)
                self._changed()
                self.monitor.notify_refresh()
                continue

            operation.retry_count += 1
            logger.warning(
                f"Sync {operation.type.value} for {operation.memory_id} failed "
                f"(attempt {operation.retry_count}/{self.max_retries}): {failure}"
            )
            if operation.retry_count >= self.max_retries:
                message = (
                    f"Dropped {operation.type.value} for {operation.memory_id} "
                    f"after {operation.retry_count} attempts: {failure}"
                )
                logger.error(message)
                if operation in self._operations:
                    self._operations.remove(operation)
                self._changed()
                self.monitor.set_error(message)
                continue

            self._save()
            delay = self.retry_delays[min(operation.retry_count - 1, len(self.retry_delays) - 1)]
            logger.debug(f"Retrying {operation.type.value} for {operation.memory_id} in {delay}s")
            await asyncio.sleep(delay)

    async def _apply(self, operation: PendingOperation) -> None:
        """Send one operation to the remote store. Raises on failure."""
        if operation.type == OperationType.ADD:
            if not operation.content:
                raise RemoteStoreError("Add operation has no content")
            remote_id = await self.remote.create(operation.content)
            old_id = operation.memory_id
            logger.info(f"Memory {old_id} created remotely as {remote_id}")

            # Creation succeeded; binding errors must not trigger a duplicate create
            if old_id:
                # Rewrites this operation too, so old_id is kept aside
                self._rebind(old_id, remote_id)
                try:
                    if not await self.cache.rebind(old_id, remote_id):
                        logger.warning(f"Memory {old_id} deleted locally before {remote_id} was bound")
                except (OSError, ValueError) as e:
                    logger.error(f"Failed to bind {old_id} to {remote_id}: {e}")
            return

        if not operation.memory_id:
            raise RemoteStoreError(f"{operation.type.value} operation has no memory id")

        if operation.type == OperationType.UPDATE:
            if not operation.content:
                raise RemoteStoreError("Update operation has no content")
            if not await self.remote.update(operation.memory_id, operation.content):
                raise RemoteStoreError(f"Remote update of {operation.memory_id} failed")
            logger.info(f"Memory {operation.memory_id} updated remotely")
            return

        if not await self.remote.archive(operation.memory_id):
            # Already gone remotely: the delete has its intended result
            logger.info(f"Memory {operation.memory_id} already absent remotely")
            return
        logger.info(f"Memory {operation.memory_id} deleted remotely")
