"""In-process memory cache backed by the binary store."""

from dataclasses import replace
from datetime import datetime, timedelta

from mnemos.core.logging import get_logger
from mnemos.core.types import utc_now
from mnemos.llm.embeddings import DocumentWithEmbedding, EmbeddingProvider
from mnemos.memory.base import Memory, MemoryMatch, MemoryNotFoundError, new_provisional_id
from mnemos.memory.binary import BinaryStore
from mnemos.memory.lock import WriteLock

logger = get_logger("memory.cache")


class MemoryCache:
    """Canonical view of all memories.

    Hydrated from the binary store on first use; afterwards every read is
    served from memory. Writers embed outside the lock, then splice the
    list and rewrite the file while holding it. The new list only replaces
    the old one once the file write succeeded.
    """

    def __init__(self, store: BinaryStore, embeddings: EmbeddingProvider):
        self.store = store
        self.embeddings = embeddings
        self.lock = WriteLock()
        self._memories: list[Memory] | None = None
        self._last_sync: datetime | None = None

    def _ensure_loaded(self) -> list[Memory]:
        if self._memories is None:
            snapshot = self.store.load()
            self._memories = snapshot.memories
            self._last_sync = snapshot.last_sync
            logger.info(f"Loaded {len(self._memories)} memories from {self.store.path}")
        return self._memories

    def _commit(self, memories: list[Memory], last_sync: datetime | None = None) -> None:
        """Persist then publish. Caller must hold the lock."""
        if last_sync is None:
            last_sync = self._last_sync
        self.store.save(memories, last_sync)
        self._memories = memories
        self._last_sync = last_sync

    @property
    def last_sync(self) -> datetime | None:
        self._ensure_loaded()
        return self._last_sync

    def __len__(self) -> int:
        return len(self._ensure_loaded())

    def get(self, memory_id: str) -> Memory | None:
        """Get specific memory by ID."""
        for memory in self._ensure_loaded():
            if memory.id == memory_id:
                return memory
        return None

    def get_all(self) -> list[Memory]:
        """All memories in insertion order."""
        return list(self._ensure_loaded())

    async def search(self, query: str, top_k: int = 5) -> list[MemoryMatch]:
        """Rank memories by cosine similarity to the query."""
        memories = self._ensure_loaded()
        if not memories:
            return []

        query_embedding = await self.embeddings.create_embedding(query)

        by_id = {m.id: m for m in memories}
        documents = [
            DocumentWithEmbedding(id=m.id, content=m.content, embedding=m.embedding)
            for m in memories
        ]
        results = self.embeddings.find_most_similar(query_embedding, documents, top_k)
        return [MemoryMatch(memory=by_id[r.id], similarity=r.similarity) for r in results]

    async def add(self, content: str) -> str:
        """Embed and store a new memory, return its (provisional) ID."""
        if not content or not content.strip():
            raise ValueError("Memory content must not be empty")

        embedding = await self.embeddings.create_embedding(content)

        async with self.lock:
            memories = self._ensure_loaded()
            now = utc_now()
            memory = Memory(
                id=new_provisional_id(),
                content=content,
                embedding=embedding,
                created_at=now,
                updated_at=now,
            )
            self._commit([*memories, memory])

        logger.info(f"Memory added locally: {memory.id}")
        return memory.id

    async def update(self, memory_id: str, content: str) -> Memory:
        """Replace content and re-embed. Raises MemoryNotFoundError."""
        if not content or not content.strip():
            raise ValueError("Memory content must not be empty")
        if self.get(memory_id) is None:
            raise MemoryNotFoundError(memory_id)

        embedding = await self.embeddings.create_embedding(content)

        async with self.lock:
            memories = self._ensure_loaded()
            index = _index_of(memories, memory_id)
            if index is None:
                # Deleted while we were embedding
                raise MemoryNotFoundError(memory_id)

            existing = memories[index]
            updated_at = max(utc_now(), existing.updated_at + timedelta(milliseconds=1))
            updated = replace(
                existing, content=content, embedding=embedding, updated_at=updated_at
            )
            new_memories = list(memories)
            new_memories[index] = updated
            self._commit(new_memories)

        logger.info(f"Memory updated locally: {memory_id}")
        return updated

    async def delete(self, memory_id: str) -> bool:
        """Remove memory. False if it was already absent."""
        async with self.lock:
            memories = self._ensure_loaded()
            index = _index_of(memories, memory_id)
            if index is None:
                return False
            self._commit(memories[:index] + memories[index + 1:])

        logger.info(f"Memory deleted locally: {memory_id}")
        return True

    async def rebind(self, old_id: str, new_id: str) -> bool:
        """Swap a provisional ID for the remote identity."""
        async with self.lock:
            memories = self._ensure_loaded()
            index = _index_of(memories, old_id)
            if index is None:
                return False
            new_memories = list(memories)
            new_memories[index] = replace(memories[index], id=new_id)
            self._commit(new_memories)

        logger.debug(f"Rebound memory {old_id} -> {new_id}")
        return True

    async def apply_remote(
        self,
        imports: list[Memory],
        overwrites: list[Memory],
        removals: list[str],
    ) -> int:
        """Apply a reconciliation result in one locked rewrite.

        Imports are skipped if the ID appeared locally in the meantime;
        overwrites only apply while still strictly newer than the local copy.
        Returns the number of records changed.
        """
        if not (imports or overwrites or removals):
            return 0

        async with self.lock:
            memories = list(self._ensure_loaded())
            changed = 0

            removal_set = set(removals)
            if removal_set:
                kept = [m for m in memories if m.id not in removal_set]
                changed += len(memories) - len(kept)
                memories = kept

            for incoming in overwrites:
                index = _index_of(memories, incoming.id)
                if index is None or incoming.updated_at <= memories[index].updated_at:
                    continue
                memories[index] = replace(
                    memories[index],
                    content=incoming.content,
                    embedding=incoming.embedding,
                    updated_at=incoming.updated_at,
                )
                changed += 1

            present = {m.id for m in memories}
            for incoming in imports:
                if incoming.id in present:
                    continue
                memories.append(incoming)
                present.add(incoming.id)
                changed += 1

            if changed:
                self._commit(memories)

        return changed

    async def mark_synced(self, when: datetime | None = None) -> None:
        """Record a completed reconciliation and persist."""
        async with self.lock:
            memories = self._ensure_loaded()
            self._commit(list(memories), when or utc_now())


def _index_of(memories: list[Memory], memory_id: str) -> int | None:
    for i, memory in enumerate(memories):
        if memory.id == memory_id:
            return i
    return None
