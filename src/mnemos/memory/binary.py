"""Versioned binary file holding every memory with its embedding.

Layout (all integers little-endian):

    header:  version u32 | count u32 | last_sync_ms i64          (16 bytes)
    record:  id[64] (UTF-8, null-padded)
             content_length u32 | content (UTF-8)
             created_at_ms i64 | updated_at_ms i64
             embedding (dim x float32)

Version 1 records carried a local id plus a separate remote id:

    record:  local_id[64] | content_length u32 | content
             created_at_ms i64 | updated_at_ms i64 | sync_status u8
             remote_id[64] | embedding (dim x float32)

Loading a v1 file keeps only records with a remote id and rewrites the file
as v2.
"""

import struct
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from mnemos.core.logging import get_logger
from mnemos.core.types import from_epoch_ms, to_epoch_ms
from mnemos.memory.base import Memory

logger = get_logger("memory.binary")

EMBEDDING_DIM = 1536
ID_SIZE = 64
CURRENT_VERSION = 2
LEGACY_VERSION = 1

_HEADER = struct.Struct("<IIq")
_U32 = struct.Struct("<I")
_TIMESTAMPS = struct.Struct("<qq")
_SYNC_STATUS = struct.Struct("<B")


class StoreFormatError(ValueError):
    """Raised when the file cannot be decoded."""


@dataclass
class StoreSnapshot:
    """Decoded file contents."""

    memories: list[Memory] = field(default_factory=list)
    last_sync: datetime | None = None


class _Reader:
    """Bounds-checked cursor over the file buffer."""

    def __init__(self, buffer: bytes, offset: int = 0):
        self.buffer = buffer
        self.offset = offset

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.buffer):
            raise StoreFormatError(f"Truncated record at byte {self.offset}")
        chunk = self.buffer[self.offset:end]
        self.offset = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def read_id(self) -> str:
        raw = self.take(ID_SIZE)
        return raw.split(b"\0", 1)[0].decode("utf-8")

    def read_content(self) -> str:
        (length,) = self.unpack(_U32)
        return self.take(length).decode("utf-8")

    def read_embedding(self, dim: int) -> list[float]:
        return list(struct.unpack(f"<{dim}f", self.take(dim * 4)))


class BinaryStore:
    """Loads and saves the memory file."""

    def __init__(self, path: Path, embedding_dim: int = EMBEDDING_DIM):
        self.path = path
        self.embedding_dim = embedding_dim

    def load(self) -> StoreSnapshot:
        """Read the file. Never raises: any problem yields an empty snapshot."""
        if not self.path.exists():
            return StoreSnapshot()

        try:
            buffer = self.path.read_bytes()
        except OSError as e:
            logger.warning(f"Failed to read memory file {self.path}: {e}")
            return StoreSnapshot()

        if len(buffer) < _HEADER.size:
            logger.warning(f"Memory file {self.path} is too short, starting empty")
            return StoreSnapshot()

        (version,) = _U32.unpack_from(buffer, 0)

        if version == LEGACY_VERSION:
            logger.info("Migrating memory file from v1 binary format")
            return self._migrate_v1(buffer)

        if version != CURRENT_VERSION:
            logger.warning(f"Unknown memory file version {version}, starting empty")
            return StoreSnapshot()

        try:
            return self._decode(buffer)
        except (StoreFormatError, UnicodeDecodeError, struct.error) as e:
            logger.warning(f"Failed to decode memory file: {e}")
            return StoreSnapshot()

    def save(self, memories: list[Memory], last_sync: datetime | None) -> None:
        """Rewrite the whole file from the full record set."""
        dim = self.embedding_dim
        encoded = []
        total_size = _HEADER.size
        for memory in memories:
            id_bytes = memory.id.encode("utf-8")
            if len(id_bytes) > ID_SIZE:
                raise ValueError(f"Memory id longer than {ID_SIZE} bytes: {memory.id!r}")
            if len(memory.embedding) != dim:
                raise ValueError(
                    f"Memory {memory.id} has {len(memory.embedding)}-dim embedding, expected {dim}"
                )
            content_bytes = memory.content.encode("utf-8")
            encoded.append((memory, id_bytes, content_bytes))
            total_size += ID_SIZE + _U32.size + len(content_bytes) + _TIMESTAMPS.size + dim * 4

        buffer = bytearray(total_size)
        last_sync_ms = to_epoch_ms(last_sync) if last_sync else 0
        _HEADER.pack_into(buffer, 0, CURRENT_VERSION, len(memories), last_sync_ms)
        offset = _HEADER.size

        embedding_format = struct.Struct(f"<{dim}f")
        for memory, id_bytes, content_bytes in encoded:
            # bytearray is zero-filled, so the id is null-padded already
            buffer[offset:offset + len(id_bytes)] = id_bytes
            offset += ID_SIZE

            _U32.pack_into(buffer, offset, len(content_bytes))
            offset += _U32.size
            buffer[offset:offset + len(content_bytes)] = content_bytes
            offset += len(content_bytes)

            _TIMESTAMPS.pack_into(
                buffer, offset, to_epoch_ms(memory.created_at), to_epoch_ms(memory.updated_at)
            )
            offset += _TIMESTAMPS.size

            embedding_format.pack_into(buffer, offset, *memory.embedding)
            offset += embedding_format.size

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(bytes(buffer))
        logger.debug(f"Saved {len(memories)} memories to {self.path}")

    def _decode(self, buffer: bytes) -> StoreSnapshot:
        _, count, last_sync_ms = _HEADER.unpack_from(buffer, 0)
        reader = _Reader(buffer, _HEADER.size)

        memories = []
        for _ in range(count):
            memory_id = reader.read_id()
            content = reader.read_content()
            created_ms, updated_ms = reader.unpack(_TIMESTAMPS)
            embedding = reader.read_embedding(self.embedding_dim)
            memories.append(
                Memory(
                    id=memory_id,
                    content=content,
                    embedding=embedding,
                    created_at=from_epoch_ms(created_ms),
                    updated_at=from_epoch_ms(updated_ms),
                )
            )

        return StoreSnapshot(
            memories=memories,
            last_sync=from_epoch_ms(last_sync_ms) if last_sync_ms else None,
        )

    def _migrate_v1(self, buffer: bytes) -> StoreSnapshot:
        """Map v1 records onto remote identities and rewrite as v2."""
        try:
            _, count, last_sync_ms = _HEADER.unpack_from(buffer, 0)
            reader = _Reader(buffer, _HEADER.size)

            memories = []
            skipped = 0
            for _ in range(count):
                reader.read_id()  # local id, superseded by the remote id
                content = reader.read_content()
                created_ms, updated_ms = reader.unpack(_TIMESTAMPS)
                reader.unpack(_SYNC_STATUS)
                remote_id = reader.read_id()
                embedding = reader.read_embedding(self.embedding_dim)

                if not remote_id:
                    skipped += 1
                    continue

                memories.append(
                    Memory(
                        id=remote_id,
                        content=content,
                        embedding=embedding,
                        created_at=from_epoch_ms(created_ms),
                        updated_at=from_epoch_ms(updated_ms),
                    )
                )

            snapshot = StoreSnapshot(
                memories=memories,
                last_sync=from_epoch_ms(last_sync_ms) if last_sync_ms else None,
            )
            self.save(snapshot.memories, snapshot.last_sync)
        except (StoreFormatError, UnicodeDecodeError, struct.error, ValueError, OSError) as e:
            logger.warning(f"Failed to migrate v1 memory file: {e}")
            return StoreSnapshot()

        logger.info(
            f"Migration from v1 complete: {len(memories)} memories kept, "
            f"{skipped} unsynced dropped"
        )
        return snapshot
