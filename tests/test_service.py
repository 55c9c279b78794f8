"""Tests for the MemoryService facade."""

import pytest

from mnemos.core.config import Settings
from mnemos.core.types import OperationType, SyncStatus
from mnemos.memory.base import is_provisional_id
from mnemos.service import MemoryService

from conftest import FakeEmbeddings, FakeRemoteStore


@pytest.fixture
async def service(settings: Settings, embeddings: FakeEmbeddings, remote: FakeRemoteStore):
    svc = MemoryService(settings, embeddings, remote)
    await svc.open()
    yield svc
    await svc.close()


@pytest.mark.asyncio
async def test_add_is_local_then_synced(service: MemoryService, remote: FakeRemoteStore):
    """Add returns immediately with a provisional id, then binds to the remote page."""
    memory_id = await service.add_memory("User's birthday is in May")
    assert is_provisional_id(memory_id)
    assert service.get_memory(memory_id) is not None

    await service.wait_for_sync()

    assert service.get_memory("page-1").content == "User's birthday is in May"
    assert remote.pages["page-1"].content == "User's birthday is in May"
    assert service.get_state().pending_operations == 0


@pytest.mark.asyncio
async def test_update_and_delete_reach_remote(service: MemoryService, remote: FakeRemoteStore):
    await service.add_memory("draft")
    await service.wait_for_sync()

    assert await service.update_memory("page-1", "final") is True
    await service.wait_for_sync()
    assert remote.pages["page-1"].content == "final"

    assert await service.delete_memory("page-1") is True
    await service.wait_for_sync()
    assert "page-1" not in remote.pages
    assert service.get_all_memories() == []


@pytest.mark.asyncio
async def test_update_missing_returns_false(service: MemoryService):
    assert await service.update_memory("nope", "content") is False
    assert await service.delete_memory("nope") is False


@pytest.mark.asyncio
async def test_search(service: MemoryService):
    await service.add_memory("plays the violin")
    await service.add_memory("allergic to peanuts")

    matches = await service.search_memories("allergic to peanuts", top_k=1)
    assert len(matches) == 1
    assert matches[0].memory.content == "allergic to peanuts"


@pytest.mark.asyncio
async def test_offline_edits_collapse(settings, embeddings, remote):
    """Without a running worker, add then update leaves a single add."""
    service = MemoryService(settings, embeddings, remote)
    await service.open(start_worker=False)

    memory_id = await service.add_memory("draft")
    await service.update_memory(memory_id, "final")

    ops = service.queue.operations
    assert len(ops) == 1
    assert ops[0].type == OperationType.ADD
    assert ops[0].content == "final"

    await service.delete_memory(memory_id)
    assert service.queue.operations == []
    await service.close()
    assert remote.calls == []


@pytest.mark.asyncio
async def test_queue_survives_restart(settings, embeddings, remote):
    first = MemoryService(settings, embeddings, remote)
    await first.open(start_worker=False)
    await first.add_memory("kept for later")
    await first.close()

    second = MemoryService(settings, embeddings, FakeRemoteStore())
    await second.open(start_worker=False)
    assert second.get_state().pending_operations == 1
    assert [m.content for m in second.get_all_memories()] == ["kept for later"]
    await second.close()


@pytest.mark.asyncio
async def test_sync_with_notion_imports(service: MemoryService, remote: FakeRemoteStore):
    remote.seed("page-x", "imported fact", remote.clock)
    refreshed = []
    service.on_memories_refresh(lambda: refreshed.append(True))

    task = service.sync_with_notion()
    assert task is not None
    await service.wait_for_sync()

    assert service.get_memory("page-x").content == "imported fact"
    assert refreshed
    assert service.get_state().status == SyncStatus.IDLE


@pytest.mark.asyncio
async def test_sync_on_open(settings, embeddings, remote):
    remote.seed("page-x", "imported fact", remote.clock)
    service = MemoryService(settings.model_copy(update={"sync_on_open": True}), embeddings, remote)

    async with service:
        await service.wait_for_sync()
        assert service.get_memory("page-x") is not None

    assert remote.closed


@pytest.mark.asyncio
async def test_state_subscription(service: MemoryService):
    """Subscribers get the current state at once and can unsubscribe."""
    seen = []
    unsubscribe = service.on_state_change(lambda state: seen.append(state.pending_operations))
    assert seen == [0]

    await service.add_memory("one")
    assert 1 in seen

    unsubscribe()
    count = len(seen)
    await service.add_memory("two")
    assert len(seen) == count


@pytest.mark.asyncio
async def test_close_releases_remote(settings, embeddings, remote):
    service = MemoryService(settings, embeddings, remote)
    await service.open()
    await service.close()
    assert remote.closed
