"""
CLI entry point.

Commands:
- list: Show all memories
- search <query> [k]: Semantic search
- add <text>: Add a memory
- update <id> <text>: Replace a memory's content
- delete <id>: Delete a memory
- sync: Reconcile with Notion and drain the sync queue
- status: Show sync state and pending operations

Flags:
- --debug: Enable debug logging to file
"""

import asyncio
import logging
import sys

from mnemos.core.config import Settings, get_settings
from mnemos.core.logging import get_logger, setup_logging
from mnemos.core.types import SyncStatus
from mnemos.service import MemoryService

USAGE = """Usage: mnemos [--debug] <command> [args]
Commands:
  list                  Show all memories
  search <query> [k]    Semantic search (default k=5)
  add <text>            Add a memory
  update <id> <text>    Replace a memory's content
  delete <id>           Delete a memory
  sync                  Reconcile with Notion
  status                Show sync state"""


def main() -> int:
    """Main entry point."""
    settings = get_settings()

    # Parse --debug flag (enables verbose DEBUG traces)
    argv = sys.argv[1:]
    debug_mode = "--debug" in argv
    if debug_mode:
        argv.remove("--debug")

    log_level = logging.DEBUG if debug_mode else logging.WARNING
    log_file = settings.data_dir / "mnemos.log"
    setup_logging(level=log_level, log_file=log_file)

    if not argv:
        print(USAGE)
        return 1

    command, args = argv[0], argv[1:]
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print(USAGE)
        return 1

    return asyncio.run(run_command(settings, command, args))


async def run_command(
    settings: Settings,
    command: str,
    args: list[str],
    service: MemoryService | None = None,
) -> int:
    """Open the service, run one command, close it."""
    logger = get_logger("cli")
    handler = COMMANDS[command]

    # Only the sync command talks to Notion up front
    settings = settings.model_copy(update={"sync_on_open": False})
    service = service or MemoryService.from_settings(settings)

    try:
        await service.open(start_worker=command in WRITE_COMMANDS or command == "sync")
        return await handler(service, args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Command {command} failed: {e}", exc_info=True)
        print(f"Error: {e}")
        return 1
    finally:
        if command in WRITE_COMMANDS:
            # Give queued operations a chance to reach Notion before exit
            await service.queue.drain()
        await service.close()


async def _list(service: MemoryService, args: list[str]) -> int:
    memories = service.get_all_memories()
    if not memories:
        print("No memories.")
        return 0
    for memory in memories:
        print(f"{memory.id}  [{memory.updated_at:%Y-%m-%d %H:%M}]  {memory.content}")
    print(f"\n{len(memories)} memories")
    return 0


async def _search(service: MemoryService, args: list[str]) -> int:
    if not args:
        print("Usage: mnemos search <query> [k]")
        return 1
    top_k = int(args[1]) if len(args) > 1 else 5
    matches = await service.search_memories(args[0], top_k)
    if not matches:
        print("No matches.")
        return 0
    for match in matches:
        print(f"{match.similarity:.3f}  {match.memory.id}  {match.memory.content}")
    return 0


async def _add(service: MemoryService, args: list[str]) -> int:
    if not args:
        print("Usage: mnemos add <text>")
        return 1
    memory_id = await service.add_memory(" ".join(args))
    print(f"Added: {memory_id}")
    return 0


async def _update(service: MemoryService, args: list[str]) -> int:
    if len(args) < 2:
        print("Usage: mnemos update <id> <text>")
        return 1
    if not await service.update_memory(args[0], " ".join(args[1:])):
        print(f"Memory not found: {args[0]}")
        return 1
    print(f"Updated: {args[0]}")
    return 0


async def _delete(service: MemoryService, args: list[str]) -> int:
    if not args:
        print("Usage: mnemos delete <id>")
        return 1
    if not await service.delete_memory(args[0]):
        print(f"Memory not found: {args[0]}")
        return 1
    print(f"Deleted: {args[0]}")
    return 0


async def _sync(service: MemoryService, args: list[str]) -> int:
    print("Syncing with Notion...")
    service.sync_with_notion()
    await service.wait_for_sync()
    state = service.get_state()
    if state.status == SyncStatus.ERROR:
        print(f"Sync failed: {state.error}")
        return 1
    print(f"Synced. {len(service.get_all_memories())} memories, "
          f"{state.pending_operations} pending operations.")
    return 0


async def _status(service: MemoryService, args: list[str]) -> int:
    state = service.get_state()
    last_sync = state.last_sync.isoformat() if state.last_sync else "never"
    print(f"Status: {state.status.value}")
    print(f"Memories: {len(service.get_all_memories())}")
    print(f"Pending operations: {state.pending_operations}")
    print(f"Last sync: {last_sync}")
    if state.error:
        print(f"Error: {state.error}")
    for op in service.queue.operations:
        print(f"  {op.type.value:<6} {op.memory_id}  (retries: {op.retry_count})")
    return 0


WRITE_COMMANDS = {"add", "update", "delete"}

COMMANDS = {
    "list": _list,
    "search": _search,
    "add": _add,
    "update": _update,
    "delete": _delete,
    "sync": _sync,
    "status": _status,
}


if __name__ == "__main__":
    sys.exit(main())
