"""Sync state holder with change and refresh subscriptions."""

from collections.abc import Callable
from datetime import datetime

from mnemos.core.logging import get_logger
from mnemos.core.types import SyncState, SyncStatus
from mnemos.core.typing import Unsubscribe

logger = get_logger("sync.state")

StateChangeListener = Callable[[SyncState], None]
RefreshCallback = Callable[[], None]


class SyncMonitor:
    """Owns the process-wide SyncState and notifies subscribers of changes."""

    def __init__(self) -> None:
        self._state = SyncState()
        self._listeners: list[StateChangeListener] = []
        self._refresh_callbacks: list[RefreshCallback] = []

    @property
    def state(self) -> SyncState:
        """Snapshot of the current state."""
        return self._state.copy()

    @property
    def is_syncing(self) -> bool:
        return self._state.status == SyncStatus.SYNCING

    def on_state_change(self, callback: StateChangeListener) -> Unsubscribe:
        """Subscribe to state changes. Called immediately with the current state."""
        self._listeners.append(callback)
        self._call(callback, self.state)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def on_memories_refresh(self, callback: RefreshCallback) -> Unsubscribe:
        """Subscribe to 'memories changed remotely or were synced' events."""
        self._refresh_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._refresh_callbacks:
                self._refresh_callbacks.remove(callback)

        return unsubscribe

    def begin_sync(self) -> None:
        self._state.status = SyncStatus.SYNCING
        self._state.error = None
        self._notify()

    def finish_sync(self, when: datetime) -> None:
        self._state.status = SyncStatus.IDLE
        self._state.last_sync = when
        self._state.error = None
        self._notify()

    def fail_sync(self, message: str) -> None:
        self._state.status = SyncStatus.ERROR
        self._state.error = message
        self._notify()

    def set_error(self, message: str) -> None:
        # A running pass owns the status; it reports its own outcome
        if self._state.status != SyncStatus.SYNCING:
            self._state.status = SyncStatus.ERROR
        self._state.error = message
        self._notify()

    def set_pending(self, count: int) -> None:
        if count == self._state.pending_operations:
            return
        self._state.pending_operations = count
        self._notify()

    def set_last_sync(self, when: datetime | None) -> None:
        self._state.last_sync = when
        self._notify()

    def notify_refresh(self) -> None:
        for callback in list(self._refresh_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in memories refresh callback: {e}")

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            self._call(listener, snapshot)

    @staticmethod
    def _call(listener: StateChangeListener, state: SyncState) -> None:
        try:
            listener(state)
        except Exception as e:
            logger.warning(f"Error in sync state listener: {e}")
