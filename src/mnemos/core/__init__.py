"""
Core module - configuration, logging, shared types.

Components:
- config: Settings management via pydantic-settings
- types: Shared data structures (SyncState, PendingOperation, etc.)
- logging: Structured logging setup
"""

from mnemos.core.config import Settings
from mnemos.core.types import PendingOperation, SyncState, SyncStatus

__all__ = ["Settings", "PendingOperation", "SyncState", "SyncStatus"]
