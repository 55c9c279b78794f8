"""Shared typing aliases used across modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

JSONDict: TypeAlias = dict[str, Any]
Unsubscribe: TypeAlias = Callable[[], None]
