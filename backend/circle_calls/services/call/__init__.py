"""
Call Service Module

Exposes the call session manager, its record stores and exceptions.
"""
from typing import Optional

from circle_calls.config.settings import settings
from .service import CallSessionManager
from .state import CallState
from .store import CallStore, SqlCallStore, RedisCallStore
from .exceptions import (
    CallServiceError,
    CallNotFoundError,
    NotAllowedError,
    CallEndedError,
    CallConflictError,
    CallStoreError,
)

_manager: Optional[CallSessionManager] = None


def build_call_store(backend: Optional[str] = None) -> CallStore:
    backend = (backend or settings.CALL_STORE_BACKEND).lower()
    if backend == "sql":
        return SqlCallStore()
    if backend == "redis":
        return RedisCallStore()
    raise ValueError(f"Unknown call store backend: {backend}")


def get_call_manager() -> CallSessionManager:
    """Process-wide manager; the per-call locks only work if it is shared."""
    global _manager
    if _manager is None:
        _manager = CallSessionManager(build_call_store())
    return _manager


__all__ = [
    "CallSessionManager",
    "CallState",
    "CallStore",
    "SqlCallStore",
    "RedisCallStore",
    "build_call_store",
    "get_call_manager",
    "CallServiceError",
    "CallNotFoundError",
    "NotAllowedError",
    "CallEndedError",
    "CallConflictError",
    "CallStoreError",
]
