"""
Database Models Package

Tables:
1. calls - Group call documents (rosters, speaker queue, mute flags)
"""

from .database import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
)

from .call import Call

__all__ = [
    # Database utilities
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",

    # Models
    "Call",
]
