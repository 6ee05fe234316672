"""
Application-wide constants for configuration and tuning.

Environment-dependent settings (DB, Redis, JWT) belong in settings.py.
This file is for operational parameters that rarely change between environments.
"""

# ==============================================================================
# DATABASE
# ==============================================================================

# Connection pool size for the async engine
DB_POOL_SIZE: int = 10

# Extra connections allowed above the pool size under load
DB_POOL_MAX_OVERFLOW: int = 20

# ==============================================================================
# IDENTIFIERS
# ==============================================================================

# Longest user or circle id accepted from clients; matches the calls table columns
MAX_ID_LENGTH: int = 64

# ==============================================================================
# REDIS CALL STORE
# ==============================================================================

# Key holding one call document (JSON)
CALL_KEY_PREFIX: str = "call:"

# Set of call ids per circle
GROUP_CALLS_KEY_PREFIX: str = "circle:calls:"

# ==============================================================================
# CALL STATUS MESSAGES
# ==============================================================================

MSG_CALL_STARTED: str = "Call successfully started!"
MSG_CALL_FOUND: str = "Call found"
MSG_JOINED: str = "Joined the call"
MSG_SWITCHED_MODE: str = "Switched mode"
MSG_QUEUED: str = "Added to the speaker queue"
MSG_NEXT_SPEAKER: str = "Next speaker called"
MSG_QUEUE_EMPTY: str = "No more speakers in the queue"
MSG_MUTE_CHANGED: str = "User {user_id} mute status changed"
MSG_LEFT: str = "Left the call"
MSG_CALL_ENDED: str = "Call ended successfully"
