"""
Call State

In-memory view of one call document and the roster transitions applied to it.

Every transition mutates the state in place and returns the names of the
fields it changed, so callers can persist exactly those fields. An empty
result means the transition was a no-op.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

# Fields a transition may touch; everything else is immutable after creation
MUTABLE_FIELDS = ("participants", "listeners", "speaker_queue", "is_muted", "is_ongoing", "ended_at")


def _without(members: List[str], user_id: str) -> List[str]:
    return [m for m in members if m != user_id]


@dataclass
class CallState:
    """A group call: rosters, speaker queue and per-user mute flags."""

    id: str
    group: str
    admin: str
    participants: List[str] = field(default_factory=list)
    listeners: List[str] = field(default_factory=list)
    speaker_queue: List[str] = field(default_factory=list)
    is_muted: Dict[str, bool] = field(default_factory=dict)
    is_ongoing: bool = True
    version: int = 1
    created_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def is_admin(self, user_id: str) -> bool:
        return str(self.admin) == str(user_id)

    def muted(self, user_id: str) -> bool:
        return self.is_muted.get(user_id, False)

    # === Roster transitions ===

    def join(self, user_id: str) -> Tuple[str, ...]:
        """Add user to participants. Present attendees (either roster) are left as they are."""
        if user_id in self.participants or user_id in self.listeners:
            return ()
        self.participants.append(user_id)
        return ("participants",)

    def switch_mode(self, user_id: str) -> Tuple[str, ...]:
        """Move a listener to participants; anyone else (members or not) to listeners."""
        if user_id in self.listeners:
            self.listeners = _without(self.listeners, user_id)
            self.participants.append(user_id)
        else:
            self.participants = _without(self.participants, user_id)
            self.listeners.append(user_id)
        return ("participants", "listeners")

    def leave(self, user_id: str) -> Tuple[str, ...]:
        """Drop user from both rosters. Queue position and mute flag are kept."""
        if user_id not in self.participants and user_id not in self.listeners:
            return ()
        self.participants = _without(self.participants, user_id)
        self.listeners = _without(self.listeners, user_id)
        return ("participants", "listeners")

    # === Speaker queue ===

    def enqueue_speaker(self, user_id: str) -> Tuple[str, ...]:
        if user_id in self.speaker_queue:
            return ()
        self.speaker_queue.append(user_id)
        return ("speaker_queue",)

    def pop_speaker(self) -> Tuple[Optional[str], Tuple[str, ...]]:
        """Remove and return the head of the queue, or None when it is empty."""
        if not self.speaker_queue:
            return None, ()
        speaker = self.speaker_queue.pop(0)
        return speaker, ("speaker_queue",)

    # === Mute / lifecycle ===

    def toggle_mute(self, user_id: str) -> Tuple[bool, Tuple[str, ...]]:
        self.is_muted[user_id] = not self.muted(user_id)
        return self.is_muted[user_id], ("is_muted",)

    def end(self, ended_at: datetime) -> Tuple[str, ...]:
        if not self.is_ongoing:
            return ()
        self.is_ongoing = False
        self.ended_at = ended_at
        return ("is_ongoing", "ended_at")

    # === Serialization ===

    def fields(self, names) -> Dict[str, object]:
        """Snapshot of the named fields, copied so later mutation cannot leak into a pending write."""
        values = {}
        for name in names:
            value = getattr(self, name)
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            values[name] = value
        return values

    def to_document(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "group": self.group,
            "admin": self.admin,
            "participants": list(self.participants),
            "listeners": list(self.listeners),
            "speaker_queue": list(self.speaker_queue),
            "is_muted": dict(self.is_muted),
            "is_ongoing": self.is_ongoing,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, object]) -> "CallState":
        created_at = doc.get("created_at")
        ended_at = doc.get("ended_at")
        return cls(
            id=doc["id"],
            group=doc["group"],
            admin=doc["admin"],
            participants=list(doc.get("participants") or []),
            listeners=list(doc.get("listeners") or []),
            speaker_queue=list(doc.get("speaker_queue") or []),
            is_muted=dict(doc.get("is_muted") or {}),
            is_ongoing=bool(doc.get("is_ongoing", True)),
            version=int(doc.get("version", 1)),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
        )
