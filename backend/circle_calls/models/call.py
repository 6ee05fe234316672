"""
Call Model - Group Call Document

One row per call. Rosters, the speaker queue and mute flags are stored
as JSON columns and always written together with a bumped version.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, JSON
from datetime import datetime
import uuid

from circle_calls.config.constants import MAX_ID_LENGTH
from .database import Base


class Call(Base):
    """Group call record"""
    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Owning circle and the user who started the call (both immutable)
    group_id = Column(String(MAX_ID_LENGTH), nullable=False, index=True)
    admin_id = Column(String(MAX_ID_LENGTH), nullable=False, index=True)

    # Roster state
    participants = Column(JSON, nullable=False, default=list)
    listeners = Column(JSON, nullable=False, default=list)
    speaker_queue = Column(JSON, nullable=False, default=list)
    is_muted = Column(JSON, nullable=False, default=dict)

    # Status
    is_ongoing = Column(Boolean, nullable=False, default=True, index=True)

    # Optimistic concurrency token, bumped on every update
    version = Column(Integer, nullable=False, default=1)

    # Timing
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
