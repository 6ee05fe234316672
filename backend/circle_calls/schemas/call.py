from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from circle_calls.config.constants import MAX_ID_LENGTH
from circle_calls.services.call.state import CallState


class StartCallRequest(BaseModel):
    circle: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)


class CallOut(BaseModel):
    id: str
    group: str
    admin: str
    participants: List[str]
    listeners: List[str]
    speaker_queue: List[str]
    is_muted: Dict[str, bool]
    is_ongoing: bool
    created_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, call: CallState) -> "CallOut":
        return cls(
            id=call.id,
            group=call.group,
            admin=call.admin,
            participants=call.participants,
            listeners=call.listeners,
            speaker_queue=call.speaker_queue,
            is_muted=call.is_muted,
            is_ongoing=call.is_ongoing,
            created_at=call.created_at,
            ended_at=call.ended_at,
        )


class CallResponse(BaseModel):
    msg: str
    call: CallOut


class CallListResponse(BaseModel):
    calls: List[CallOut]


class SpeakerResponse(BaseModel):
    msg: str
    speaker: Optional[str] = None


class MuteResponse(BaseModel):
    msg: str
    is_muted: bool
