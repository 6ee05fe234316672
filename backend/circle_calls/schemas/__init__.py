"""
Schemas Package

Pydantic models for the calls API.
"""

from circle_calls.schemas.call import (
    CallOut,
    StartCallRequest,
    CallResponse,
    CallListResponse,
    SpeakerResponse,
    MuteResponse,
)

__all__ = [
    "CallOut",
    "StartCallRequest",
    "CallResponse",
    "CallListResponse",
    "SpeakerResponse",
    "MuteResponse",
]
