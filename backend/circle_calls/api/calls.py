"""
Calls API - Endpoints for group calls

Implements:
- Starting and ending calls
- Joining, leaving and switching participant/listener mode
- Speaker queue requests and advancing
- Mute toggling
- Call lookup and per-circle listing
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from circle_calls.api.deps import get_current_user_id, get_manager
from circle_calls.config.constants import (
    MSG_CALL_STARTED,
    MSG_CALL_FOUND,
    MSG_JOINED,
    MSG_SWITCHED_MODE,
    MSG_QUEUED,
    MSG_NEXT_SPEAKER,
    MSG_QUEUE_EMPTY,
    MSG_MUTE_CHANGED,
    MSG_LEFT,
    MSG_CALL_ENDED,
)
from circle_calls.services.call import (
    CallSessionManager,
    CallServiceError,
    CallNotFoundError,
    NotAllowedError,
    CallEndedError,
    CallConflictError,
    CallStoreError,
)
from circle_calls.schemas.call import (
    StartCallRequest,
    CallOut,
    CallResponse,
    CallListResponse,
    SpeakerResponse,
    MuteResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: CallServiceError) -> HTTPException:
    if isinstance(e, CallNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, NotAllowedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, (CallEndedError, CallConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, CallStoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    logger.error(f"[Calls] Unexpected call service error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/calls", response_model=CallResponse)
async def start_call(
    req: StartCallRequest,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    """
    Start a new call in a circle.

    The caller becomes the call's admin.
    """
    try:
        call = await manager.start_call(user_id, req.circle)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_CALL_STARTED, call=CallOut.from_state(call))


@router.get("/calls/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    try:
        call = await manager.get_call(call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_CALL_FOUND, call=CallOut.from_state(call))


@router.get("/circles/{circle}/calls", response_model=CallListResponse)
async def list_circle_calls(
    circle: str,
    ongoing: bool = True,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    """List a circle's calls, newest first."""
    try:
        calls = await manager.list_group_calls(circle, ongoing_only=ongoing)
    except CallServiceError as e:
        raise _http_error(e)
    return CallListResponse(calls=[CallOut.from_state(c) for c in calls])


@router.patch("/calls/{call_id}/join", response_model=CallResponse)
async def join_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    try:
        call = await manager.join_call(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_JOINED, call=CallOut.from_state(call))


@router.patch("/calls/{call_id}/mode", response_model=CallResponse)
async def switch_participant_mode(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    """Toggle between participant (may speak) and listener."""
    try:
        call = await manager.switch_participant_mode(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_SWITCHED_MODE, call=CallOut.from_state(call))


@router.patch("/calls/{call_id}/queue", response_model=CallResponse)
async def request_to_speak(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    try:
        call = await manager.request_to_speak(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_QUEUED, call=CallOut.from_state(call))


@router.patch("/calls/{call_id}/next-speaker", response_model=SpeakerResponse)
async def call_next_speaker(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    """
    Give the floor to the head of the speaker queue (admin only).

    An empty queue is reported in the message with no speaker.
    """
    try:
        speaker = await manager.call_next_speaker(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    if speaker is None:
        return SpeakerResponse(msg=MSG_QUEUE_EMPTY)
    return SpeakerResponse(msg=MSG_NEXT_SPEAKER, speaker=speaker)


@router.patch("/calls/{call_id}/mute", response_model=MuteResponse)
async def mute_switch(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    try:
        is_muted = await manager.mute_switch(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return MuteResponse(msg=MSG_MUTE_CHANGED.format(user_id=user_id), is_muted=is_muted)


@router.patch("/calls/{call_id}/leave", response_model=CallResponse)
async def leave_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    try:
        call = await manager.leave_call(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_LEFT, call=CallOut.from_state(call))


@router.patch("/calls/{call_id}/end", response_model=CallResponse)
async def end_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: CallSessionManager = Depends(get_manager)
):
    """
    End a call (admin only).

    The record is kept as history; no further changes are accepted.
    """
    try:
        call = await manager.end_call(user_id, call_id)
    except CallServiceError as e:
        raise _http_error(e)
    return CallResponse(msg=MSG_CALL_ENDED, call=CallOut.from_state(call))
