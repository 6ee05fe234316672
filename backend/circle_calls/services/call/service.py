"""
Call Service - Call Session Manager

Owns every state transition of a group call:
- Starting and ending calls (admin only for ending)
- Joining, leaving and switching between participant/listener
- Speaker queue requests and advancing (admin only)
- Per-user mute toggling

Operations on the same call are serialized by a per-call lock in this
process, and every write is a conditional update against the version that
was read, so writers in other processes cannot clobber each other either.
"""
import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from circle_calls.config.settings import settings
from .exceptions import (
    CallConflictError,
    CallEndedError,
    CallNotFoundError,
    NotAllowedError,
)
from .state import CallState
from .store import CallStore

logger = logging.getLogger(__name__)

# A transition receives the freshly read state and returns (result, changed_fields)
Transition = Callable[[CallState], Tuple[Any, Tuple[str, ...]]]


class CallSessionManager:
    """Service for managing group calls and their rosters."""

    def __init__(self, store: CallStore, max_retries: Optional[int] = None):
        self.store = store
        self.max_retries = settings.CALL_UPDATE_MAX_RETRIES if max_retries is None else max_retries
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, call_id: str) -> asyncio.Lock:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        return lock

    async def _load(self, call_id: str) -> CallState:
        call = await self.store.read_one(call_id)
        if call is None:
            raise CallNotFoundError(f"Call {call_id} does not exist")
        return call

    async def _apply(
        self,
        call_id: str,
        transition: Transition,
        allow_ended: bool = False
    ) -> Tuple[Any, CallState]:
        """
        Read the call, run the transition and persist the fields it changed.

        Retries from a fresh read when the conditional write loses a race.

        Returns:
            Tuple of (transition result, resulting CallState)
        """
        async with self._lock_for(call_id):
            for attempt in range(1, self.max_retries + 1):
                call = await self._load(call_id)
                if not call.is_ongoing and not allow_ended:
                    raise CallEndedError(f"Call {call_id} has already ended")

                result, changed = transition(call)
                if not changed:
                    return result, call

                applied = await self.store.partial_update_one(
                    call_id, call.fields(changed), expected_version=call.version
                )
                if applied:
                    call.version += 1
                    return result, call

                logger.warning(
                    f"[Calls] Concurrent update on call {call_id}, retrying "
                    f"({attempt}/{self.max_retries})"
                )

        raise CallConflictError(
            f"Call {call_id} kept changing; gave up after {self.max_retries} attempts"
        )

    @staticmethod
    def _require_admin(call: CallState, user_id: str, action: str) -> None:
        if not call.is_admin(user_id):
            logger.warning(f"[Calls] User {user_id} tried to {action} call {call.id} without being admin")
            raise NotAllowedError(f"Only the admin can {action} the call")

    # === Lifecycle ===

    async def start_call(self, admin: str, group: str) -> CallState:
        """
        Start a new call in a circle.

        A circle may host several calls at once; no uniqueness is enforced.
        """
        call_id = await self.store.create_one({
            "group": group,
            "admin": admin,
            "participants": [],
            "listeners": [],
            "speaker_queue": [],
            "is_muted": {},
            "is_ongoing": True,
        })
        logger.info(f"[Calls] Call {call_id} started by {admin} in circle {group}")
        return await self._load(call_id)

    async def end_call(self, admin: str, call_id: str) -> CallState:
        """
        End a call. Only the admin may do this, and it cannot be undone.

        Ending an already-ended call is a confirmation, not an error.
        """
        def transition(call: CallState):
            self._require_admin(call, admin, "end")
            return None, call.end(datetime.utcnow())

        _, call = await self._apply(call_id, transition, allow_ended=True)
        logger.info(f"[Calls] Call {call_id} ended by {admin}")
        return call

    async def get_call(self, call_id: str) -> CallState:
        return await self._load(call_id)

    async def list_group_calls(self, group: str, ongoing_only: bool = True) -> List[CallState]:
        return await self.store.find_by_group(group, ongoing_only=ongoing_only)

    # === Roster ===

    async def join_call(self, user: str, call_id: str) -> CallState:
        _, call = await self._apply(call_id, lambda c: (None, c.join(user)))
        logger.info(f"[Calls] User {user} joined call {call_id}")
        return call

    async def switch_participant_mode(self, user: str, call_id: str) -> CallState:
        """
        Toggle a user between participants and listeners.

        Users in neither roster are treated as non-listeners and become listeners.
        """
        _, call = await self._apply(call_id, lambda c: (None, c.switch_mode(user)))
        mode = "listener" if user in call.listeners else "participant"
        logger.info(f"[Calls] User {user} is now a {mode} in call {call_id}")
        return call

    async def leave_call(self, user: str, call_id: str) -> CallState:
        """
        Remove a user from both rosters.

        The user's speaker queue entry and mute flag are left in place.
        """
        _, call = await self._apply(call_id, lambda c: (None, c.leave(user)))
        logger.info(f"[Calls] User {user} left call {call_id}")
        return call

    # === Speaker queue ===

    async def request_to_speak(self, user: str, call_id: str) -> CallState:
        _, call = await self._apply(call_id, lambda c: (None, c.enqueue_speaker(user)))
        logger.info(f"[Calls] User {user} queued to speak in call {call_id}")
        return call

    async def call_next_speaker(self, admin: str, call_id: str) -> Optional[str]:
        """
        Pop the head of the speaker queue.

        The popped user is not moved into participants; the client confirms
        by joining or switching mode.

        Returns:
            The next speaker's user id, or None if the queue is empty.
        """
        def transition(call: CallState):
            self._require_admin(call, admin, "call the next speaker in")
            return call.pop_speaker()

        speaker, _ = await self._apply(call_id, transition)
        if speaker is None:
            logger.debug(f"[Calls] Speaker queue empty for call {call_id}")
        else:
            logger.info(f"[Calls] User {speaker} given the floor in call {call_id}")
        return speaker

    # === Mute ===

    async def mute_switch(self, user: str, call_id: str) -> bool:
        is_muted, _ = await self._apply(call_id, lambda c: c.toggle_mute(user))
        logger.info(f"[Calls] User {user} {'muted' if is_muted else 'unmuted'} in call {call_id}")
        return is_muted
