"""
Call Record Stores

Generic document-store contract used by the call session manager, with
two adapters:
- SqlCallStore: async SQLAlchemy (PostgreSQL in production, SQLite in tests)
- RedisCallStore: one JSON document per call, conditional writes via WATCH/MULTI

Every update is conditional on the version the caller read, so concurrent
writers in other processes cannot silently overwrite each other.

Usage:
    store = SqlCallStore()
    call_id = await store.create_one({"group": "c1", "admin": "u1", ...})
    call = await store.read_one(call_id)
    ok = await store.partial_update_one(call_id, {"participants": [...]}, call.version)
"""
import json
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from redis.exceptions import RedisError, WatchError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from circle_calls.config.constants import CALL_KEY_PREFIX, GROUP_CALLS_KEY_PREFIX
from circle_calls.config.redis import get_redis
from circle_calls.models import database
from circle_calls.models.call import Call
from .exceptions import CallStoreError
from .state import CallState, MUTABLE_FIELDS

logger = logging.getLogger(__name__)


class CallStore(Protocol):
    """
    Interface for call record storage.

    Implementations must make partial_update_one conditional on
    expected_version and bump the version on success.
    """

    async def create_one(self, fields: Dict[str, object]) -> str:
        ...

    async def read_one(self, call_id: str) -> Optional[CallState]:
        ...

    async def partial_update_one(
        self,
        call_id: str,
        fields: Dict[str, object],
        expected_version: int
    ) -> bool:
        """
        Merge fields into the stored call.

        Returns:
            True if applied, False if the stored version no longer matches
            (or the record disappeared).
        """
        ...

    async def find_by_group(self, group: str, ongoing_only: bool = True) -> List[CallState]:
        ...


def _check_fields(fields: Dict[str, object]) -> None:
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")


def _row_to_state(row: Call) -> CallState:
    return CallState(
        id=row.id,
        group=row.group_id,
        admin=row.admin_id,
        participants=list(row.participants or []),
        listeners=list(row.listeners or []),
        speaker_queue=list(row.speaker_queue or []),
        is_muted=dict(row.is_muted or {}),
        is_ongoing=row.is_ongoing,
        version=row.version,
        created_at=row.created_at,
        ended_at=row.ended_at,
    )


class SqlCallStore:
    """Call store backed by the `calls` table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _session(self):
        # Resolved per call so a swapped-in session factory (tests) is honoured
        factory = self._session_factory or database.AsyncSessionLocal
        return factory()

    async def create_one(self, fields: Dict[str, object]) -> str:
        call = Call(
            group_id=fields["group"],
            admin_id=fields["admin"],
            participants=list(fields.get("participants", [])),
            listeners=list(fields.get("listeners", [])),
            speaker_queue=list(fields.get("speaker_queue", [])),
            is_muted=dict(fields.get("is_muted", {})),
            is_ongoing=fields.get("is_ongoing", True),
            version=1,
        )
        try:
            async with self._session() as db:
                db.add(call)
                await db.commit()
                return call.id
        except SQLAlchemyError as e:
            logger.error(f"[CallStore] Failed to create call for group {fields.get('group')}: {e}")
            raise CallStoreError("Could not create call") from e

    async def read_one(self, call_id: str) -> Optional[CallState]:
        try:
            async with self._session() as db:
                result = await db.execute(select(Call).where(Call.id == call_id))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"[CallStore] Failed to read call {call_id}: {e}")
            raise CallStoreError(f"Could not read call {call_id}") from e
        return _row_to_state(row) if row else None

    async def partial_update_one(
        self,
        call_id: str,
        fields: Dict[str, object],
        expected_version: int
    ) -> bool:
        _check_fields(fields)
        stmt = (
            update(Call)
            .where(Call.id == call_id, Call.version == expected_version)
            .values(**fields, version=expected_version + 1)
        )
        try:
            async with self._session() as db:
                result = await db.execute(stmt)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"[CallStore] Failed to update call {call_id}: {e}")
            raise CallStoreError(f"Could not update call {call_id}") from e
        return result.rowcount == 1

    async def find_by_group(self, group: str, ongoing_only: bool = True) -> List[CallState]:
        stmt = select(Call).where(Call.group_id == group)
        if ongoing_only:
            stmt = stmt.where(Call.is_ongoing == True)
        stmt = stmt.order_by(Call.created_at.desc())
        try:
            async with self._session() as db:
                result = await db.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"[CallStore] Failed to list calls for group {group}: {e}")
            raise CallStoreError(f"Could not list calls for group {group}") from e
        return [_row_to_state(row) for row in rows]


def _encode(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class RedisCallStore:
    """
    Call store keeping each call as a JSON document under `call:<id>`.

    A per-circle set (`circle:calls:<group>`) indexes calls for listing.
    """

    def __init__(self, redis_client=None):
        self._redis = redis_client

    async def _client(self):
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    @staticmethod
    def _key(call_id: str) -> str:
        return f"{CALL_KEY_PREFIX}{call_id}"

    async def create_one(self, fields: Dict[str, object]) -> str:
        call_id = str(uuid.uuid4())
        state = CallState(
            id=call_id,
            group=fields["group"],
            admin=fields["admin"],
            participants=list(fields.get("participants", [])),
            listeners=list(fields.get("listeners", [])),
            speaker_queue=list(fields.get("speaker_queue", [])),
            is_muted=dict(fields.get("is_muted", {})),
            is_ongoing=fields.get("is_ongoing", True),
            version=1,
            created_at=datetime.utcnow(),
        )
        try:
            r = await self._client()
            async with r.pipeline(transaction=True) as pipe:
                pipe.set(self._key(call_id), json.dumps(state.to_document()), nx=True)
                pipe.sadd(f"{GROUP_CALLS_KEY_PREFIX}{state.group}", call_id)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"[CallStore] Failed to create call for group {state.group}: {e}")
            raise CallStoreError("Could not create call") from e
        return call_id

    async def read_one(self, call_id: str) -> Optional[CallState]:
        try:
            r = await self._client()
            raw = await r.get(self._key(call_id))
        except RedisError as e:
            logger.error(f"[CallStore] Failed to read call {call_id}: {e}")
            raise CallStoreError(f"Could not read call {call_id}") from e
        if raw is None:
            return None
        return CallState.from_document(json.loads(raw))

    async def partial_update_one(
        self,
        call_id: str,
        fields: Dict[str, object],
        expected_version: int
    ) -> bool:
        _check_fields(fields)
        key = self._key(call_id)
        try:
            r = await self._client()
            async with r.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    return False
                doc = json.loads(raw)
                if doc.get("version") != expected_version:
                    return False
                doc.update({name: _encode(value) for name, value in fields.items()})
                doc["version"] = expected_version + 1
                pipe.multi()
                pipe.set(key, json.dumps(doc))
                await pipe.execute()
        except WatchError:
            logger.debug(f"[CallStore] Call {call_id} changed during update")
            return False
        except RedisError as e:
            logger.error(f"[CallStore] Failed to update call {call_id}: {e}")
            raise CallStoreError(f"Could not update call {call_id}") from e
        return True

    async def find_by_group(self, group: str, ongoing_only: bool = True) -> List[CallState]:
        try:
            r = await self._client()
            call_ids = sorted(await r.smembers(f"{GROUP_CALLS_KEY_PREFIX}{group}"))
            raws = await r.mget([self._key(call_id) for call_id in call_ids]) if call_ids else []
        except RedisError as e:
            logger.error(f"[CallStore] Failed to list calls for group {group}: {e}")
            raise CallStoreError(f"Could not list calls for group {group}") from e

        calls = [CallState.from_document(json.loads(raw)) for raw in raws if raw is not None]
        if ongoing_only:
            calls = [c for c in calls if c.is_ongoing]
        calls.sort(key=lambda c: c.created_at or datetime.min, reverse=True)
        return calls
