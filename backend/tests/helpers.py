import uuid
from typing import Dict

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from circle_calls.services.auth_service import create_access_token


def new_user_id(prefix: str = 'user') -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def make_test_engine():
    # StaticPool keeps one connection so every session sees the same in-memory DB
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


def assert_rosters_disjoint(call) -> None:
    assert not set(call.participants) & set(call.listeners)
    assert len(call.participants) == len(set(call.participants))
    assert len(call.listeners) == len(set(call.listeners))
    assert len(call.speaker_queue) == len(set(call.speaker_queue))
