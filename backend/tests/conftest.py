import os
import sys
from pathlib import Path

# Add project root (1 level up from tests/) to sys.path so tests can import 'circle_calls'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

# Keep module-level engine creation off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CALL_STORE_BACKEND", "sql")

import pytest
import fakeredis.aioredis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from circle_calls.models.database import Base as DBBase
from circle_calls.services.call import CallSessionManager, SqlCallStore, RedisCallStore
from tests.helpers import make_test_engine


@pytest.fixture
async def session_factory():
    engine = make_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(DBBase.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def fake_redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture(params=["sql", "redis"])
async def store(request, session_factory, fake_redis):
    """Run store-agnostic tests against both adapters."""
    if request.param == "sql":
        return SqlCallStore(session_factory)
    return RedisCallStore(fake_redis)


@pytest.fixture
async def manager(store):
    return CallSessionManager(store)
