import os
import sys
from pathlib import Path

# Ensure project root is on sys.path for `import flowforge.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Deterministic environment: no Redis, a known voice secret, no real LLM keys
os.environ.setdefault("FF_USE_REDIS", "0")
os.environ.setdefault("VOICE_LLM_SECRET", "test-secret")
os.environ.setdefault("VOICE_CHUNK_DELAY_SECONDS", "0")
os.environ.setdefault("GEMINI_API_KEY", "")

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from flowforge.core.database import Base
from flowforge.services.llm import LLMResult
import flowforge.models  # noqa: F401


def _enable_savepoints(engine) -> None:
    # pysqlite/aiosqlite manage BEGIN themselves, which breaks SAVEPOINT.
    # Hand transaction control back to SQLAlchemy.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


class FakeChat:
    """Stands in for services.llm.chat. Replies in order; an Exception item is raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def __call__(self, messages, system="", **kwargs):
        self.calls.append({"messages": list(messages), "system": system, **kwargs})
        reply = self.replies.pop(0) if self.replies else "Okay."
        if isinstance(reply, Exception):
            raise reply
        return LLMResult(content=reply, model="fake-model", input_tokens=12, output_tokens=8)


@pytest.fixture
def fake_chat():
    return FakeChat


class Recorder:
    """Async callable that records its calls."""

    def __init__(self, result=True):
        self.calls = []
        self.result = result

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return self.result


@pytest.fixture
def recorder():
    return Recorder
