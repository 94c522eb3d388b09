"""Pytest configuration and fixtures for memoir tests."""

import os
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# Set test environment variables BEFORE importing memoir modules
# This ensures the Settings singleton loads with test values
_TEST_DB_DIR = tempfile.mkdtemp(prefix="memoir-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/memoir.db"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["MEMOIR_SELECTION_DELAY_SECONDS"] = "0"
os.environ["MEMOIR_EXTRACTION_DELAY_SECONDS"] = "0"
os.environ["MEMOIR_SCHEDULED_USER_DELAY_SECONDS"] = "0"

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import memoir.models  # noqa: F401
from memoir.services.conversations import ConversationStore
from memoir.services.extraction import ExtractionService
from memoir.services.ledger import AnalysisLedger
from memoir.services.memory_jobs import MemoryJobService
from memoir.services.profile import ProfileService
from memoir.services.selection import ConversationSelector
from memoir.services.summary import SummaryService
from tests.factories import ConversationFactory, MessageFactory, quality_exchange


@pytest.fixture
async def db_engine(tmp_path):
    """Create a fresh SQLite database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/memoir_test.db", echo=False)

    # Take the write lock when a transaction starts so concurrent writers queue
    # up instead of failing on lock upgrade
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Commit-on-success session factory bound to the test database.

    Behaves like ``memoir.db.get_session`` so services can be pointed at it.
    """
    maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _session


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Plain session for direct assertions. Tests commit explicitly."""
    maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def test_user_id():
    """Generate a unique user ID for test isolation."""
    return f"user-{uuid4()}"


@pytest.fixture
def make_conversation(session_factory):
    """Persist a conversation with the given ``(role, content)`` messages.

    Conversations created later in a test are newer unless ``created_at`` is given.
    """
    counter = {"n": 0}

    async def _make(user_id: str, messages=None, created_at: datetime | None = None):
        counter["n"] += 1
        if created_at is None:
            created_at = datetime.utcnow() - timedelta(hours=24) + timedelta(minutes=counter["n"])
        if messages is None:
            messages = quality_exchange()

        async with session_factory() as session:
            conversation = ConversationFactory(user_id=user_id, created_at=created_at)
            session.add(conversation)
            await session.flush()
            for index, (role, content) in enumerate(messages):
                session.add(
                    MessageFactory(
                        conversation_id=conversation.id,
                        role=role,
                        content=content,
                        created_at=created_at + timedelta(seconds=index),
                    )
                )
        return conversation

    return _make


def _completion(model: str) -> MagicMock:
    completion = MagicMock()
    completion.model = model
    completion.complete = AsyncMock()
    return completion


@pytest.fixture
def extraction_completion():
    """Fake completion service for per-conversation extraction."""
    return _completion("gpt-test")


@pytest.fixture
def merge_completion():
    """Fake completion service for the profile merge."""
    return _completion("gpt-test")


@pytest.fixture
def summary_completion():
    """Fake completion service for the AI summary."""
    completion = _completion("claude-test")
    completion.complete.return_value = "The user likes hiking. Suggest outdoor activities."
    return completion


@pytest.fixture
def job_service(session_factory, extraction_completion, merge_completion, summary_completion):
    """MemoryJobService wired to the test database and fake completion services."""
    store = ConversationStore()
    ledger = AnalysisLedger()
    return MemoryJobService(
        session_factory=session_factory,
        selector=ConversationSelector(store=store, ledger=ledger, delay_seconds=0),
        store=store,
        ledger=ledger,
        extraction=ExtractionService(completion=extraction_completion),
        profiles=ProfileService(completion=merge_completion),
        summaries=SummaryService(completion=summary_completion),
        batch_size=10,
        extraction_delay_seconds=0,
        scheduled_user_delay_seconds=0,
    )


# Note: Test environment variables are set at module import time (top of file)
# to ensure Settings singleton loads with test values before any memoir imports.
