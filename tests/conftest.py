"""
Conftest
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, List, Optional
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatfeed.core.deps import get_chat_service, get_db
from chatfeed.core.security import issue_token
from chatfeed.infra.blobs import BlobStore
from chatfeed.infra.bus import LocalChangeBus
from chatfeed.main import app
from chatfeed.models.base import Base
from chatfeed.models.message import ChatMessage
from chatfeed.schemas.message import Message
from chatfeed.services.chat_service import ChatService
from chatfeed.services.message_store import MessageStore

TEST_DB_NAME = "chatfeed-test.db"

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_message(index: int, sender: str = "alice", **overrides) -> Message:
    fields = {
        "id": f"m{index:03d}",
        "text": f"message {index}",
        "sender_id": sender,
        "timestamp": BASE_TIME + timedelta(seconds=index),
    }
    fields.update(overrides)
    return Message(**fields)


def newest_first(start: int, count: int) -> List[Message]:
    """A page as the store returns it: newest message first."""
    return [make_message(i) for i in reversed(range(start, start + count))]


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ----------------------------------------------------------------------
# Fakes for feed tests
# ----------------------------------------------------------------------


class FakeSubscription:
    def __init__(self, chat_id, limit, on_page, on_error):
        self.chat_id = chat_id
        self.limit = limit
        self.on_page = on_page
        self.on_error = on_error
        self.closed = False

    async def deliver(self, page: List[Message]) -> None:
        await self.on_page(page)

    def fail(self, exc: Exception) -> None:
        self.on_error(exc)

    async def close(self) -> None:
        self.closed = True


class FakeStore:
    """Scripted store: older pages (or exceptions) are served in order."""

    def __init__(self):
        self.subscriptions: List[FakeSubscription] = []
        self.older_pages: list = []
        self.fetch_calls: list = []
        self.fetch_gate: Optional[asyncio.Event] = None

    async def subscribe_latest(self, chat_id, limit, on_page, on_error=None):
        subscription = FakeSubscription(chat_id, limit, on_page, on_error)
        self.subscriptions.append(subscription)
        return subscription

    async def fetch_older(self, chat_id, cursor, limit):
        self.fetch_calls.append((chat_id, cursor.id, limit))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        result = self.older_pages.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def current(self) -> FakeSubscription:
        return self.subscriptions[-1]


class FakeViewport:
    """Each message is one fixed-height row."""

    def __init__(self, feed=None, row_height: float = 50, client_height: float = 400):
        self.feed = feed
        self.row_height = row_height
        self.client_height = client_height
        self.scroll_top = 0.0
        self.scrolls: List[bool] = []

    @property
    def scroll_height(self) -> float:
        rows = len(self.feed.messages) if self.feed is not None else 0
        return max(rows * self.row_height, self.client_height)

    def scroll_to_bottom(self, smooth: bool) -> None:
        self.scrolls.append(smooth)
        self.scroll_top = self.scroll_height - self.client_height


class Reports:
    def __init__(self):
        self.calls = []

    def __call__(self, operation, exc):
        self.calls.append((operation, exc))

    @property
    def operations(self):
        return [op for op, _ in self.calls]


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def reports() -> Reports:
    return Reports()


# ----------------------------------------------------------------------
# Real store on SQLite
# ----------------------------------------------------------------------


@pytest.fixture
async def test_engine(tmp_path):
    # File-backed so the live subscription and writers get separate connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / TEST_DB_NAME}",
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def bus() -> LocalChangeBus:
    return LocalChangeBus()


@pytest.fixture
def store(session_factory, bus) -> MessageStore:
    return MessageStore(session_factory, bus)


@pytest.fixture
def blobs() -> AsyncMock:
    return AsyncMock(spec=BlobStore)


@pytest.fixture
def service(store, blobs) -> ChatService:
    return ChatService(store, blobs)


@pytest.fixture
def seed_messages(session_factory):
    """Insert rows with explicit timestamps, bypassing the store clock."""

    async def seed(chat_id: str, count: int, sender: str = "alice", start: int = 0):
        async with session_factory() as session:
            for i in range(start, start + count):
                session.add(ChatMessage(
                    id=f"m{i:03d}",
                    chat_id=chat_id,
                    sender_id=sender,
                    text=f"message {i}",
                    deleted=False,
                    edited=False,
                    timestamp=BASE_TIME + timedelta(seconds=i),
                ))
            await session.commit()

    return seed


@pytest.fixture
async def client(session_factory, service) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_chat_service():
        return service

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_chat_service] = override_get_chat_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
