"""
Pytest fixtures and configuration for the test suite.

Sets up per-test SQLite databases, an in-memory key-value store, a controllable
clock, and fake model/context clients so no test touches the network.
"""

from __future__ import annotations

import os
import warnings
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Suppress selected warnings to keep the test output clean
warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    message=".*on_event.*deprecated.*",
)

# Configure environment variables for test execution
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["APP_NAME"] = "Edge Agent API (tests)"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["OPENAI_API_KEY"] = "test-no-network"
os.environ.pop("CONTEXT_API_KEY", None)

# Import the application after environment variables are set
from edge_agent.core.clock import Clock
from edge_agent.core.dependencies import (
    get_context_client,
    get_conversation_store,
    get_openai_client,
    get_rate_limiter,
)
from edge_agent.core.errors import ContextSearchError, ModelResponseError, StorageError
from edge_agent.main import create_app
from edge_agent.persistence.database import init_models
from edge_agent.services.conversation_store import ConversationStore
from edge_agent.services.rate_limiter import RateLimiter

# 2026-01-01T00:00:00Z, aligned to a minute boundary
START_MS = 1_767_225_600_000


class FakeClock(Clock):
    """Clock frozen at a given epoch-millisecond until advanced."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self._ms = now_ms

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._ms / 1000, tz=timezone.utc)

    def now_ms(self) -> int:
        return self._ms

    def set(self, now_ms: int) -> None:
        self._ms = now_ms

    def advance(self, ms: int) -> None:
        self._ms += ms


class InMemoryKeyValueStore:
    """Dict-backed key-value store that can be told to fail."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.puts = 0
        self.fail_get = False
        self.fail_put = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise StorageError("get unavailable")
        return self.data.get(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        if self.fail_put:
            raise StorageError("put unavailable")
        self.puts += 1
        self.data[key] = value
        self.ttls[key] = ttl_seconds


class FakeModelClient:
    """Stands in for OpenAIClient; records what it was asked."""

    def __init__(self, reply: str = "TEST_BOT_REPLY", keywords: Optional[List[str]] = None) -> None:
        self.reply = reply
        self.keywords = keywords if keywords is not None else ["python", "testing"]
        self.fail = False
        self.calls: List[Tuple[str, list, Optional[str]]] = []

    async def generate_response(self, message, history=(), context=None) -> str:
        if self.fail:
            raise ModelResponseError("model down")
        self.calls.append((message, list(history), context))
        return self.reply

    async def extract_keywords(self, text: str) -> List[str]:
        return list(self.keywords)

    async def summarize(self, history) -> str:
        if not history:
            return "No conversation to summarize."
        return f"TEST_SUMMARY of {len(history)} messages"

    async def aclose(self) -> None:
        pass


class FakeContextClient:
    """Stands in for ContextSearchClient."""

    def __init__(self, snippets: Optional[List[str]] = None, enabled: bool = True) -> None:
        self.snippets = snippets if snippets is not None else []
        self.enabled = enabled
        self.fail_search = False
        self.fail_store = False
        self.queries: List[str] = []
        self.stored: List[Tuple[str, Dict[str, Any]]] = []

    async def search(self, query: str, limit: int = 3) -> List[str]:
        if self.fail_search:
            raise ContextSearchError("search unavailable")
        self.queries.append(query)
        return self.snippets[:limit]

    async def store(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.fail_store:
            raise ContextSearchError("store unavailable")
        self.stored.append((content, metadata or {}))

    async def aclose(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def model_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def context_client() -> FakeContextClient:
    return FakeContextClient(snippets=["Python is a programming language."])


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Per-test SQLite database file with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory, clock) -> ConversationStore:
    return ConversationStore(session_factory, max_history_length=50, clock=clock)


@pytest.fixture
def app(session_factory, kv, clock, model_client, context_client):
    """
    Application instance with storage and external clients replaced through
    dependency overrides: rate limit of 3 requests per window, history capped at 4 messages.
    """
    app = create_app()

    limiter = RateLimiter(kv, limit=3, window_ms=60_000, clock=clock)
    conversations = ConversationStore(session_factory, max_history_length=4, clock=clock)

    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_conversation_store] = lambda: conversations
    app.dependency_overrides[get_openai_client] = lambda: model_client
    app.dependency_overrides[get_context_client] = lambda: context_client
    return app


@pytest_asyncio.fixture(scope="function")
async def test_client(app):
    """Provides an AsyncClient bound to the ASGI app for test execution."""
    # Application lifespan and HTTP client for tests
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
