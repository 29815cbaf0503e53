"""
Provide application-wide dependency providers for storage and external clients.
Create a single async SQLAlchemy session factory, a Redis client, and the model
and context clients once; build the thin per-request services on top of them.
"""

from typing import Optional

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from edge_agent.core.config import settings
from edge_agent.persistence.redis_store import RedisStore
from edge_agent.services.agent_service import AgentService
from edge_agent.services.context_client import ContextSearchClient
from edge_agent.services.conversation_store import ConversationStore
from edge_agent.services.openai_client import OpenAIClient
from edge_agent.services.rate_limiter import RateLimiter


# Database: build async engine and session factory once
DATABASE_URL = settings.database_url
engine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    pool_pre_ping=True,
)

SessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    class_=AsyncSession,
)


# Redis: create a single client instance (lazy) and reuse it
_redis_client: Optional[Redis] = None
_openai_client: Optional[OpenAIClient] = None
_context_client: Optional[ContextSearchClient] = None


def get_redis() -> Redis:
    """
    Return a process-wide Redis client.
    Use decode_responses=True to work with str keys/values by default.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


def get_openai_client() -> OpenAIClient:
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
        )
    return _openai_client


def get_context_client() -> ContextSearchClient:
    global _context_client
    if _context_client is None:
        _context_client = ContextSearchClient(
            base_url=settings.context_api_url,
            api_key=settings.context_api_key,
            timeout_seconds=settings.context_timeout_seconds,
        )
    return _context_client


def get_conversation_store() -> ConversationStore:
    return ConversationStore(SessionLocal, max_history_length=settings.max_conversation_history)


def get_rate_limiter(redis: Redis = Depends(get_redis)) -> RateLimiter:
    return RateLimiter(
        RedisStore(redis),
        limit=settings.rate_limit_per_minute,
        window_ms=settings.rate_limit_window_ms,
    )


def get_agent_service(
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    conversations: ConversationStore = Depends(get_conversation_store),
    llm: OpenAIClient = Depends(get_openai_client),
    context: ContextSearchClient = Depends(get_context_client),
) -> AgentService:
    return AgentService(
        rate_limiter=rate_limiter,
        conversations=conversations,
        llm=llm,
        context=context,
        model_history_messages=settings.model_history_messages,
    )


async def close_clients() -> None:
    """Close whichever shared clients were created during the process lifetime."""
    global _redis_client, _openai_client, _context_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    if _openai_client is not None:
        await _openai_client.aclose()
        _openai_client = None
    if _context_client is not None:
        await _context_client.aclose()
        _context_client = None
    await engine.dispose()
