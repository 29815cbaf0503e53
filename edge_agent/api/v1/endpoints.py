"""
Agent API endpoint definitions.

Provides the /v1/agent route for conversation turns plus conversation
history, deletion, summary, usage stats and rate-limit status routes.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from edge_agent.core.clock import system_clock
from edge_agent.core.dependencies import (
    get_agent_service,
    get_conversation_store,
    get_rate_limiter,
)
from edge_agent.models.schemas import (
    AgentRequest,
    AgentResponse,
    DeleteResponse,
    HistoryResponse,
    RateLimitStatusResponse,
    StatsResponse,
    SummaryResponse,
)
from edge_agent.services.agent_service import AgentService
from edge_agent.services.conversation_store import ConversationStore
from edge_agent.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/v1", tags=["agent"])


def client_identifier(request: Request, user_id: Optional[str]) -> str:
    """
    Key for rate limiting: the user id when given, otherwise the client address
    (Cloudflare header, first X-Forwarded-For hop, then the socket peer).
    """
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for", "")
    ip = (
        request.headers.get("cf-connecting-ip")
        or forwarded.split(",")[0].strip()
        or (request.client.host if request.client else "")
        or "unknown"
    )
    return f"ip:{ip}"


@router.post("/agent", response_model=AgentResponse)
async def agent_endpoint(
    payload: AgentRequest,
    request: Request,
    response: Response,
    service: AgentService = Depends(get_agent_service),
) -> AgentResponse:
    """
    Processes a conversation turn.

    Workflow:
    - Rejects the request with 429 when the caller's rate limit is used up.
    - Creates a new conversation if conversation_id is not provided.
    - Stores both turns, keeping only the most recent messages per conversation.
    - Adds context from the search service when available and calls the LLM.
    """
    client_id = client_identifier(request, payload.user_id)
    result, limit = await service.handle_message(
        payload=payload,
        client_id=client_id,
        request_id=request.state.request_id,
    )
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)
    response.headers["X-RateLimit-Reset"] = str(limit.reset_time)
    return result


@router.get("/conversations/{conversation_id}", response_model=HistoryResponse)
async def get_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
) -> HistoryResponse:
    """Returns the retained messages of a conversation, oldest first."""
    messages = await store.get_history(conversation_id)
    return HistoryResponse(conversation_id=conversation_id, messages=messages)


@router.delete("/conversations/{conversation_id}", response_model=DeleteResponse)
async def delete_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
) -> DeleteResponse:
    """Deletes every stored message of a conversation."""
    deleted = await store.delete_conversation(conversation_id)
    return DeleteResponse(conversation_id=conversation_id, deleted=deleted)


@router.get("/conversations/{conversation_id}/summary", response_model=SummaryResponse)
async def summarize_conversation(
    conversation_id: str,
    service: AgentService = Depends(get_agent_service),
) -> SummaryResponse:
    summary = await service.summarize(conversation_id)
    return SummaryResponse(conversation_id=conversation_id, summary=summary)


@router.get("/stats", response_model=StatsResponse)
async def stats(
    request: Request,
    store: ConversationStore = Depends(get_conversation_store),
) -> StatsResponse:
    """Usage statistics across all conversations; uptime counts from application startup."""
    totals = await store.get_stats()
    return StatsResponse(
        total_conversations=totals.total_conversations,
        total_messages=totals.total_messages,
        timestamp=system_clock.timestamp(),
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
    )


@router.get("/rate-limit", response_model=RateLimitStatusResponse)
async def rate_limit_status(
    identifier: str = Query(..., alias="id", min_length=1),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitStatusResponse:
    """Reports the rate-limit window for an identifier without consuming a request."""
    status = await limiter.peek_status(identifier)
    return RateLimitStatusResponse(
        remaining=status.remaining,
        reset_time=status.reset_time,
        blocked=status.blocked,
    )
