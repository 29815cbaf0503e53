"""
Agent service orchestrating one conversation turn:
- Check and consume the caller's rate limit
- Persist the user message (history is trimmed on every write)
- Load the retained history
- Enrich with context from the search service (best effort)
- Call the language model
- Persist the assistant reply and store it as future context (best effort)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Tuple

from edge_agent.core.clock import Clock, system_clock
from edge_agent.core.errors import ContextSearchError, RateLimitExceeded
from edge_agent.models.domain import RateLimitResult
from edge_agent.models.schemas import AgentRequest, AgentResponse, AgentResponseMetadata
from edge_agent.services.context_client import ContextSearchClient
from edge_agent.services.conversation_store import ConversationStore
from edge_agent.services.openai_client import OpenAIClient
from edge_agent.services.rate_limiter import RateLimiter

# Configure module logger
logger = logging.getLogger("agent_service")

# Operational constants
MODEL_HISTORY_MESSAGES = 10
CONTEXT_RESULTS = 3


class AgentService:
    """
    High-level service that handles the end-to-end agent flow.
    Collaborators are injected so that each can be replaced in tests.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        conversations: ConversationStore,
        llm: OpenAIClient,
        context: ContextSearchClient,
        model_history_messages: int = MODEL_HISTORY_MESSAGES,
        clock: Optional[Clock] = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._conversations = conversations
        self._llm = llm
        self._context = context
        self._model_history_messages = model_history_messages
        self._clock = clock or system_clock

    async def handle_message(
        self,
        payload: AgentRequest,
        client_id: str,
        request_id: str,
    ) -> Tuple[AgentResponse, RateLimitResult]:
        """
        Main entry point to process a message and produce a reply.
        Raises RateLimitExceeded when the caller is blocked; store write and
        model failures propagate unchanged.
        """
        limit = await self._rate_limiter.check_and_consume(client_id)
        if limit.blocked:
            logger.info("Request %s from %s rejected by rate limit", request_id, client_id)
            raise RateLimitExceeded(limit)

        conversation_id = payload.conversation_id or self._new_conversation_id()

        user_message = await self._conversations.append(
            conversation_id, "user", payload.message, payload.metadata
        )
        history = await self._conversations.get_history(conversation_id)

        context = await self._search_context(payload.message)

        # The just-stored user message is passed separately as the latest turn
        prior = [m for m in history if m.id != user_message.id]
        prior = prior[-self._model_history_messages:] if self._model_history_messages > 0 else []

        reply = await self._llm.generate_response(payload.message, prior, context or None)

        await self._conversations.append(conversation_id, "assistant", reply)
        await self._store_context(conversation_id, payload.message, reply)

        logger.info(
            "Agent request %s processed (conversation=%s, client=%s, reply_chars=%d)",
            request_id,
            conversation_id,
            client_id,
            len(reply),
        )

        response = AgentResponse(
            response=reply,
            conversation_id=conversation_id,
            timestamp=self._clock.timestamp(),
            metadata=AgentResponseMetadata(
                request_id=request_id,
                has_context=bool(context),
                message_count=len(history) + 1,
            ),
        )
        return response, limit

    async def summarize(self, conversation_id: str) -> str:
        history = await self._conversations.get_history(conversation_id)
        return await self._llm.summarize(history)

    async def _search_context(self, message: str) -> str:
        """Return joined context snippets, or an empty string if enrichment is unavailable."""
        if not self._context.enabled:
            return ""

        keywords = await self._llm.extract_keywords(message)
        if not keywords:
            return ""

        try:
            snippets = await self._context.search(" ".join(keywords), limit=CONTEXT_RESULTS)
        except ContextSearchError as exc:
            logger.warning("Context search failed, continuing without context: %s", exc)
            return ""
        return "\n\n".join(snippets[:CONTEXT_RESULTS])

    async def _store_context(self, conversation_id: str, message: str, reply: str) -> None:
        try:
            await self._context.store(
                f"Conversation: {message} -> {reply}",
                {
                    "conversation_id": conversation_id,
                    "timestamp": self._clock.timestamp(),
                    "type": "conversation",
                },
            )
        except ContextSearchError as exc:
            logger.warning("Failed to store context for conversation %s: %s", conversation_id, exc)

    @staticmethod
    def _new_conversation_id() -> str:
        return uuid.uuid4().hex
