"""
OpenAI Chat client wrapper.
Encapsulates request/response logic and timeouts. Reply generation raises a
typed error the API turns into a 502; keyword extraction and summaries fall
back to harmless defaults so they never break a request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from openai import APIError, AsyncOpenAI

from edge_agent.core.config import settings
from edge_agent.core.errors import ModelResponseError
from edge_agent.models.domain import ConversationMessage
from edge_agent.services.prompt_builder import (
    ChatMessage,
    build_chat_messages,
    build_keywords_messages,
    build_summary_messages,
)

logger = logging.getLogger("openai_client")

MAX_KEYWORDS = 10


class OpenAIClient:
    """
    Thin async wrapper around OpenAI Chat Completions.
    Allows setting model and per-call timeout.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout_seconds: int = 20,
    ) -> None:
        self._api_key = api_key or settings.openai_api_key
        self._client = AsyncOpenAI(api_key=self._api_key)
        self._model = model
        self._timeout_seconds = timeout_seconds

    async def _complete(
        self,
        messages: List[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Execute a chat completion with a strict overall timeout and return the
        stripped assistant content. Raises APIError or asyncio.TimeoutError.
        """

        async def _call() -> str:
            resp = await self._client.chat.completions.create(
                model=self._model,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=messages,
            )
            return (resp.choices[0].message.content or "").strip()

        return await asyncio.wait_for(_call(), timeout=self._timeout_seconds)

    async def generate_response(
        self,
        message: str,
        history: Sequence[ConversationMessage] = (),
        context: Optional[str] = None,
    ) -> str:
        """
        Produce the assistant reply for `message` given prior turns and optional context.
        Raises ModelResponseError on upstream errors, timeouts, or an empty reply.
        """
        messages = build_chat_messages(message, history, context)
        logger.debug("Generating reply (messages=%d, context=%s)", len(messages), bool(context))

        try:
            content = await self._complete(messages, temperature=0.7, max_tokens=2048)
        except asyncio.TimeoutError as exc:
            logger.error("Model call timed out after %ss", self._timeout_seconds)
            raise ModelResponseError("Model call timed out") from exc
        except APIError as exc:
            logger.error("Model call failed: %s", exc)
            raise ModelResponseError("Failed to generate AI response") from exc

        if not content:
            raise ModelResponseError("AI response was empty")
        return content

    async def extract_keywords(self, text: str) -> List[str]:
        """Return up to ten keywords for `text`; an empty list if the model call fails."""
        try:
            content = await self._complete(build_keywords_messages(text), temperature=0.2, max_tokens=256)
        except (APIError, asyncio.TimeoutError) as exc:
            logger.warning("Keyword extraction failed: %s", exc)
            return []

        keywords = [k.strip() for k in content.split(",")]
        return [k for k in keywords if k][:MAX_KEYWORDS]

    async def summarize(self, history: Sequence[ConversationMessage]) -> str:
        if not history:
            return "No conversation to summarize."

        try:
            content = await self._complete(build_summary_messages(history), temperature=0.3, max_tokens=512)
        except (APIError, asyncio.TimeoutError) as exc:
            logger.error("Conversation summary failed: %s", exc)
            return "Error generating conversation summary."

        return content or "Could not generate summary."

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._client.close()
