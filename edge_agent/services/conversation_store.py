"""
Bounded conversation history on top of the relational store.

Failure policy differs per operation:
- append: a failed insert raises; a failed retention pass is only logged
- get_history / get_stats: failures are logged and a benign default returned
- delete_conversation: failures raise, since callers rely on the rows being gone

Each operation runs in its own session; insert and retention are separate
transactions.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edge_agent.core.clock import Clock, system_clock
from edge_agent.core.errors import ConversationDeleteError, ConversationStoreError
from edge_agent.models.domain import ConversationMessage, ConversationStats, Role
from edge_agent.persistence import message_repo
from edge_agent.persistence.database import Message

logger = logging.getLogger("conversation_store")

DEFAULT_MAX_HISTORY_LENGTH = 50

# Driver-level connection failures (refused, timed out) reach us unwrapped
STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def _to_domain(row: Message) -> ConversationMessage:
    return ConversationMessage(
        id=row.id,
        conversation_id=row.conversation_id,
        role=row.role,
        content=row.content,
        timestamp=row.timestamp,
        metadata=row.meta,
    )


class ConversationStore:
    """
    Per-conversation message log that retains at most `max_history_length`
    messages. The cap is inclusive: exactly that many of the most recent
    messages survive trimming.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_history_length < 1:
            raise ValueError("max_history_length must be at least 1")
        self._sessions = session_factory
        self._max_history_length = max_history_length
        self._clock = clock or system_clock

    @property
    def max_history_length(self) -> int:
        return self._max_history_length

    async def append(
        self,
        conversation_id: str,
        role: Role,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationMessage:
        """
        Store a new message and trim the conversation back to the cap.
        Raises ConversationStoreError only if the message itself could not be stored.
        """
        message = ConversationMessage(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            timestamp=self._clock.timestamp(),
            metadata=metadata or None,
        )

        try:
            async with self._sessions() as session, session.begin():
                await message_repo.add_message(
                    session,
                    message_id=message.id,
                    conversation_id=conversation_id,
                    role=role,
                    content=content,
                    timestamp=message.timestamp,
                    metadata=message.metadata,
                )
        except STORE_ERRORS as exc:
            logger.error("Failed to store %s message for conversation %s: %s", role, conversation_id, exc)
            raise ConversationStoreError("Failed to store conversation message") from exc

        await self._enforce_retention_quietly(conversation_id)

        logger.debug("Message %s stored in conversation %s (%s)", message.id, conversation_id, role)
        return message

    async def enforce_retention(self, conversation_id: str) -> int:
        """
        Delete all but the most recent `max_history_length` messages.
        Returns the number of rows removed. Safe to call repeatedly or concurrently.
        """
        async with self._sessions() as session, session.begin():
            removed = await message_repo.trim_conversation(
                session, conversation_id, keep_last_n=self._max_history_length
            )
        if removed:
            logger.debug("Trimmed %d old messages from conversation %s", removed, conversation_id)
        return removed

    async def _enforce_retention_quietly(self, conversation_id: str) -> None:
        try:
            await self.enforce_retention(conversation_id)
        except STORE_ERRORS as exc:
            logger.warning("Failed to clean up old messages for conversation %s: %s", conversation_id, exc)

    async def get_history(self, conversation_id: str) -> List[ConversationMessage]:
        """
        Return up to `max_history_length` of the most recent messages, oldest first.
        Unknown conversations and read failures both yield an empty list.
        """
        try:
            async with self._sessions() as session:
                rows = await message_repo.get_last_n(session, conversation_id, self._max_history_length)
        except STORE_ERRORS as exc:
            logger.error("Failed to get history for conversation %s: %s", conversation_id, exc)
            return []

        logger.debug("Retrieved %d messages for conversation %s", len(rows), conversation_id)
        return [_to_domain(r) for r in rows]

    async def delete_conversation(self, conversation_id: str) -> int:
        """
        Remove every message of the conversation and return how many were removed.
        Deleting an unknown conversation is not an error.
        Raises ConversationDeleteError when the store fails.
        """
        try:
            async with self._sessions() as session, session.begin():
                removed = await message_repo.delete_conversation(session, conversation_id)
        except STORE_ERRORS as exc:
            logger.error("Failed to delete conversation %s: %s", conversation_id, exc)
            raise ConversationDeleteError(conversation_id) from exc

        logger.info("Conversation %s deleted (%d messages)", conversation_id, removed)
        return removed

    async def get_stats(self) -> ConversationStats:
        """Aggregate counts across all conversations; zeros if the store is unavailable."""
        try:
            async with self._sessions() as session:
                conversations = await message_repo.count_conversations(session)
                messages = await message_repo.count_messages(session)
        except STORE_ERRORS as exc:
            logger.error("Failed to get conversation stats: %s", exc)
            return ConversationStats(degraded=True)

        return ConversationStats(total_conversations=conversations, total_messages=messages)
