"""
Typed errors raised across the service.

Soft failures (rate-limit storage, history reads, stats) never surface as
exceptions; the types below are reserved for failures the caller must handle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edge_agent.models.domain import RateLimitResult


class StorageError(Exception):
    """Key-value backend read or write failed."""


class ConversationStoreError(Exception):
    """A conversation write could not be persisted."""


class ConversationDeleteError(ConversationStoreError):
    """Deleting a conversation failed; the rows may still exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Failed to delete conversation {conversation_id}")
        self.conversation_id = conversation_id


class ModelResponseError(Exception):
    """The language model did not produce a usable reply."""


class ContextSearchError(Exception):
    """The context-enrichment service call failed."""


class RateLimitExceeded(Exception):
    """Raised by the orchestrator when the caller has no requests left in the window."""

    def __init__(self, result: "RateLimitResult") -> None:
        super().__init__("Rate limit exceeded")
        self.result = result
