"""
Result shapes returned by the rate limiter and the conversation store.

`degraded` marks a result that was synthesized after a storage failure
(fail-open / fail-soft) rather than read from the backing store.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


class RateLimitResult(BaseModel):
    """Outcome of a rate-limit check for one identifier."""

    remaining: int = Field(ge=0)
    # Epoch milliseconds at which the current window ends
    reset_time: int
    blocked: bool
    degraded: bool = False


class ConversationMessage(BaseModel):
    """A single stored turn of a conversation."""

    id: str
    conversation_id: str
    role: Role
    content: str
    timestamp: str
    metadata: Optional[Dict[str, Any]] = None


class ConversationStats(BaseModel):
    total_conversations: int = Field(default=0, ge=0)
    total_messages: int = Field(default=0, ge=0)
    degraded: bool = False
