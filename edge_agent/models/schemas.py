"""
Pydantic schemas for the HTTP API.

Defines input validation and sanitization for agent requests and the
response payloads of the agent, conversation, stats and rate-limit routes.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from edge_agent.models.domain import ConversationMessage

# Basic input constraints
MAX_MESSAGE_CHARS = 10000
MAX_ID_CHARS = 128
_UNSAFE_CHARS_RE = re.compile(r"[<>'\"]")


def sanitize_message(text: str) -> str:
    """Drop angle brackets and quotes, trim, and cap the length."""
    return _UNSAFE_CHARS_RE.sub("", text).strip()[:MAX_MESSAGE_CHARS]


class AgentRequest(BaseModel):
    """
    Request payload for the agent endpoint.

    The conversation is continued when conversation_id is given, otherwise a
    new one is started. user_id, when present, keys the rate limit.
    """
    message: str
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("message")
    @classmethod
    def _validate_message(cls, v: str) -> str:
        v = sanitize_message(v)
        if not v:
            raise ValueError("message cannot be empty.")
        return v

    @field_validator("conversation_id", "user_id")
    @classmethod
    def _validate_identifier(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("identifier cannot be blank.")
        if len(v) > MAX_ID_CHARS:
            raise ValueError(f"identifier exceeds {MAX_ID_CHARS} characters.")
        return v


class AgentResponseMetadata(BaseModel):
    request_id: str
    has_context: bool
    message_count: int


class AgentResponse(BaseModel):
    """
    Response payload for the agent endpoint.

    Contains the assistant reply and the conversation it belongs to.
    """
    response: str
    conversation_id: str
    timestamp: str
    metadata: AgentResponseMetadata


class HistoryResponse(BaseModel):
    conversation_id: str
    messages: List[ConversationMessage]


class DeleteResponse(BaseModel):
    conversation_id: str
    deleted: int


class SummaryResponse(BaseModel):
    conversation_id: str
    summary: str


class StatsResponse(BaseModel):
    total_conversations: int
    total_messages: int
    timestamp: str
    uptime_seconds: float


class RateLimitStatusResponse(BaseModel):
    remaining: int
    reset_time: int
    blocked: bool


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str


class ErrorResponse(BaseModel):
    """Body of every error the service produces itself (validation errors excepted)."""
    error: str
    code: str
    timestamp: str
    request_id: Optional[str] = None
