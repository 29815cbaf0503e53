"""
Define SQLAlchemy ORM metadata and models.
This module does not create the engine nor the session; those are provided by edge_agent.core.dependencies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Common declarative base for all ORM models."""
    pass


class Message(Base):
    """
    Represent a single turn in a conversation.
    A conversation has no row of its own; it is the set of messages sharing conversation_id.
    """
    __tablename__ = "conversations"

    # Insertion order; breaks ties between messages with equal timestamps
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True)
    conversation_id: Mapped[str] = mapped_column(String(128))
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text())
    # Fixed-width UTC ISO-8601, compared lexically
    timestamp: Mapped[str] = mapped_column(String(32))
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    __table_args__ = (
        Index("idx_conversation_id_timestamp", "conversation_id", "timestamp"),
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create database tables based on ORM metadata.
    Intended for local/dev environments; use migrations in production.
    """
    if not isinstance(engine, AsyncEngine):
        raise TypeError("init_models expects an AsyncEngine")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
