"""
Provide repository functions for persisting and querying conversation messages.
This layer isolates SQL details from services and endpoints.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from edge_agent.persistence.database import Message


async def add_message(
    session: AsyncSession,
    message_id: str,
    conversation_id: str,
    role: str,
    content: str,
    timestamp: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Message:
    """
    Persist a single message and return the ORM instance (with seq assigned).
    """
    msg = Message(
        id=message_id,
        conversation_id=conversation_id,
        role=role,
        content=content,
        timestamp=timestamp,
        meta=metadata,
    )
    session.add(msg)
    await session.flush()
    return msg


async def get_last_n(
    session: AsyncSession,
    conversation_id: str,
    n: int,
) -> List[Message]:
    """
    Return the most recent N messages in chronological order (oldest first).
    """
    # First fetch newest N descending, then reverse to chronological
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.timestamp.desc(), Message.seq.desc())
        .limit(n)
    )
    res = await session.execute(stmt)
    rows_desc = list(res.scalars().all())
    rows_desc.reverse()
    return rows_desc


async def trim_conversation(
    session: AsyncSession,
    conversation_id: str,
    keep_last_n: int,
) -> int:
    """
    Delete every message of the conversation except the N most recent.
    Returns the number of rows removed; running it again removes nothing.
    """
    keep = (
        select(Message.seq)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.timestamp.desc(), Message.seq.desc())
        .limit(keep_last_n)
        .subquery()
    )
    stmt = (
        delete(Message)
        .where(Message.conversation_id == conversation_id)
        .where(Message.seq.not_in(select(keep.c.seq)))
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return int(res.rowcount or 0)


async def delete_conversation(session: AsyncSession, conversation_id: str) -> int:
    """
    Delete all messages for a conversation and return how many were removed.
    """
    stmt = (
        delete(Message)
        .where(Message.conversation_id == conversation_id)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return int(res.rowcount or 0)


async def count_conversations(session: AsyncSession) -> int:
    """
    Return the number of distinct conversation ids currently stored.
    """
    stmt = select(func.count(func.distinct(Message.conversation_id)))
    res = await session.execute(stmt)
    return int(res.scalar_one() or 0)


async def count_messages(session: AsyncSession) -> int:
    """
    Return the total number of stored messages across all conversations.
    """
    stmt = select(func.count(Message.seq))
    res = await session.execute(stmt)
    return int(res.scalar_one() or 0)
