from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Message
from services.change_feed import ChangeFeed, publish_on_commit

MAX_MESSAGE_LENGTH = 5000


class MessageSender(str, Enum):
    APPLICANT = "applicant"
    STAFF = "staff"


def messages_topic(application_id: str) -> str:
    return f"messages/{application_id}"


async def send_message(
    session: AsyncSession,
    application_id: str,
    sender_id: str,
    sender_name: str,
    sender_type: MessageSender,
    text: str,
    feed: Optional[ChangeFeed] = None,
) -> Message:
    text = (text or "").strip()
    if not text:
        raise ValueError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")
    msg = Message(
        id=f"msg-{uuid.uuid4().hex[:12]}",
        application_id=application_id,
        sender_id=sender_id,
        sender_name=sender_name,
        sender_type=sender_type.value,
        message=text,
        timestamp=datetime.now(timezone.utc),
        is_read=False,
    )
    session.add(msg)
    await session.flush()
    if feed is not None:
        publish_on_commit(
            session, feed, messages_topic(application_id), {"type": "message", "message": message_to_response(msg)}
        )
    return msg


async def list_messages(session: AsyncSession, application_id: str) -> list[Message]:
    result = await session.execute(
        select(Message).where(Message.application_id == application_id).order_by(Message.timestamp.asc())
    )
    return list(result.scalars().all())


async def mark_conversation_read(session: AsyncSession, application_id: str, reader: MessageSender) -> int:
    """Mark everything the other party sent as read."""
    result = await session.execute(
        update(Message)
        .where(
            Message.application_id == application_id,
            Message.sender_type != reader.value,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
    )
    return result.rowcount or 0


async def unread_count(session: AsyncSession, application_id: str, reader: MessageSender) -> int:
    result = await session.execute(
        select(Message.id).where(
            Message.application_id == application_id,
            Message.sender_type != reader.value,
            Message.is_read.is_(False),
        )
    )
    return len(result.all())


def message_to_response(msg: Message) -> dict[str, Any]:
    return {
        "id": msg.id,
        "applicationId": msg.application_id,
        "senderId": msg.sender_id,
        "senderName": msg.sender_name,
        "senderType": msg.sender_type,
        "message": msg.message,
        "timestamp": msg.timestamp.isoformat() if msg.timestamp else None,
        "isRead": msg.is_read,
    }
