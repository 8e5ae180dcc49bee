from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_services, relay_events, require_account, websocket_identity
from database import get_db
from schemas.requests import MessageCreate
from services.activity import ActivityActor, ActivityType, log_activity
from services.container import Services
from services.identity import Identity
from services.messaging import (
    MessageSender,
    list_messages,
    mark_conversation_read,
    message_to_response,
    messages_topic,
    send_message,
    unread_count,
)
from services.records import get_application

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


def _can_access(identity: Identity, application_id: str) -> bool:
    return identity.is_staff or identity.uid == application_id


def _sender(identity: Identity, application_id: str) -> MessageSender:
    # Staff writing on their own record still count as the applicant there
    if identity.uid == application_id:
        return MessageSender.APPLICANT
    return MessageSender.STAFF


async def _conversation(db: AsyncSession, identity: Identity, application_id: str):
    if not _can_access(identity, application_id):
        raise HTTPException(status_code=403, detail="Not your conversation")
    app = await get_application(db, application_id)
    if app is None or app.is_partial:
        raise HTTPException(status_code=404, detail="Application not found")
    return app


@router.get("/{application_id}")
async def get_conversation(
    application_id: str,
    identity: Identity = Depends(require_account),
    db: AsyncSession = Depends(get_db),
):
    await _conversation(db, identity, application_id)
    reader = _sender(identity, application_id)
    messages = await list_messages(db, application_id)
    return {
        "messages": [message_to_response(m) for m in messages],
        "unread": await unread_count(db, application_id, reader),
    }


@router.post("/{application_id}", status_code=201)
async def post_message(
    application_id: str,
    body: MessageCreate,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(require_account),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    app = await _conversation(db, identity, application_id)
    sender = _sender(identity, application_id)
    if sender is MessageSender.APPLICANT:
        sender_name = f"{app.first_name} {app.last_name}".strip() or identity.email or "Applicant"
    else:
        sender_name = identity.display_name or identity.email or "Admin Staff"
    try:
        msg = await send_message(db, application_id, identity.uid, sender_name, sender, body.message, feed=services.feed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await log_activity(
        db,
        app,
        ActivityType.MESSAGE_SENT,
        ActivityActor.APPLICANT if sender is MessageSender.APPLICANT else ActivityActor.STAFF,
        f"Message from {sender_name}",
        actor_id=identity.uid,
        actor_name=sender_name,
        metadata={"messageId": msg.id},
    )
    if sender is MessageSender.APPLICANT:
        background_tasks.add_task(services.chat.notify_inbound_message, app, msg.message)
    else:
        background_tasks.add_task(
            services.notifications.send_to,
            application_id,
            "New message",
            msg.message if len(msg.message) <= 100 else msg.message[:97] + "...",
            {"applicationId": application_id, "type": "message"},
        )
    return message_to_response(msg)


@router.post("/{application_id}/read")
async def mark_read(
    application_id: str,
    identity: Identity = Depends(require_account),
    db: AsyncSession = Depends(get_db),
):
    await _conversation(db, identity, application_id)
    updated = await mark_conversation_read(db, application_id, _sender(identity, application_id))
    return {"updated": updated}


@router.websocket("/{application_id}/ws")
async def conversation_events(websocket: WebSocket, application_id: str, token: Optional[str] = Query(None)):
    identity = await websocket_identity(websocket, token)
    if identity is None or identity.is_anonymous or not _can_access(identity, application_id):
        await websocket.close(code=4403)
        return
    services: Services = websocket.app.state.services
    await websocket.accept()
    subscription = services.feed.subscribe(messages_topic(application_id))
    await relay_events(websocket, subscription)
    logger.debug("Message listener %s disconnected from %s", identity.uid, application_id)
