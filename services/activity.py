from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityLog, DriverApplication
from services.status_view import applicant_name


class ActivityType(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    STATUS_CHANGED = "status_changed"
    DOCUMENT_UPLOADED = "document_uploaded"
    CHECKLIST_UPDATED = "checklist_updated"
    MESSAGE_SENT = "message_sent"
    NOTIFICATION_SENT = "notification_sent"


class ActivityActor(str, Enum):
    APPLICANT = "applicant"
    STAFF = "staff"
    SYSTEM = "system"


async def log_activity(
    session: AsyncSession,
    app: DriverApplication,
    activity_type: ActivityType,
    actor: ActivityActor,
    details: str,
    actor_id: Optional[str] = None,
    actor_name: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ActivityLog:
    """Append one audit entry. Entries are never edited apart from the read flag."""
    entry = ActivityLog(
        id=f"act-{uuid.uuid4().hex[:12]}",
        application_id=app.id,
        applicant_name=applicant_name(app),
        applicant_email=app.email,
        activity_type=activity_type.value,
        actor=actor.value,
        actor_id=actor_id,
        actor_name=actor_name,
        details=details,
        extra={k: v for k, v in (metadata or {}).items() if v is not None},
        timestamp=datetime.now(timezone.utc),
        is_read=False,
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_activity(
    session: AsyncSession,
    application_id: Optional[str] = None,
    unread_only: bool = False,
    limit: int = 100,
) -> list[ActivityLog]:
    query = select(ActivityLog)
    if application_id:
        query = query.where(ActivityLog.application_id == application_id)
    if unread_only:
        query = query.where(ActivityLog.is_read.is_(False))
    result = await session.execute(query.order_by(ActivityLog.timestamp.desc()).limit(limit))
    return list(result.scalars().all())


async def mark_activity_read(session: AsyncSession, activity_ids: list[str]) -> int:
    if not activity_ids:
        return 0
    result = await session.execute(
        update(ActivityLog).where(ActivityLog.id.in_(activity_ids)).values(is_read=True)
    )
    return result.rowcount or 0


def activity_to_response(entry: ActivityLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "applicationId": entry.application_id,
        "applicantName": entry.applicant_name,
        "applicantEmail": entry.applicant_email,
        "activityType": entry.activity_type,
        "actor": entry.actor,
        "actorId": entry.actor_id,
        "actorName": entry.actor_name,
        "details": entry.details,
        "metadata": entry.extra or {},
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "isRead": entry.is_read,
    }
