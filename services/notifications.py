"""
Push notifications to applicants.

Delivery itself belongs to an external push gateway; PushGateway is the
surface called here. Tokens are registered per permanent account, broadcasts
go out immediately or are parked until their scheduled time, and every
delivery problem is logged rather than raised.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import DriverApplication, PushToken, ScheduledNotification
from services.activity import ActivityActor, ActivityType, log_activity
from services.identity import Identity

logger = logging.getLogger(__name__)


class PushGateway:
    async def send(self, token: str, title: str, body: str, data: Optional[dict[str, str]] = None) -> bool:
        raise NotImplementedError


class LoggingPushGateway(PushGateway):
    """Used when no gateway is configured: records what would have been sent."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, token: str, title: str, body: str, data: Optional[dict[str, str]] = None) -> bool:
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        logger.info("Push (not delivered, no gateway configured): %s", title)
        return True


class HttpPushGateway(PushGateway):
    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def send(self, token: str, title: str, body: str, data: Optional[dict[str, str]] = None) -> bool:
        payload = {"token": token, "notification": {"title": title, "body": body}, "data": data or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
            if resp.status_code >= 400:
                logger.error("Push gateway returned: %s %s", resp.status_code, resp.text)
                return False
            return True
        except httpx.HTTPError as e:
            logger.error("Push gateway request failed: %s", e)
            return False


class NotificationError(ValueError):
    pass


@dataclass
class BroadcastResult:
    mode: str  # now | schedule
    recipients: int
    delivered: int = 0
    scheduled_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class NotificationService:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        gateway: PushGateway,
        company_name: str = "Driver Recruitment",
    ):
        self.sessionmaker = sessionmaker
        self.gateway = gateway
        self.company_name = company_name

    async def register_token(self, identity: Identity, token: str) -> bool:
        """Store the device token; anonymous sessions are ignored."""
        if identity.is_anonymous:
            logger.warning("Not saving push token for anonymous session %s", identity.uid)
            return False
        try:
            async with self.sessionmaker() as session:
                existing = await session.get(PushToken, identity.uid)
                if existing is None:
                    session.add(PushToken(account_id=identity.uid, token=token))
                else:
                    existing.token = token
                await session.commit()
        except Exception:
            logger.exception("Error saving push token for %s", identity.uid)
            return False
        return True

    async def _token_for(self, session: AsyncSession, uid: str) -> Optional[str]:
        row = await session.get(PushToken, uid)
        return row.token if row else None

    async def send_to(self, uid: str, title: str, body: str, data: Optional[dict[str, str]] = None) -> bool:
        try:
            async with self.sessionmaker() as session:
                token = await self._token_for(session, uid)
            if token is None:
                logger.info("No push token found for user: %s", uid)
                return False
            return await self.gateway.send(token, title, body, data)
        except Exception:
            logger.exception("Error sending push notification to %s", uid)
            return False

    async def notify_status_change(self, app_id: str, previous: Optional[str], status: str, company_name: Optional[str] = None) -> bool:
        if previous == status:
            return False
        company = company_name or self.company_name
        return await self.send_to(
            app_id,
            f"{company} - Application Update",
            f"Your application status has been updated to: {status}",
            {"status": status, "applicationId": app_id, "companyName": company},
        )

    async def broadcast(
        self,
        session: AsyncSession,
        staff: Identity,
        recipients: list[str],
        title: str,
        message: str,
        scheduled_for: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> BroadcastResult:
        """Send now or schedule; logs one notification_sent activity per recipient."""
        title, message = (title or "").strip(), (message or "").strip()
        if not title:
            raise NotificationError("Please enter a notification title.")
        if not message:
            raise NotificationError("Please enter a notification message.")
        recipients = list(dict.fromkeys(recipients))
        if not recipients:
            raise NotificationError("Please select at least one recipient.")
        now = now or datetime.now(timezone.utc)
        if scheduled_for is not None and _aware(scheduled_for) <= now:
            raise NotificationError("Scheduled time must be in the future.")

        result = await session.execute(select(DriverApplication).where(DriverApplication.id.in_(recipients)))
        apps = list(result.scalars().all())
        if not apps:
            raise NotificationError("None of the selected recipients exist.")

        if scheduled_for is None:
            outcome = BroadcastResult(mode="now", recipients=len(apps))
            for app in apps:
                if await self.send_to(app.id, title, message, {"applicationId": app.id}):
                    outcome.delivered += 1
            details = f'Sent notification: "{title}"'
        else:
            job = ScheduledNotification(
                id=f"ntf-{uuid.uuid4().hex[:12]}",
                recipients=[a.id for a in apps],
                title=title,
                message=message,
                scheduled_for=_aware(scheduled_for),
                status="pending",
                created_by=staff.uid,
            )
            session.add(job)
            await session.flush()
            outcome = BroadcastResult(
                mode="schedule", recipients=len(apps), scheduled_id=job.id, scheduled_for=job.scheduled_for
            )
            details = f'Scheduled notification for {job.scheduled_for.isoformat()}: "{title}"'

        for app in apps:
            await log_activity(
                session,
                app,
                ActivityType.NOTIFICATION_SENT,
                ActivityActor.STAFF,
                details,
                actor_id=staff.uid,
                actor_name=staff.email or "Admin Staff",
                metadata={
                    "notificationTitle": title,
                    "notificationMessage": message,
                    "sendMode": outcome.mode,
                    "scheduledFor": outcome.scheduled_for.isoformat() if outcome.scheduled_for else None,
                },
            )
        return outcome

    async def dispatch_due(self, now: Optional[datetime] = None) -> int:
        """Send every pending scheduled notification whose time has come."""
        now = now or datetime.now(timezone.utc)
        sent = 0
        async with self.sessionmaker() as session:
            result = await session.execute(
                select(ScheduledNotification).where(ScheduledNotification.status == "pending")
            )
            for job in result.scalars().all():
                if _aware(job.scheduled_for) > now:
                    continue
                delivered = 0
                for uid in job.recipients or []:
                    if await self.send_to(uid, job.title, job.message, {"applicationId": uid}):
                        delivered += 1
                job.status = "sent" if delivered or not job.recipients else "failed"
                job.sent_at = now
                sent += 1
            await session.commit()
        return sent
