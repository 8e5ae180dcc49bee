"""Application services, built once at startup and shared by every request."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings
from services.autosave import PartialSaveAgent
from services.change_feed import ChangeFeed
from services.chat import ChatNotifier
from services.documents import DocumentStore, LocalDocumentStore, StagingArea
from services.identity import IdentityProvider, SqlIdentityProvider
from services.notifications import HttpPushGateway, LoggingPushGateway, NotificationService, PushGateway
from services.submission import SubmissionAgent


@dataclass
class Services:
    settings: Settings
    sessionmaker: async_sessionmaker[AsyncSession]
    feed: ChangeFeed
    identity: IdentityProvider
    documents: DocumentStore
    staging: StagingArea
    chat: ChatNotifier
    notifications: NotificationService
    autosave: PartialSaveAgent
    submission: SubmissionAgent

    async def aclose(self) -> None:
        await self.autosave.aclose()


def build_services(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    identity: IdentityProvider | None = None,
    documents: DocumentStore | None = None,
    gateway: PushGateway | None = None,
    chat: ChatNotifier | None = None,
) -> Services:
    """Wire the default adapters; tests pass their own fakes for any of them."""
    feed = ChangeFeed()
    identity = identity or SqlIdentityProvider(sessionmaker, feed=feed, staff_emails=settings.staff_email_set)
    documents = documents or LocalDocumentStore(settings.document_root, settings.document_base_url)
    staging = StagingArea(settings.staging_root)
    chat = chat or ChatNotifier(settings.chat_webhook_url, timeout=settings.http_timeout_seconds)
    if gateway is None:
        if settings.push_gateway_url:
            gateway = HttpPushGateway(settings.push_gateway_url, timeout=settings.http_timeout_seconds)
        else:
            gateway = LoggingPushGateway()
    autosave = PartialSaveAgent(sessionmaker, delay=settings.autosave_delay_seconds, feed=feed)
    submission = SubmissionAgent(
        identity_provider=identity,
        document_store=documents,
        staging=staging,
        sessionmaker=sessionmaker,
        feed=feed,
        chat=chat,
        autosave=autosave,
        redirect_after_seconds=settings.confirmation_redirect_seconds,
    )
    return Services(
        settings=settings,
        sessionmaker=sessionmaker,
        feed=feed,
        identity=identity,
        documents=documents,
        staging=staging,
        chat=chat,
        notifications=NotificationService(sessionmaker, gateway),
        autosave=autosave,
        submission=submission,
    )
