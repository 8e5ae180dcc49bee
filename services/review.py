"""
Post-submission mutations shared by the applicant dashboard and the staff
console. Each is a single field-level merge write plus one activity entry;
the caller commits.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models import DriverApplication
from schemas.application import CHECKLIST_DOCUMENT_FIELDS, DOCUMENT_FIELDS, ApplicationStatus
from services.activity import ActivityActor, ActivityType, log_activity
from services.change_feed import ChangeFeed
from services.documents import DocumentStore, document_path
from services.identity import Identity
from services.records import get_application, set_checklist_step, set_document, update_status
from services.validation import field_label

logger = logging.getLogger(__name__)

CHECKLIST_LABELS = {
    "eligibility_checked": "Eligibility check",
    "dbs_applied": "DBS application",
    "medical_booked": "Medical booking",
    "knowledge_test_passed": "Knowledge test",
    "council_application_submitted": "Council application",
    "badge_received": "Badge received",
}


def _actor_name(identity: Identity, actor: ActivityActor) -> str:
    if identity.display_name:
        return identity.display_name
    return identity.email or ("Admin Staff" if actor is ActivityActor.STAFF else "Applicant")


async def replace_document(
    session: AsyncSession,
    store: DocumentStore,
    application_id: str,
    field_id: str,
    filename: str,
    content: bytes,
    content_type: Optional[str],
    identity: Identity,
    actor: ActivityActor,
    feed: Optional[ChangeFeed] = None,
) -> DriverApplication:
    """Upload and point the record at the new file. Raises ProviderError on storage failure."""
    checklist = field_id in CHECKLIST_DOCUMENT_FIELDS
    url_key = CHECKLIST_DOCUMENT_FIELDS.get(field_id) or DOCUMENT_FIELDS.get(field_id)
    if url_key is None:
        raise ValueError(f"Unknown document field: {field_id}")
    if await get_application(session, application_id) is None:
        raise LookupError(application_id)
    url = await store.upload(document_path(application_id, field_id, filename), content, content_type)
    app = await set_document(session, application_id, url_key, url, feed=feed, checklist=checklist)
    await log_activity(
        session,
        app,
        ActivityType.DOCUMENT_UPLOADED,
        actor,
        f"Uploaded {field_label(field_id)}",
        actor_id=identity.uid,
        actor_name=_actor_name(identity, actor),
        metadata={"documentType": field_id, "fileName": filename},
    )
    return app


async def toggle_checklist(
    session: AsyncSession,
    application_id: str,
    step: str,
    checked: bool,
    identity: Identity,
    actor: ActivityActor,
    feed: Optional[ChangeFeed] = None,
) -> DriverApplication:
    app = await set_checklist_step(session, application_id, step, checked, feed=feed)
    label = CHECKLIST_LABELS.get(step, step)
    await log_activity(
        session,
        app,
        ActivityType.CHECKLIST_UPDATED,
        actor,
        f"{label} marked {'complete' if checked else 'incomplete'}",
        actor_id=identity.uid,
        actor_name=_actor_name(identity, actor),
        metadata={"checklistItem": step, "newValue": checked},
    )
    return app


async def change_status(
    session: AsyncSession,
    application_id: str,
    status: ApplicationStatus,
    identity: Identity,
    feed: Optional[ChangeFeed] = None,
) -> tuple[DriverApplication, Optional[str]]:
    app, previous = await update_status(session, application_id, status, feed=feed)
    if previous != app.status:
        await log_activity(
            session,
            app,
            ActivityType.STATUS_CHANGED,
            ActivityActor.STAFF,
            f"Status changed from {previous} to {app.status}",
            actor_id=identity.uid,
            actor_name=_actor_name(identity, ActivityActor.STAFF),
            metadata={"oldStatus": previous, "newStatus": app.status},
        )
        logger.info("Application %s status %s -> %s", application_id, previous, app.status)
    return app, previous
