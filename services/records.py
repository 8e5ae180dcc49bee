"""
Application record store.

All writes are merges: scalar columns given in `fields` replace the stored
value, JSON sub-objects are merged key by key so fields written by another
flow (document URLs, checklist flags) survive. Document URLs are monotonic:
an empty value never replaces a stored URL. There is no locking or
versioning; concurrent writers resolve last-write-wins per field.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import DriverApplication
from schemas.application import (
    CHECKLIST_STEPS,
    LICENSED_DETAIL_FIELDS,
    PERSONAL_FIELDS,
    VEHICLE_FIELDS,
    ApplicationStatus,
    UnlicensedProgress,
    WizardForm,
)
from services.change_feed import ChangeFeed, publish_on_commit
from utils.case import to_camel_key, to_snake_key

logger = logging.getLogger(__name__)

JSON_FIELDS = ("licensed_details", "unlicensed_progress", "documents")
SCALAR_FIELDS = (
    *PERSONAL_FIELDS,
    "is_licensed_driver",
    "has_own_vehicle",
    "status",
    "is_partial",
    "current_step",
    "created_at",
)

APPLICATIONS_TOPIC = "applications"


def application_topic(application_id: str) -> str:
    return f"applications/{application_id}"


def empty_checklist() -> dict[str, Any]:
    return UnlicensedProgress().model_dump(exclude_none=True)


def merge_documents(existing: Optional[dict], incoming: Optional[dict]) -> dict:
    merged = dict(existing or {})
    for key, url in (incoming or {}).items():
        if url:
            merged[key] = url
    return merged


def fields_from_form(form: WizardForm, *, include_vehicle: Optional[bool] = None) -> dict[str, Any]:
    """Merge payload for the wizard's current values, credentials excluded."""
    fields: dict[str, Any] = {name: getattr(form, name) for name in PERSONAL_FIELDS}
    fields["is_licensed_driver"] = form.is_licensed_driver
    if form.is_licensed_driver:
        keep_vehicle = form.has_own_vehicle if include_vehicle is None else include_vehicle
        details = {
            name: getattr(form, name)
            for name in LICENSED_DETAIL_FIELDS
            if keep_vehicle or name not in VEHICLE_FIELDS
        }
        fields["licensed_details"] = details
        fields["has_own_vehicle"] = form.has_own_vehicle
    return fields


async def get_application(session: AsyncSession, application_id: str) -> Optional[DriverApplication]:
    result = await session.execute(select(DriverApplication).where(DriverApplication.id == application_id))
    return result.scalar_one_or_none()


async def merge_application(
    session: AsyncSession,
    application_id: str,
    fields: dict[str, Any],
    feed: Optional[ChangeFeed] = None,
    replace_json: Sequence[str] = (),
) -> DriverApplication:
    """Create or merge-update the record keyed by application_id.

    Change events are queued on the session and go out when it commits.
    """
    app = await get_application(session, application_id)
    created = app is None
    if created:
        app = DriverApplication(
            id=application_id,
            status=ApplicationStatus.SUBMITTED.value,
            is_partial=True,
            current_step=1,
            documents={},
            created_at=datetime.now(timezone.utc),
        )
        session.add(app)
    old_status = None if created else app.status
    old_partial = None if created else app.is_partial

    for name in SCALAR_FIELDS:
        if name not in fields:
            continue
        if name == "created_at" and not created and app.created_at is not None:
            continue
        value = fields[name]
        if isinstance(value, ApplicationStatus):
            value = value.value
        setattr(app, name, value)

    for name in JSON_FIELDS:
        if name not in fields:
            continue
        incoming = fields[name]
        if name == "documents":
            app.documents = merge_documents(app.documents, incoming)
        elif name in replace_json or incoming is None:
            setattr(app, name, incoming)
        else:
            setattr(app, name, {**(getattr(app, name) or {}), **incoming})

    app.updated_at = datetime.now(timezone.utc)
    await session.flush()

    if feed is not None:
        event = {
            "type": "created" if created else "updated",
            "id": application_id,
            "status": app.status,
            "previousStatus": old_status,
            "isPartial": app.is_partial,
            "wasPartial": old_partial,
            "fields": sorted(to_camel_key(f) for f in fields),
        }
        publish_on_commit(session, feed, application_topic(application_id), event)
        publish_on_commit(session, feed, APPLICATIONS_TOPIC, event)
    return app


async def list_applications(
    session: AsyncSession,
    status: Optional[ApplicationStatus] = None,
    search: Optional[str] = None,
    include_partial: bool = False,
) -> list[DriverApplication]:
    """Staff listing, newest first. Partial records are excluded unless asked for."""
    query = select(DriverApplication)
    if not include_partial:
        query = query.where(DriverApplication.is_partial.is_(False))
    if status is not None:
        query = query.where(DriverApplication.status == status.value)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(DriverApplication.first_name).like(term),
                func.lower(DriverApplication.last_name).like(term),
                func.lower(DriverApplication.email).like(term),
                DriverApplication.phone.like(f"%{search.strip()}%"),
                func.lower(DriverApplication.area).like(term),
            )
        )
    query = query.order_by(DriverApplication.created_at.desc())
    result = await session.execute(query)
    return list(result.scalars().all())


async def status_counts(session: AsyncSession) -> dict[str, int]:
    result = await session.execute(
        select(DriverApplication.status, func.count())
        .where(DriverApplication.is_partial.is_(False))
        .group_by(DriverApplication.status)
    )
    counts = {s.value: 0 for s in ApplicationStatus}
    for status, count in result.all():
        counts[status] = count
    return counts


async def update_status(
    session: AsyncSession,
    application_id: str,
    status: ApplicationStatus,
    feed: Optional[ChangeFeed] = None,
) -> tuple[DriverApplication, Optional[str]]:
    """Set the status (any value, any order). Returns the record and the previous status."""
    app = await get_application(session, application_id)
    if app is None:
        raise LookupError(application_id)
    previous = app.status
    app = await merge_application(session, application_id, {"status": status}, feed=feed)
    return app, previous


async def set_document(
    session: AsyncSession,
    application_id: str,
    url_key: str,
    url: str,
    feed: Optional[ChangeFeed] = None,
    checklist: bool = False,
) -> DriverApplication:
    if await get_application(session, application_id) is None:
        raise LookupError(application_id)
    if checklist:
        fields = {"unlicensed_progress": {url_key: url}}
    else:
        fields = {"documents": {url_key: url}}
    return await merge_application(session, application_id, fields, feed=feed)


async def set_checklist_step(
    session: AsyncSession,
    application_id: str,
    step: str,
    checked: bool,
    feed: Optional[ChangeFeed] = None,
) -> DriverApplication:
    step = to_snake_key(step)
    if step not in CHECKLIST_STEPS and step != "badge_received":
        raise ValueError(f"Unknown checklist step: {step}")
    app = await get_application(session, application_id)
    if app is None:
        raise LookupError(application_id)
    if app.is_licensed_driver:
        raise ValueError("Checklist only applies to unlicensed applications")
    progress = {**empty_checklist(), **(app.unlicensed_progress or {}), step: checked}
    return await merge_application(session, application_id, {"unlicensed_progress": progress}, feed=feed)
