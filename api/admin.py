"""Staff console: listing, review mutations, activity feed, broadcasts and branding."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_services, relay_events, require_staff, websocket_identity
from database import get_db
from schemas.application import ApplicationStatus, ChecklistUpdate, StatusUpdate
from schemas.requests import BroadcastRequest, MarkReadRequest
from services.activity import ActivityActor, activity_to_response, list_activity, mark_activity_read
from services.branding import BrandingConfig, get_branding, save_branding
from services.container import Services
from services.errors import ProviderError, SubmissionError, map_provider_error
from services.identity import Identity
from services.notifications import NotificationError
from services.records import APPLICATIONS_TOPIC, get_application, list_applications, status_counts
from services.review import change_status, replace_document, toggle_checklist
from services.status_view import application_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

MSG_APPLICATION_NOT_FOUND = "Application not found"


@router.get("/applications")
async def list_all_applications(
    status: Optional[ApplicationStatus] = None,
    search: Optional[str] = None,
    include_partial: bool = Query(False, alias="includePartial"),
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    apps = await list_applications(db, status=status, search=search, include_partial=include_partial)
    return [application_to_response(a) for a in apps]


@router.get("/stats")
async def application_stats(
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    counts = await status_counts(db)
    return {"total": sum(counts.values()), "byStatus": counts}


@router.get("/applications/{application_id}")
async def get_one_application(
    application_id: str,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    app = await get_application(db, application_id)
    if app is None:
        raise HTTPException(status_code=404, detail=MSG_APPLICATION_NOT_FOUND)
    return application_to_response(app)


@router.put("/applications/{application_id}/status")
async def set_application_status(
    application_id: str,
    body: StatusUpdate,
    background_tasks: BackgroundTasks,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Any status may follow any other; the applicant is told in the background."""
    try:
        app, previous = await change_status(db, application_id, body.status, staff, feed=services.feed)
    except LookupError:
        raise HTTPException(status_code=404, detail=MSG_APPLICATION_NOT_FOUND)
    if previous != app.status:
        branding = await get_branding(db)
        background_tasks.add_task(
            services.notifications.notify_status_change, app.id, previous, app.status, branding.company_name
        )
        background_tasks.add_task(services.chat.notify_status_change, app, previous, staff.email or staff.uid)
    return application_to_response(app)


@router.post("/applications/{application_id}/documents/{field_id}")
async def replace_application_document(
    application_id: str,
    field_id: str,
    file: UploadFile = File(...),
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        app = await replace_document(
            db,
            services.documents,
            application_id,
            field_id,
            file.filename or field_id,
            content,
            file.content_type,
            staff,
            ActivityActor.STAFF,
            feed=services.feed,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail=MSG_APPLICATION_NOT_FOUND)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        e.field_id = e.field_id or field_id
        raise SubmissionError([map_provider_error(e)]) from e
    return application_to_response(app)


@router.put("/applications/{application_id}/checklist")
async def set_application_checklist(
    application_id: str,
    body: ChecklistUpdate,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        app = await toggle_checklist(
            db, application_id, body.step, body.checked, staff, ActivityActor.STAFF, feed=services.feed
        )
    except LookupError:
        raise HTTPException(status_code=404, detail=MSG_APPLICATION_NOT_FOUND)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return application_to_response(app)


@router.get("/activity")
async def activity_feed(
    application_id: Optional[str] = Query(None, alias="applicationId"),
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(100, ge=1, le=500),
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    entries = await list_activity(db, application_id=application_id, unread_only=unread_only, limit=limit)
    return [activity_to_response(e) for e in entries]


@router.post("/activity/read")
async def mark_activity_as_read(
    body: MarkReadRequest,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return {"updated": await mark_activity_read(db, body.ids)}


@router.post("/notifications")
async def broadcast_notification(
    body: BroadcastRequest,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        result = await services.notifications.broadcast(
            db, staff, body.recipients, body.title, body.message, scheduled_for=body.scheduled_for
        )
    except NotificationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "mode": result.mode,
        "recipients": result.recipients,
        "delivered": result.delivered,
        "scheduledId": result.scheduled_id,
        "scheduledFor": result.scheduled_for.isoformat() if result.scheduled_for else None,
    }


@router.post("/notifications/dispatch")
async def dispatch_scheduled_notifications(
    staff: Identity = Depends(require_staff),
    services: Services = Depends(get_services),
):
    """Send scheduled broadcasts that are due; meant for a cron or the console."""
    return {"dispatched": await services.notifications.dispatch_due()}


@router.put("/branding")
async def update_branding(
    body: BrandingConfig,
    staff: Identity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    branding = await save_branding(db, body)
    logger.info("Branding updated by %s", staff.email or staff.uid)
    return branding.model_dump(by_alias=True)


@router.websocket("/ws")
async def application_list_events(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Live feed of application changes for the staff dashboard."""
    identity = await websocket_identity(websocket, token)
    if identity is None or not identity.is_staff:
        await websocket.close(code=4403)
        return
    services: Services = websocket.app.state.services
    await websocket.accept()
    subscription = services.feed.subscribe(APPLICATIONS_TOPIC)
    await relay_events(websocket, subscription)
    logger.debug("Staff listener %s disconnected", identity.uid)
