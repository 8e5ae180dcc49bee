"""Applicant dashboard: own application, checklist and document uploads."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_services, relay_events, require_account, websocket_identity
from database import get_db
from schemas.application import ChecklistUpdate
from services.activity import ActivityActor
from services.container import Services
from services.errors import ProviderError, SubmissionError, map_provider_error
from services.identity import Identity
from services.records import application_topic, get_application
from services.review import replace_document, toggle_checklist
from services.status_view import application_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/status", tags=["status"])

MSG_NO_APPLICATION = "No submitted application found"


@router.get("")
async def get_own_application(
    identity: Identity = Depends(require_account),
    db: AsyncSession = Depends(get_db),
):
    app = await get_application(db, identity.uid)
    if app is None or app.is_partial:
        raise HTTPException(status_code=404, detail=MSG_NO_APPLICATION)
    return application_to_response(app)


@router.put("/checklist")
async def update_checklist(
    body: ChecklistUpdate,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(require_account),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        app = await toggle_checklist(
            db, identity.uid, body.step, body.checked, identity, ActivityActor.APPLICANT, feed=services.feed
        )
    except LookupError:
        raise HTTPException(status_code=404, detail=MSG_NO_APPLICATION)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    background_tasks.add_task(
        services.chat.notify_activity, app, f"{body.step} set to {body.checked}", identity.email or identity.uid
    )
    response = application_to_response(app)
    # Badge received: the client offers the licensed wizard from step 2
    response["convertToLicensed"] = body.step == "badge_received" and body.checked
    return response


@router.post("/documents/{field_id}")
async def upload_own_document(
    field_id: str,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    identity: Identity = Depends(require_account),
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
            identity.uid,
            field_id,
            file.filename or field_id,
            content,
            file.content_type,
            identity,
            ActivityActor.APPLICANT,
            feed=services.feed,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail=MSG_NO_APPLICATION)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        e.field_id = e.field_id or field_id
        raise SubmissionError([map_provider_error(e)]) from e
    background_tasks.add_task(
        services.chat.notify_activity, app, f"Uploaded {field_id}", identity.email or identity.uid
    )
    return application_to_response(app)


@router.websocket("/ws")
async def application_events(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Pushes the applicant's refreshed application on every change."""
    identity = await websocket_identity(websocket, token)
    if identity is None:
        await websocket.close(code=4401)
        return
    services: Services = websocket.app.state.services
    await websocket.accept()
    subscription = services.feed.subscribe(application_topic(identity.uid))

    async def with_application(event: dict) -> dict:
        async with services.sessionmaker() as session:
            app = await get_application(session, identity.uid)
        return {"event": event, "application": application_to_response(app) if app is not None else None}

    await relay_events(websocket, subscription, with_application)
    logger.debug("Status listener for %s disconnected", identity.uid)
