"""
Application wizard endpoints.

The client owns the form between calls and sends the whole of it (including
the transient password) with every navigation; the server holds only the
partial record and the staged files.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.auth import identity_to_response
from api.deps import get_current_identity, get_services
from models import DriverApplication
from schemas.application import DOCUMENT_FIELDS, WizardNavigation, WizardStateResponse
from services.container import Services
from services.identity import Identity
from services.records import get_application
from services.status_view import application_to_response, document_links
from services.wizard import StepAction, WizardController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wizard", tags=["wizard"])


async def _load(services: Services, uid: str) -> Optional[DriverApplication]:
    async with services.sessionmaker() as session:
        return await get_application(session, uid)


def _state(
    controller: WizardController,
    record: Optional[DriverApplication],
    staged: list[str],
) -> dict[str, Any]:
    submitted = record is not None and not record.is_partial
    return WizardStateResponse(
        current_step=int(controller.step),
        path=controller.path.value,
        visible_steps=[int(s) for s in controller.visible_steps],
        form=controller.form.without_credentials().model_dump(by_alias=True),
        documents=document_links(record) if record is not None else {},
        staged_documents=sorted(staged),
        show_dashboard=submitted and not controller.form.is_licensed_driver,
        submitted=submitted,
    ).model_dump(by_alias=True)


async def _controller(services: Services, identity: Identity, body: WizardNavigation):
    record = await _load(services, identity.uid)
    staged = list(await run_in_threadpool(services.staging.staged, identity.uid))
    controller = WizardController(
        form=body.form,
        step=body.current_step,
        staged_documents=staged,
        existing_documents=(record.documents or {}) if record is not None else {},
    )
    return controller, record, staged


def _blocked(errors: dict[str, str]) -> JSONResponse:
    return JSONResponse(status_code=422, content={"fieldErrors": errors})


async def _complete(services: Services, identity: Identity, controller: WizardController, action: StepAction):
    if action is StepAction.FINALIZE_UNLICENSED:
        result = await services.submission.finalize_unlicensed(identity, controller)
    else:
        result = await services.submission.submit(identity, controller)
    return {
        "action": action.value,
        "redirectAfterSeconds": result.redirect_after_seconds,
        "showDashboard": result.show_dashboard,
        "user": identity_to_response(result.identity),
        "application": application_to_response(result.application),
    }


@router.get("")
async def get_wizard_state(
    convert_to_licensed: bool = Query(False, alias="convertToLicensed"),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Resume from the stored record (or start fresh); credentials are always blank."""
    record = await _load(services, identity.uid)
    staged = list(await run_in_threadpool(services.staging.staged, identity.uid))
    controller = WizardController.resume(record, convert_to_licensed=convert_to_licensed, staged_documents=staged)
    return _state(controller, record, staged)


@router.put("")
async def save_progress(
    body: WizardNavigation,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Called on every edit; the write happens after the quiet period."""
    scheduled = services.autosave.schedule(identity, body.form, body.current_step)
    return {"scheduled": scheduled}


@router.post("/next")
async def next_step(
    body: WizardNavigation,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    controller, record, staged = await _controller(services, identity, body)
    transition = controller.advance()
    if transition.blocked:
        return _blocked(transition.errors)
    if transition.action is StepAction.ADVANCE:
        services.autosave.schedule(identity, controller.form, controller.step)
        return {"action": transition.action.value, **_state(controller, record, staged)}
    return await _complete(services, identity, controller, transition.action)


@router.post("/back")
async def previous_step(
    body: WizardNavigation,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    controller, record, staged = await _controller(services, identity, body)
    transition = controller.back()
    services.autosave.schedule(identity, controller.form, controller.step)
    return {"action": transition.action.value, **_state(controller, record, staged)}


@router.post("/submit")
async def submit_application(
    body: WizardNavigation,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    controller, _, _ = await _controller(services, identity, body)
    return await _complete(services, identity, controller, StepAction.SUBMIT)


@router.post("/documents/{field_id}", status_code=201)
async def stage_document(
    field_id: str,
    file: UploadFile = File(...),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Hold a picked file until submission uploads it."""
    if field_id not in DOCUMENT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Unknown document field: {field_id}")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    staged = await run_in_threadpool(
        services.staging.stage, identity.uid, field_id, file.filename or field_id, content, file.content_type
    )
    return {
        "fieldId": field_id,
        "filename": staged.filename,
        "stagedDocuments": sorted(await run_in_threadpool(services.staging.staged, identity.uid)),
    }


@router.delete("/documents/{field_id}", status_code=204)
async def remove_staged_document(
    field_id: str,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    await run_in_threadpool(services.staging.discard, identity.uid, field_id)
