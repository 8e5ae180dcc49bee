from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from models import DriverApplication
from schemas.application import (
    CHECKLIST_STEPS,
    Documents,
    LicensedApplication,
    LicensedDetails,
    UnlicensedApplication,
    UnlicensedProgress,
    VehicleDetails,
)
from utils.case import present_camel


def checklist_progress(progress: Optional[Mapping[str, Any]]) -> float:
    """Fraction of the five checklist steps completed."""
    progress = progress or {}
    done = sum(1 for step in CHECKLIST_STEPS if progress.get(step))
    return done / len(CHECKLIST_STEPS)


def to_view(app: DriverApplication) -> Union[LicensedApplication, UnlicensedApplication]:
    """Project the stored record onto the licensed/unlicensed variant."""
    common = dict(
        id=app.id,
        first_name=app.first_name or "",
        last_name=app.last_name or "",
        email=app.email or "",
        phone=app.phone or "",
        area=app.area or "",
        status=app.status,
        is_partial=app.is_partial,
        current_step=app.current_step or 1,
        documents=Documents(**(app.documents or {})),
        created_at=app.created_at,
        updated_at=app.updated_at,
    )
    if app.is_licensed_driver:
        details = app.licensed_details or {}
        vehicle = None
        if app.has_own_vehicle:
            vehicle = VehicleDetails(**{k: details.get(k) or "" for k in VehicleDetails.model_fields})
        return LicensedApplication(
            **common,
            details=LicensedDetails(**{k: details.get(k) or "" for k in LicensedDetails.model_fields}),
            has_own_vehicle=bool(app.has_own_vehicle),
            vehicle=vehicle,
        )
    progress = UnlicensedProgress(**(app.unlicensed_progress or {}))
    return UnlicensedApplication(
        **common,
        unlicensed_progress=progress,
        checklist_progress=checklist_progress(app.unlicensed_progress),
    )


def application_to_response(app: DriverApplication) -> dict[str, Any]:
    """Serialize application to dict with camelCase for frontend."""
    return to_view(app).model_dump(by_alias=True, mode="json")


def applicant_name(app: DriverApplication) -> str:
    return f"{app.first_name or ''} {app.last_name or ''}".strip()


def document_links(app: DriverApplication) -> dict[str, str]:
    """Present document URLs only, camelCase keyed."""
    return present_camel(app.documents)
