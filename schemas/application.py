from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from utils.case import to_snake_key


class ApplicationStatus(str, Enum):
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    CONTACTED = "Contacted"
    MEETING_SCHEDULED = "Meeting Scheduled"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Staged upload field -> URL key stored on the record
DOCUMENT_FIELDS: dict[str, str] = {
    "badge_document": "badge_document_url",
    "driving_license_document": "driving_license_document_url",
    "insurance_document": "insurance_document_url",
    "v5c_document": "v5c_document_url",
    "phv_licence_document": "phv_licence_document_url",
}

# Optional per-step documents on the unlicensed checklist
CHECKLIST_DOCUMENT_FIELDS: dict[str, str] = {
    "dbs_document": "dbs_document_url",
    "medical_document": "medical_document_url",
    "knowledge_test_document": "knowledge_test_document_url",
}

CHECKLIST_STEPS: tuple[str, ...] = (
    "eligibility_checked",
    "dbs_applied",
    "medical_booked",
    "knowledge_test_passed",
    "council_application_submitted",
)

LICENSED_DETAIL_FIELDS: tuple[str, ...] = (
    "badge_number",
    "badge_expiry",
    "issuing_council",
    "driving_license_number",
    "license_expiry",
    "dbs_check_number",
    "vehicle_make",
    "vehicle_model",
    "vehicle_reg",
    "insurance_expiry",
)

VEHICLE_FIELDS: tuple[str, ...] = ("vehicle_make", "vehicle_model", "vehicle_reg", "insurance_expiry")

PERSONAL_FIELDS: tuple[str, ...] = ("first_name", "last_name", "email", "phone", "area")

CREDENTIAL_FIELDS: frozenset[str] = frozenset({"password", "confirm_password"})


class CamelModel(BaseModel):
    model_config = {"populate_by_name": True, "alias_generator": to_camel}


class WizardForm(CamelModel):
    """Everything the applicant types into the wizard. Credentials are never stored."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    area: str = ""
    password: str = ""
    confirm_password: str = ""
    is_licensed_driver: bool = False
    has_own_vehicle: bool = False
    badge_number: str = ""
    badge_expiry: str = ""
    issuing_council: str = ""
    driving_license_number: str = ""
    license_expiry: str = ""
    dbs_check_number: str = ""
    vehicle_make: str = ""
    vehicle_model: str = ""
    vehicle_reg: str = ""
    insurance_expiry: str = ""
    confirmed: bool = False

    def without_credentials(self) -> "WizardForm":
        return self.model_copy(update={"password": "", "confirm_password": ""})


class UnlicensedProgress(CamelModel):
    eligibility_checked: bool = False
    dbs_applied: bool = False
    dbs_document_url: Optional[str] = None
    medical_booked: bool = False
    medical_document_url: Optional[str] = None
    knowledge_test_passed: bool = False
    knowledge_test_document_url: Optional[str] = None
    council_application_submitted: bool = False
    # Conversion trigger to the licensed path, not a checklist step
    badge_received: bool = False


class Documents(CamelModel):
    badge_document_url: Optional[str] = None
    driving_license_document_url: Optional[str] = None
    insurance_document_url: Optional[str] = None
    v5c_document_url: Optional[str] = None
    phv_licence_document_url: Optional[str] = None


class LicensedDetails(CamelModel):
    badge_number: str = ""
    badge_expiry: str = ""
    issuing_council: str = ""
    driving_license_number: str = ""
    license_expiry: str = ""
    dbs_check_number: str = ""


class VehicleDetails(CamelModel):
    vehicle_make: str = ""
    vehicle_model: str = ""
    vehicle_reg: str = ""
    insurance_expiry: str = ""


class _ApplicationBase(CamelModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    area: str = ""
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    is_partial: bool = True
    current_step: int = 1
    documents: Documents = Field(default_factory=Documents)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LicensedApplication(_ApplicationBase):
    path: Literal["licensed"] = "licensed"
    details: LicensedDetails = Field(default_factory=LicensedDetails)
    has_own_vehicle: bool = False
    vehicle: Optional[VehicleDetails] = None


class UnlicensedApplication(_ApplicationBase):
    path: Literal["unlicensed"] = "unlicensed"
    unlicensed_progress: UnlicensedProgress = Field(default_factory=UnlicensedProgress)
    checklist_progress: float = 0.0


ApplicationView = Annotated[Union[LicensedApplication, UnlicensedApplication], Field(discriminator="path")]


class StatusUpdate(CamelModel):
    status: ApplicationStatus


class ChecklistUpdate(CamelModel):
    step: str
    checked: bool

    @field_validator("step")
    @classmethod
    def _snake_step(cls, v: str) -> str:
        return to_snake_key(v.strip())


class FieldErrorSchema(CamelModel):
    field_id: str
    field: str
    message: str


class WizardStateResponse(CamelModel):
    current_step: int
    path: Literal["licensed", "unlicensed"]
    visible_steps: list[int]
    form: dict[str, Any]
    documents: dict[str, Any] = Field(default_factory=dict)
    staged_documents: list[str] = Field(default_factory=list)
    show_dashboard: bool = False
    submitted: bool = False


class WizardNavigation(CamelModel):
    form: WizardForm
    current_step: int = 1
