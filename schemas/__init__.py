from schemas.application import (
    ApplicationStatus,
    ApplicationView,
    ChecklistUpdate,
    Documents,
    FieldErrorSchema,
    LicensedApplication,
    LicensedDetails,
    StatusUpdate,
    UnlicensedApplication,
    UnlicensedProgress,
    VehicleDetails,
    WizardForm,
    WizardNavigation,
    WizardStateResponse,
)
from schemas.requests import (
    BroadcastRequest,
    LoginRequest,
    MarkReadRequest,
    MessageCreate,
    PushTokenRegister,
)

__all__ = [
    "ApplicationStatus",
    "ApplicationView",
    "BroadcastRequest",
    "ChecklistUpdate",
    "Documents",
    "FieldErrorSchema",
    "LicensedApplication",
    "LicensedDetails",
    "LoginRequest",
    "MarkReadRequest",
    "MessageCreate",
    "PushTokenRegister",
    "StatusUpdate",
    "UnlicensedApplication",
    "UnlicensedProgress",
    "VehicleDetails",
    "WizardForm",
    "WizardNavigation",
    "WizardStateResponse",
]
