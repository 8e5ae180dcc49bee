"""
Error taxonomy surfaced to applicants.

Adapters raise ProviderError with a provider-style code ("auth/...",
"storage/..."); map_provider_error() turns it into the field-level errors the
submission modal lists.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from services.validation import field_label


class ProviderError(Exception):
    def __init__(self, code: str, message: str = "", field_id: Optional[str] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        # Upload failures carry the document field that failed
        self.field_id = field_id


@dataclass
class FieldError:
    field_id: str
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"fieldId": self.field_id, "field": self.field, "message": self.message}


class SubmissionError(Exception):
    """One or more submission steps failed; carries every error for the modal."""

    def __init__(self, errors: list[FieldError]):
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors

    @property
    def field_errors(self) -> dict[str, str]:
        return {e.field_id: e.message for e in self.errors if e.field_id != "general"}


_AUTH_ERRORS: dict[str, tuple[str, str]] = {
    "auth/email-already-in-use": (
        "email",
        "This email address is already in use by another account. "
        "Please use a different email or try logging in.",
    ),
    "auth/credential-already-in-use": (
        "email",
        "This email address is already linked to another account. Please use a different email.",
    ),
    "auth/weak-password": ("password", "Password is too weak. Please choose a stronger password."),
    "auth/invalid-email": ("email", "Email address format is invalid. Please check and try again."),
}

_STORAGE_ERRORS: dict[str, str] = {
    "storage/unauthorized": "File upload failed due to permission error. Please try again or contact support.",
    "storage/canceled": "File upload was canceled. Please try submitting again.",
    "storage/unknown": "File upload failed. Please try submitting again.",
}

GENERIC_MESSAGE = (
    "An unexpected error occurred while submitting your application. "
    "Please try again. If the problem persists, contact support."
)


def map_provider_error(exc: BaseException) -> FieldError:
    code = getattr(exc, "code", None)
    if code in _AUTH_ERRORS:
        field_id, message = _AUTH_ERRORS[code]
        return FieldError(field_id=field_id, field=field_label(field_id), message=message)
    if code in _STORAGE_ERRORS:
        field_id = getattr(exc, "field_id", None) or "file_upload"
        label = "File Upload" if field_id == "file_upload" else f"File Upload ({field_label(field_id)})"
        return FieldError(field_id=field_id, field=label, message=_STORAGE_ERRORS[code])
    return FieldError(field_id="general", field="Application Submission", message=GENERIC_MESSAGE)
