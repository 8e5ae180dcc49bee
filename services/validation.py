"""
Per-step validation for the application wizard.

validate_step() is pure: it returns a mapping of field id -> message, empty
when the step may be left. Document requirements are satisfied either by a
newly staged file or by a URL already on the stored record, so re-validating
a resumed application does not force re-uploads.
"""
from __future__ import annotations

import re
from typing import Callable, Collection, Mapping, Optional

from config import settings
from schemas.application import DOCUMENT_FIELDS, WizardForm

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
PHONE_STRIP_RE = re.compile(r"[\s\-()]")
SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;':\",./<>?`~\\"
MIN_PASSWORD_LENGTH = 8

FIELD_LABELS: dict[str, str] = {
    "first_name": "First Name",
    "last_name": "Last Name",
    "email": "Email Address",
    "phone": "Mobile Number",
    "area": "Area / City of Work",
    "password": "Password",
    "confirm_password": "Confirm Password",
    "badge_number": "Badge Number",
    "badge_expiry": "Badge Expiry Date",
    "issuing_council": "Issuing Council",
    "driving_license_number": "Driving License Number",
    "license_expiry": "License Expiry Date",
    "vehicle_make": "Vehicle Make",
    "vehicle_model": "Vehicle Model",
    "vehicle_reg": "Vehicle Registration",
    "insurance_expiry": "Insurance Expiry Date",
    "badge_document": "Badge Document",
    "driving_license_document": "Driving License Document",
    "insurance_document": "Insurance Document",
    "v5c_document": "Vehicle Logbook (V5C)",
    "phv_licence_document": "PHV Licence",
    "dbs_document": "DBS Document",
    "medical_document": "Medical Document",
    "knowledge_test_document": "Knowledge Test Document",
    "confirmed": "Confirmation",
}

PasswordStrength = Callable[[str], int]


def field_label(field_id: str) -> str:
    return FIELD_LABELS.get(field_id, field_id)


def password_score(password: str) -> int:
    """Score 0-5: one point each for length, upper, lower, digit and special character."""
    if not password:
        return 0
    checks = (
        len(password) >= MIN_PASSWORD_LENGTH,
        re.search(r"[A-Z]", password) is not None,
        re.search(r"[a-z]", password) is not None,
        re.search(r"\d", password) is not None,
        any(c in SPECIAL_CHARACTERS for c in password),
    )
    return sum(checks)


def normalize_phone(phone: str) -> str:
    return PHONE_STRIP_RE.sub("", phone or "")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match((email or "").strip()))


def is_valid_phone(phone: str, prefix: Optional[str] = None) -> bool:
    prefix = settings.phone_prefix if prefix is None else prefix
    digits = normalize_phone(phone)
    return bool(re.fullmatch(re.escape(prefix) + r"\d{%d}" % (11 - len(prefix)), digits))


def _require(errors: dict[str, str], form: WizardForm, field_id: str, message: str) -> None:
    value = getattr(form, field_id)
    if not (value.strip() if isinstance(value, str) else value):
        errors[field_id] = message


def _require_document(
    errors: dict[str, str],
    field_id: str,
    message: str,
    staged: Collection[str],
    existing: Mapping[str, Optional[str]],
) -> None:
    if field_id in staged:
        return
    if existing.get(DOCUMENT_FIELDS[field_id]):
        return
    errors[field_id] = message


def validate_step(
    step: int,
    form: WizardForm,
    staged_documents: Collection[str] = (),
    existing_documents: Optional[Mapping[str, Optional[str]]] = None,
    password_strength: Optional[PasswordStrength] = None,
    min_score: Optional[int] = None,
) -> dict[str, str]:
    existing = existing_documents or {}
    strength = password_strength or password_score
    threshold = settings.password_min_score if min_score is None else min_score
    errors: dict[str, str] = {}

    if step == 1:
        _require(errors, form, "first_name", "First name is required")
        _require(errors, form, "last_name", "Last name is required")
        if not form.email.strip():
            errors["email"] = "Email is required"
        elif not is_valid_email(form.email):
            errors["email"] = "Email address is invalid"
        if not form.phone.strip():
            errors["phone"] = "Mobile number is required"
        elif not is_valid_phone(form.phone):
            errors["phone"] = (
                f"Please enter a valid 11-digit UK mobile number starting with {settings.phone_prefix}"
            )
        _require(errors, form, "area", "Area / City of work is required")
        if not form.password:
            errors["password"] = "Password is required"
        elif strength(form.password) < threshold:
            errors["password"] = "Password does not meet requirements"
        if form.password != form.confirm_password:
            errors["confirm_password"] = "Passwords do not match"
        return errors

    if not form.is_licensed_driver:
        return errors

    if step == 2:
        _require(errors, form, "badge_number", "Badge number is required")
        _require(errors, form, "badge_expiry", "Badge expiry date is required")
        _require(errors, form, "issuing_council", "Issuing council is required")
    elif step == 3:
        _require(errors, form, "driving_license_number", "Driving license number is required")
        _require(errors, form, "license_expiry", "License expiry date is required")
    elif step == 4:
        _require_document(errors, "badge_document", "Badge document is required", staged_documents, existing)
        _require_document(
            errors, "driving_license_document", "Driving license document is required", staged_documents, existing
        )
    elif step == 6 and form.has_own_vehicle:
        _require(errors, form, "vehicle_make", "Vehicle make is required")
        _require(errors, form, "vehicle_model", "Vehicle model is required")
        _require(errors, form, "vehicle_reg", "Vehicle registration is required")
        _require(errors, form, "insurance_expiry", "Insurance expiry date is required")
        _require_document(errors, "insurance_document", "Insurance document is required", staged_documents, existing)
    elif step == 7 and not form.confirmed:
        errors["confirmed"] = "Please confirm that all details provided are correct"

    return errors
