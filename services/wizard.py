"""
Application wizard state machine.

Licensed applicants walk steps 1-7; step 6 (vehicle details) exists only when
they own a vehicle and is skipped in both directions otherwise. Unlicensed
applicants only see step 1, after which their account is finalized and they
move to the checklist dashboard.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Collection, Mapping, Optional

from schemas.application import (
    CREDENTIAL_FIELDS,
    LICENSED_DETAIL_FIELDS,
    PERSONAL_FIELDS,
    WizardForm,
)
from services.validation import PasswordStrength, validate_step


class WizardStep(IntEnum):
    ACCOUNT = 1
    BADGE = 2
    DRIVING_LICENSE = 3
    DOCUMENTS = 4
    VEHICLE_OWNERSHIP = 5
    VEHICLE_DETAILS = 6
    REVIEW = 7


class WizardPath(str, Enum):
    LICENSED = "licensed"
    UNLICENSED = "unlicensed"


class StepAction(str, Enum):
    ADVANCE = "advance"
    BACK = "back"
    BLOCKED = "blocked"
    FINALIZE_UNLICENSED = "finalize_unlicensed"
    SUBMIT = "submit"


# Step the unlicensed record is parked on once the dashboard takes over
UNLICENSED_DASHBOARD_STEP = 2


def path_steps(is_licensed: bool, has_own_vehicle: bool) -> list[WizardStep]:
    if not is_licensed:
        return [WizardStep.ACCOUNT]
    return [s for s in WizardStep if has_own_vehicle or s is not WizardStep.VEHICLE_DETAILS]


def next_step(step: WizardStep, is_licensed: bool, has_own_vehicle: bool) -> Optional[WizardStep]:
    """Step after `step` on the active path, or None when `step` is terminal."""
    steps = path_steps(is_licensed, has_own_vehicle)
    idx = steps.index(coerce_step(step, is_licensed, has_own_vehicle))
    if idx + 1 >= len(steps):
        return None
    return steps[idx + 1]


def previous_step(step: WizardStep, is_licensed: bool, has_own_vehicle: bool) -> WizardStep:
    steps = path_steps(is_licensed, has_own_vehicle)
    idx = steps.index(coerce_step(step, is_licensed, has_own_vehicle))
    return steps[max(idx - 1, 0)]


def coerce_step(step: int, is_licensed: bool, has_own_vehicle: bool) -> WizardStep:
    """Map a stored step onto the nearest legal step of the active path."""
    steps = path_steps(is_licensed, has_own_vehicle)
    try:
        wanted = WizardStep(step)
    except ValueError:
        wanted = WizardStep.REVIEW if step > WizardStep.REVIEW else WizardStep.ACCOUNT
    if wanted in steps:
        return wanted
    earlier = [s for s in steps if s < wanted]
    return earlier[-1] if earlier else steps[0]


@dataclass
class Transition:
    action: StepAction
    step: WizardStep
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def blocked(self) -> bool:
        return self.action is StepAction.BLOCKED


class WizardController:
    """In-memory wizard state: current step, form values and document gates."""

    def __init__(
        self,
        form: Optional[WizardForm] = None,
        step: int = WizardStep.ACCOUNT,
        staged_documents: Collection[str] = (),
        existing_documents: Optional[Mapping[str, Optional[str]]] = None,
        password_strength: Optional[PasswordStrength] = None,
    ):
        self.form = form or WizardForm()
        self.staged_documents = set(staged_documents)
        self.existing_documents = dict(existing_documents or {})
        self.password_strength = password_strength
        self.step = coerce_step(step, self.form.is_licensed_driver, self.form.has_own_vehicle)

    @classmethod
    def resume(
        cls,
        record: Any = None,
        convert_to_licensed: bool = False,
        staged_documents: Collection[str] = (),
        password_strength: Optional[PasswordStrength] = None,
    ) -> "WizardController":
        """Rebuild the wizard from a stored application; credentials always start blank."""
        if record is None:
            return cls(staged_documents=staged_documents, password_strength=password_strength)
        form = form_from_record(record)
        step = record.current_step or WizardStep.ACCOUNT
        if convert_to_licensed and not record.is_licensed_driver:
            form = form.model_copy(update={"is_licensed_driver": True})
            step = WizardStep.BADGE
        return cls(
            form=form,
            step=step,
            staged_documents=staged_documents,
            existing_documents=record.documents or {},
            password_strength=password_strength,
        )

    @property
    def path(self) -> WizardPath:
        return WizardPath.LICENSED if self.form.is_licensed_driver else WizardPath.UNLICENSED

    @property
    def visible_steps(self) -> list[WizardStep]:
        return path_steps(self.form.is_licensed_driver, self.form.has_own_vehicle)

    def update(self, **values: Any) -> None:
        self.form = self.form.model_copy(update=values)
        self.step = coerce_step(self.step, self.form.is_licensed_driver, self.form.has_own_vehicle)

    def validate(self, step: Optional[int] = None) -> dict[str, str]:
        return validate_step(
            self.step if step is None else step,
            self.form,
            staged_documents=self.staged_documents,
            existing_documents=self.existing_documents,
            password_strength=self.password_strength,
        )

    def advance(self) -> Transition:
        errors = self.validate()
        if errors:
            return Transition(StepAction.BLOCKED, self.step, errors)
        nxt = next_step(self.step, self.form.is_licensed_driver, self.form.has_own_vehicle)
        if nxt is None:
            if self.path is WizardPath.UNLICENSED:
                return Transition(StepAction.FINALIZE_UNLICENSED, self.step)
            return Transition(StepAction.SUBMIT, self.step)
        self.step = nxt
        return Transition(StepAction.ADVANCE, nxt)

    def back(self) -> Transition:
        self.step = previous_step(self.step, self.form.is_licensed_driver, self.form.has_own_vehicle)
        return Transition(StepAction.BACK, self.step)


def form_from_record(record: Any) -> WizardForm:
    values: dict[str, Any] = {name: getattr(record, name, None) or "" for name in PERSONAL_FIELDS}
    details = record.licensed_details or {}
    for name in LICENSED_DETAIL_FIELDS:
        values[name] = details.get(name) or ""
    values["is_licensed_driver"] = bool(record.is_licensed_driver)
    values["has_own_vehicle"] = bool(record.has_own_vehicle)
    for name in CREDENTIAL_FIELDS:
        values[name] = ""
    return WizardForm(**values)
