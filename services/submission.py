"""
Final submission of an application.

Order matters and each failure stops the rest:
  1. bind an anonymous session to the applicant's email/password,
  2. upload every staged file (independently; successes are kept even when
     another upload fails),
  3. write the final record with is_partial=False, merging document URLs so a
     stored URL is never replaced by an empty one.
Nothing is retried automatically; staged files that failed stay staged for
the applicant's next attempt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.concurrency import run_in_threadpool

from models import DriverApplication
from schemas.application import (
    CHECKLIST_DOCUMENT_FIELDS,
    CREDENTIAL_FIELDS,
    DOCUMENT_FIELDS,
    ApplicationStatus,
)
from services.activity import ActivityActor, ActivityType, log_activity
from services.autosave import PartialSaveAgent
from services.change_feed import ChangeFeed
from services.chat import ChatNotifier, is_new_submission
from services.documents import DocumentStore, StagedFile, StagingArea, document_path
from services.errors import FieldError, ProviderError, SubmissionError, map_provider_error
from services.identity import Identity, IdentityProvider
from services.records import empty_checklist, fields_from_form, get_application, merge_application
from services.validation import field_label
from services.wizard import UNLICENSED_DASHBOARD_STEP, WizardController, WizardPath, WizardStep

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    identity: Identity
    application: DriverApplication
    redirect_after_seconds: int
    show_dashboard: bool = False


def _validation_failure(errors: dict[str, str]) -> SubmissionError:
    return SubmissionError([FieldError(field_id=k, field=field_label(k), message=v) for k, v in errors.items()])


class SubmissionAgent:
    def __init__(
        self,
        identity_provider: IdentityProvider,
        document_store: DocumentStore,
        staging: StagingArea,
        sessionmaker: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
        chat: Optional[ChatNotifier] = None,
        autosave: Optional[PartialSaveAgent] = None,
        redirect_after_seconds: int = 3,
    ):
        self.identity_provider = identity_provider
        self.document_store = document_store
        self.staging = staging
        self.sessionmaker = sessionmaker
        self.feed = feed
        self.chat = chat
        self.autosave = autosave
        self.redirect_after_seconds = redirect_after_seconds

    def _check(self, identity: Identity, controller: WizardController, steps: list[WizardStep]) -> None:
        errors: dict[str, str] = {}
        for step in steps:
            step_errors = controller.validate(step)
            if step is WizardStep.ACCOUNT and not identity.is_anonymous:
                # Credentials are already bound; nothing to re-enter
                step_errors = {k: v for k, v in step_errors.items() if k not in CREDENTIAL_FIELDS}
            errors.update(step_errors)
        if errors:
            raise _validation_failure(errors)

    async def _link(self, identity: Identity, email: str, password: str) -> Identity:
        if not identity.is_anonymous:
            return identity
        try:
            return await self.identity_provider.link_credentials(identity.uid, email, password)
        except ProviderError as e:
            logger.warning("Credential linking failed for %s: %s", identity.uid, e.code)
            raise SubmissionError([map_provider_error(e)]) from e

    async def upload_staged(self, uid: str, staged: dict[str, StagedFile]) -> tuple[dict[str, str], list[ProviderError]]:
        """Upload each staged file; returns URLs by record key and the per-field failures."""
        urls: dict[str, str] = {}
        failures: list[ProviderError] = []
        for field_id, staged_file in staged.items():
            url_key = DOCUMENT_FIELDS.get(field_id) or CHECKLIST_DOCUMENT_FIELDS.get(field_id)
            if url_key is None:
                logger.warning("Ignoring staged file for unknown field %s", field_id)
                continue
            try:
                url = await self.document_store.upload(
                    document_path(uid, field_id, staged_file.filename),
                    await run_in_threadpool(staged_file.read),
                    staged_file.content_type,
                )
            except ProviderError as e:
                e.field_id = e.field_id or field_id
                failures.append(e)
                logger.warning("Upload of %s failed for %s: %s", field_id, uid, e.code)
            except OSError as e:
                failures.append(ProviderError("storage/unknown", str(e), field_id=field_id))
                logger.warning("Upload of %s failed for %s: %s", field_id, uid, e)
            else:
                urls[url_key] = url
                await run_in_threadpool(self.staging.discard, uid, field_id)
        return urls, failures

    async def submit(self, identity: Identity, controller: WizardController) -> SubmissionResult:
        """Licensed path, from the review step."""
        if controller.path is not WizardPath.LICENSED:
            raise SubmissionError(
                [FieldError("general", "Application Submission", "Only licensed applications are submitted from review.")]
            )
        if controller.step is not WizardStep.REVIEW:
            raise SubmissionError(
                [FieldError("general", "Application Submission", "Please complete every step before submitting.")]
            )
        self._check(identity, controller, controller.visible_steps)
        form = controller.form
        if self.autosave is not None:
            self.autosave.discard(identity.uid)

        identity = await self._link(identity, form.email, form.password)
        uid = identity.uid

        urls, failures = await self.upload_staged(uid, await run_in_threadpool(self.staging.staged, uid))
        if failures:
            if urls:
                await self._keep_uploaded(uid, urls)
            raise SubmissionError([map_provider_error(f) for f in failures])

        try:
            async with self.sessionmaker() as session:
                existing = await get_application(session, uid)
                existed = existing is not None
                old_status = existing.status if existed else None
                old_partial = existing.is_partial if existed else None

                fields = fields_from_form(form)
                fields.update(
                    documents=urls,
                    unlicensed_progress=None,
                    status=ApplicationStatus.SUBMITTED,
                    is_partial=False,
                    current_step=int(WizardStep.REVIEW),
                    created_at=datetime.now(timezone.utc),
                )
                app = await merge_application(
                    session, uid, fields, feed=self.feed, replace_json=("licensed_details",)
                )
                await log_activity(
                    session,
                    app,
                    ActivityType.APPLICATION_SUBMITTED,
                    ActivityActor.APPLICANT,
                    "Submitted licensed driver application",
                    actor_id=uid,
                    actor_name=form.email,
                    metadata={"documents": sorted(k for k, v in (app.documents or {}).items() if v)},
                )
                await session.commit()
        except SubmissionError:
            raise
        except Exception as e:
            logger.exception("Application submission error for %s", uid)
            raise SubmissionError([map_provider_error(e)]) from e

        await run_in_threadpool(self.staging.clear, uid)
        logger.info("Application %s submitted", uid)
        if self.chat is not None and is_new_submission(old_status, old_partial, app.status, app.is_partial, existed):
            await self.chat.notify_submission(app)
        return SubmissionResult(identity=identity, application=app, redirect_after_seconds=self.redirect_after_seconds)

    async def finalize_unlicensed(self, identity: Identity, controller: WizardController) -> SubmissionResult:
        """Unlicensed path: create the account and the checklist record straight after step 1."""
        self._check(identity, controller, [WizardStep.ACCOUNT])
        form = controller.form
        if self.autosave is not None:
            self.autosave.discard(identity.uid)

        identity = await self._link(identity, form.email, form.password)
        uid = identity.uid
        try:
            async with self.sessionmaker() as session:
                existing = await get_application(session, uid)
                existed = existing is not None
                old_status = existing.status if existed else None
                old_partial = existing.is_partial if existed else None

                fields = fields_from_form(form.model_copy(update={"is_licensed_driver": False}))
                fields.update(
                    licensed_details=None,
                    has_own_vehicle=None,
                    unlicensed_progress=empty_checklist(),
                    status=ApplicationStatus.SUBMITTED,
                    is_partial=False,
                    current_step=UNLICENSED_DASHBOARD_STEP,
                    created_at=datetime.now(timezone.utc),
                )
                app = await merge_application(
                    session, uid, fields, feed=self.feed, replace_json=("unlicensed_progress",)
                )
                await log_activity(
                    session,
                    app,
                    ActivityType.APPLICATION_SUBMITTED,
                    ActivityActor.APPLICANT,
                    "Registered as unlicensed applicant",
                    actor_id=uid,
                    actor_name=form.email,
                )
                await session.commit()
        except Exception as e:
            logger.exception("Failed to create unlicensed application for %s", uid)
            raise SubmissionError([map_provider_error(e)]) from e

        logger.info("Unlicensed application %s created", uid)
        if self.chat is not None and is_new_submission(old_status, old_partial, app.status, app.is_partial, existed):
            await self.chat.notify_submission(app)
        return SubmissionResult(
            identity=identity,
            application=app,
            redirect_after_seconds=self.redirect_after_seconds,
            show_dashboard=True,
        )

    async def _keep_uploaded(self, uid: str, urls: dict[str, str]) -> None:
        """Persist the uploads that did succeed so a retry does not repeat them."""
        try:
            async with self.sessionmaker() as session:
                await merge_application(session, uid, {"documents": urls}, feed=self.feed)
                await session.commit()
        except Exception:
            logger.exception("Could not record completed uploads for %s", uid)
