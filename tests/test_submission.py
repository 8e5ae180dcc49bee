"""
Submission: credential linking, independent uploads and the final write.
Run from project root: python -m pytest tests/test_submission.py -v
"""
import shutil
import tempfile
from unittest.mock import AsyncMock, patch

from services.activity import list_activity
from services.documents import StagingArea
from services.errors import SubmissionError
from services.identity import Identity, IdentityProvider, SqlIdentityProvider
from services.records import get_application, merge_application
from services.submission import SubmissionAgent
from services.wizard import WizardController, WizardStep
from tests.support import (
    STRONG_PASSWORD,
    DatabaseTestCase,
    MemoryDocumentStore,
    RecordingChat,
    account_form,
    licensed_form,
)


class SubmissionTestCase(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        patcher = patch("services.identity.BCRYPT_ROUNDS", 4)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.staging_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.staging_dir, True)
        self.staging = StagingArea(self.staging_dir)
        self.identity_provider = SqlIdentityProvider(self.sessionmaker)
        self.store = MemoryDocumentStore()
        self.chat = RecordingChat()
        self.agent = self._agent()
        self.anon, _ = await self.identity_provider.create_anonymous()

    def _agent(self, **overrides):
        kwargs = dict(
            identity_provider=self.identity_provider,
            document_store=self.store,
            staging=self.staging,
            sessionmaker=self.sessionmaker,
            chat=self.chat,
            redirect_after_seconds=3,
        )
        kwargs.update(overrides)
        return SubmissionAgent(**kwargs)

    def _stage_required(self, uid):
        self.staging.stage(uid, "badge_document", "badge.pdf", b"%PDF badge", "application/pdf")
        self.staging.stage(uid, "driving_license_document", "licence.jpg", b"jpeg", "image/jpeg")

    async def _review(self, uid, form):
        stored = await self._stored(uid)
        return WizardController(
            form=form,
            step=WizardStep.REVIEW,
            staged_documents=self.staging.staged(uid),
            existing_documents=(stored.documents or {}) if stored is not None else {},
        )

    async def _stored(self, uid):
        async with self.sessionmaker() as session:
            return await get_application(session, uid)


class TestLicensedSubmission(SubmissionTestCase):
    async def test_successful_submission(self):
        self._stage_required(self.anon.uid)
        result = await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))

        self.assertFalse(result.identity.is_anonymous)
        self.assertEqual(result.redirect_after_seconds, 3)
        stored = await self._stored(self.anon.uid)
        self.assertFalse(stored.is_partial)
        self.assertEqual(stored.status, "Submitted")
        self.assertTrue(stored.is_licensed_driver)
        self.assertTrue(stored.documents["badge_document_url"].startswith("https://files.example.com/documents/"))
        self.assertIn(f"documents/{self.anon.uid}/driving_license_document/", stored.documents["driving_license_document_url"])
        self.assertEqual(self.staging.staged(self.anon.uid), {})
        self.assertEqual(len(self.chat.payloads), 1)
        async with self.sessionmaker() as session:
            activity = await list_activity(session, application_id=self.anon.uid)
        self.assertEqual([a.activity_type for a in activity], ["application_submitted"])

    async def test_no_own_vehicle_clears_vehicle_fields(self):
        async with self.sessionmaker() as session:
            await merge_application(
                session, self.anon.uid,
                {"is_licensed_driver": True, "licensed_details": {"vehicle_make": "Kia", "vehicle_reg": "AB12 CDE"}},
            )
            await session.commit()
        self._stage_required(self.anon.uid)
        await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form(vehicle_make="Kia")))
        stored = await self._stored(self.anon.uid)
        self.assertNotIn("vehicle_make", stored.licensed_details)
        self.assertNotIn("vehicle_reg", stored.licensed_details)
        self.assertEqual(stored.licensed_details["badge_number"], "PHD-1234")

    async def test_partial_upload_failure_keeps_existing_urls(self):
        async with self.sessionmaker() as session:
            await merge_application(
                session, self.anon.uid,
                {"is_licensed_driver": True, "documents": {"badge_document_url": "https://files.example.com/old-badge"}},
            )
            await session.commit()
        self.store.fail = {"badge_document": "storage/unauthorized"}
        self._stage_required(self.anon.uid)

        with self.assertRaises(SubmissionError) as ctx:
            await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))

        self.assertEqual([e.field_id for e in ctx.exception.errors], ["badge_document"])
        self.assertEqual(ctx.exception.errors[0].field, "File Upload (Badge Document)")
        stored = await self._stored(self.anon.uid)
        self.assertEqual(stored.documents["badge_document_url"], "https://files.example.com/old-badge")
        self.assertIn("driving_license_document_url", stored.documents)
        self.assertTrue(stored.is_partial)
        # The failed file stays staged for the retry, the uploaded one does not
        self.assertEqual(list(self.staging.staged(self.anon.uid)), ["badge_document"])
        self.assertEqual(self.chat.payloads, [])

    async def test_retry_after_failure_succeeds(self):
        self.store.fail = {"badge_document": "storage/canceled"}
        self._stage_required(self.anon.uid)
        with self.assertRaises(SubmissionError):
            await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))

        # Credentials were linked on the first attempt
        linked, _ = await self.identity_provider.sign_in("sam@example.com", STRONG_PASSWORD)
        self.assertEqual(linked.uid, self.anon.uid)
        self.store.fail = {}
        identity = Identity(uid=self.anon.uid, is_anonymous=False, email="sam@example.com")
        form = licensed_form(password="", confirm_password="")
        result = await self.agent.submit(identity, await self._review(self.anon.uid, form))
        self.assertFalse(result.application.is_partial)
        self.assertIn("badge_document_url", result.application.documents)

    async def test_email_collision_reported_on_email(self):
        other, _ = await self.identity_provider.create_anonymous()
        await self.identity_provider.link_credentials(other.uid, "sam@example.com", STRONG_PASSWORD)
        self._stage_required(self.anon.uid)
        with self.assertRaises(SubmissionError) as ctx:
            await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))
        self.assertEqual(ctx.exception.field_errors.keys(), {"email"})
        self.assertIsNone(await self._stored(self.anon.uid))
        # Nothing was uploaded
        self.assertEqual(self.store.files, {})

    async def test_missing_documents_block_submission(self):
        with self.assertRaises(SubmissionError) as ctx:
            await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))
        self.assertEqual(set(ctx.exception.field_errors), {"badge_document", "driving_license_document"})

    async def test_only_from_review_step(self):
        self._stage_required(self.anon.uid)
        controller = WizardController(form=licensed_form(), step=WizardStep.VEHICLE_OWNERSHIP)
        with self.assertRaises(SubmissionError):
            await self.agent.submit(self.anon, controller)

    async def test_unexpected_write_failure_is_general(self):
        self._stage_required(self.anon.uid)
        with patch("services.submission.merge_application", AsyncMock(side_effect=RuntimeError("disk full"))):
            with self.assertRaises(SubmissionError) as ctx:
                await self.agent.submit(self.anon, await self._review(self.anon.uid, licensed_form()))
        self.assertEqual(ctx.exception.errors[0].field_id, "general")


class TestUnlicensedFinalization(SubmissionTestCase):
    async def test_creates_checklist_record(self):
        controller = WizardController(form=account_form(is_licensed_driver=False))
        result = await self.agent.finalize_unlicensed(self.anon, controller)

        self.assertTrue(result.show_dashboard)
        stored = await self._stored(self.anon.uid)
        self.assertFalse(stored.is_licensed_driver)
        self.assertFalse(stored.is_partial)
        self.assertEqual(stored.current_step, 2)
        self.assertEqual(stored.documents, {})
        self.assertIsNone(stored.licensed_details)
        for step in (
            "eligibility_checked",
            "dbs_applied",
            "medical_booked",
            "knowledge_test_passed",
            "council_application_submitted",
            "badge_received",
        ):
            self.assertIs(stored.unlicensed_progress[step], False)
        self.assertEqual(len(self.chat.payloads), 1)

    async def test_confirmation_mismatch_never_reaches_provider(self):
        provider = AsyncMock(spec=IdentityProvider)
        agent = self._agent(identity_provider=provider)
        controller = WizardController(form=account_form(is_licensed_driver=False, confirm_password="Other!Pass1"))
        with self.assertRaises(SubmissionError) as ctx:
            await agent.finalize_unlicensed(self.anon, controller)
        self.assertIn("confirm_password", ctx.exception.field_errors)
        provider.link_credentials.assert_not_called()
        self.assertIsNone(await self._stored(self.anon.uid))
