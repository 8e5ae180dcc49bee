"""
Record store merge semantics, staff queries and the tagged view.
Run from project root: python -m pytest tests/test_records.py -v
"""
from datetime import datetime, timedelta, timezone

from schemas.application import ApplicationStatus, LicensedApplication, UnlicensedApplication
from services.change_feed import ChangeFeed
from services.records import (
    APPLICATIONS_TOPIC,
    application_topic,
    empty_checklist,
    fields_from_form,
    get_application,
    list_applications,
    merge_application,
    set_checklist_step,
    set_document,
    status_counts,
    update_status,
)
from services.status_view import application_to_response, checklist_progress, to_view
from tests.support import DatabaseTestCase, licensed_form


class TestMergeWrites(DatabaseTestCase):
    async def test_creates_partial_record(self):
        async with self.sessionmaker() as session:
            app = await merge_application(session, "u1", {"first_name": "Sam"})
            await session.commit()
        self.assertTrue(app.is_partial)
        self.assertEqual(app.status, "Submitted")
        self.assertEqual(app.documents, {})
        self.assertIsNotNone(app.created_at)

    async def test_json_objects_merge_per_key(self):
        async with self.sessionmaker() as session:
            await merge_application(session, "u1", {"licensed_details": {"badge_number": "B1", "vehicle_make": "Kia"}})
            app = await merge_application(session, "u1", {"licensed_details": {"badge_number": "B2"}})
            self.assertEqual(app.licensed_details, {"badge_number": "B2", "vehicle_make": "Kia"})

    async def test_replace_json_drops_stale_keys(self):
        async with self.sessionmaker() as session:
            await merge_application(session, "u1", {"licensed_details": {"badge_number": "B1", "vehicle_make": "Kia"}})
            app = await merge_application(
                session, "u1", {"licensed_details": {"badge_number": "B1"}}, replace_json=("licensed_details",)
            )
            self.assertEqual(app.licensed_details, {"badge_number": "B1"})

    async def test_document_urls_never_regress_to_empty(self):
        async with self.sessionmaker() as session:
            await merge_application(session, "u1", {"documents": {"badge_document_url": "https://x/badge"}})
            app = await merge_application(
                session, "u1", {"documents": {"badge_document_url": "", "v5c_document_url": "https://x/v5c"}}
            )
            self.assertEqual(
                app.documents, {"badge_document_url": "https://x/badge", "v5c_document_url": "https://x/v5c"}
            )

    async def test_created_at_only_set_on_insert(self):
        first = datetime(2024, 1, 1, tzinfo=timezone.utc)
        async with self.sessionmaker() as session:
            await merge_application(session, "u1", {"created_at": first})
            app = await merge_application(session, "u1", {"created_at": first + timedelta(days=3)})
            self.assertEqual(app.created_at.replace(tzinfo=timezone.utc), first)

    async def test_publishes_change_events(self):
        feed = ChangeFeed()
        listing = feed.subscribe(APPLICATIONS_TOPIC)
        single = feed.subscribe(application_topic("u1"))
        async with self.sessionmaker() as session:
            await merge_application(session, "u1", {"first_name": "Sam"}, feed=feed)
            await merge_application(session, "u1", {"status": ApplicationStatus.APPROVED}, feed=feed)
            self.assertEqual(listing.queue.qsize(), 0)
            await session.commit()
        created, updated = listing.queue.get_nowait(), listing.queue.get_nowait()
        self.assertEqual(created["type"], "created")
        self.assertEqual(created["fields"], ["firstName"])
        self.assertEqual(updated["previousStatus"], "Submitted")
        self.assertEqual(updated["status"], "Approved")
        self.assertEqual(single.queue.qsize(), 2)
        listing.close()
        single.close()

    async def test_rolled_back_merge_publishes_nothing(self):
        feed = ChangeFeed()
        single = feed.subscribe(application_topic("u2"))
        async with self.sessionmaker() as session:
            await merge_application(session, "u2", {"first_name": "Sam"}, feed=feed)
            await session.rollback()
            await merge_application(session, "u3", {"first_name": "Alex"})
            await session.commit()
        self.assertEqual(single.queue.qsize(), 0)
        async with self.sessionmaker() as session:
            self.assertIsNone(await get_application(session, "u2"))
        single.close()

    async def test_uncommitted_session_publishes_nothing(self):
        feed = ChangeFeed()
        listing = feed.subscribe(APPLICATIONS_TOPIC)
        async with self.sessionmaker() as session:
            await merge_application(session, "u4", {"first_name": "Sam"}, feed=feed)
        self.assertEqual(listing.queue.qsize(), 0)
        listing.close()

    def test_form_fields_drop_vehicle_without_own_vehicle(self):
        fields = fields_from_form(licensed_form(vehicle_make="Kia"))
        self.assertNotIn("vehicle_make", fields["licensed_details"])
        self.assertNotIn("password", fields)
        fields = fields_from_form(licensed_form(vehicle_make="Kia"), include_vehicle=True)
        self.assertEqual(fields["licensed_details"]["vehicle_make"], "Kia")


class TestStaffQueries(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        base = datetime(2024, 5, 1, tzinfo=timezone.utc)
        async with self.sessionmaker() as session:
            await merge_application(
                session, "a1",
                {"first_name": "Alice", "email": "alice@example.com", "is_partial": False, "created_at": base},
            )
            await merge_application(
                session, "a2",
                {"first_name": "Bob", "area": "Bradford", "is_partial": False, "created_at": base + timedelta(days=1),
                 "status": ApplicationStatus.APPROVED},
            )
            await merge_application(session, "a3", {"first_name": "Partial Pete", "created_at": base})
            await session.commit()

    async def test_listing_excludes_partial_newest_first(self):
        async with self.sessionmaker() as session:
            apps = await list_applications(session)
        self.assertEqual([a.id for a in apps], ["a2", "a1"])

    async def test_listing_can_include_partial(self):
        async with self.sessionmaker() as session:
            apps = await list_applications(session, include_partial=True)
        self.assertEqual(len(apps), 3)

    async def test_filter_and_search(self):
        async with self.sessionmaker() as session:
            approved = await list_applications(session, status=ApplicationStatus.APPROVED)
            found = await list_applications(session, search="ALICE@")
            by_area = await list_applications(session, search="bradford")
        self.assertEqual([a.id for a in approved], ["a2"])
        self.assertEqual([a.id for a in found], ["a1"])
        self.assertEqual([a.id for a in by_area], ["a2"])

    async def test_status_counts_ignore_partial(self):
        async with self.sessionmaker() as session:
            counts = await status_counts(session)
        self.assertEqual(counts["Submitted"], 1)
        self.assertEqual(counts["Approved"], 1)
        self.assertEqual(counts["Rejected"], 0)

    async def test_status_any_order(self):
        async with self.sessionmaker() as session:
            app, previous = await update_status(session, "a2", ApplicationStatus.SUBMITTED)
            self.assertEqual(previous, "Approved")
            self.assertEqual(app.status, "Submitted")
            with self.assertRaises(LookupError):
                await update_status(session, "missing", ApplicationStatus.REJECTED)

    async def test_set_document(self):
        async with self.sessionmaker() as session:
            app = await set_document(session, "a1", "v5c_document_url", "https://x/v5c")
            self.assertEqual(app.documents["v5c_document_url"], "https://x/v5c")


class TestChecklist(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        async with self.sessionmaker() as session:
            await merge_application(
                session, "u1",
                {"is_licensed_driver": False, "unlicensed_progress": empty_checklist(), "is_partial": False},
            )
            await merge_application(session, "lic", {"is_licensed_driver": True, "is_partial": False})
            await session.commit()

    async def test_toggle_step_accepts_camel_case(self):
        async with self.sessionmaker() as session:
            app = await set_checklist_step(session, "u1", "dbsApplied", True)
        self.assertTrue(app.unlicensed_progress["dbs_applied"])
        self.assertEqual(checklist_progress(app.unlicensed_progress), 0.2)

    async def test_badge_received_does_not_count(self):
        async with self.sessionmaker() as session:
            app = await set_checklist_step(session, "u1", "badge_received", True)
        self.assertEqual(checklist_progress(app.unlicensed_progress), 0.0)

    async def test_rejects_unknown_step_and_licensed_records(self):
        async with self.sessionmaker() as session:
            with self.assertRaises(ValueError):
                await set_checklist_step(session, "u1", "bribe_council", True)
            with self.assertRaises(ValueError):
                await set_checklist_step(session, "lic", "dbs_applied", True)
            with self.assertRaises(LookupError):
                await set_checklist_step(session, "missing", "dbs_applied", True)


class TestTaggedView(DatabaseTestCase):
    async def test_unlicensed_view(self):
        async with self.sessionmaker() as session:
            app = await merge_application(
                session, "u1", {"is_licensed_driver": False, "unlicensed_progress": {**empty_checklist(), "eligibility_checked": True}}
            )
        view = to_view(app)
        self.assertIsInstance(view, UnlicensedApplication)
        self.assertEqual(view.checklist_progress, 0.2)
        body = application_to_response(app)
        self.assertEqual(body["path"], "unlicensed")
        self.assertNotIn("details", body)
        self.assertTrue(body["unlicensedProgress"]["eligibilityChecked"])

    async def test_licensed_view_hides_vehicle_without_own_vehicle(self):
        async with self.sessionmaker() as session:
            app = await merge_application(
                session, "u1",
                {"is_licensed_driver": True, "has_own_vehicle": False,
                 "licensed_details": {"badge_number": "B1", "vehicle_make": "Kia"}},
            )
            stored = await get_application(session, "u1")
        view = to_view(stored)
        self.assertIsInstance(view, LicensedApplication)
        self.assertIsNone(view.vehicle)
        body = application_to_response(app)
        self.assertEqual(body["details"]["badgeNumber"], "B1")
        self.assertNotIn("unlicensedProgress", body)
