"""Shared fixtures for the database-backed tests."""
import unittest
from typing import Any, Optional

from database import init_db, make_engine, make_sessionmaker
from schemas.application import WizardForm
from services.chat import ChatNotifier
from services.documents import DocumentStore
from services.errors import ProviderError

STRONG_PASSWORD = "Str0ng!Pass"


def account_form(**overrides: Any) -> WizardForm:
    values: dict[str, Any] = {
        "first_name": "Sam",
        "last_name": "Driver",
        "email": "sam@example.com",
        "phone": "07911 123456",
        "area": "Leeds",
        "password": STRONG_PASSWORD,
        "confirm_password": STRONG_PASSWORD,
    }
    values.update(overrides)
    return WizardForm(**values)


def licensed_form(**overrides: Any) -> WizardForm:
    values: dict[str, Any] = {
        "is_licensed_driver": True,
        "has_own_vehicle": False,
        "badge_number": "PHD-1234",
        "badge_expiry": "2027-01-31",
        "issuing_council": "Leeds City Council",
        "driving_license_number": "DRIVE801234SD9AB",
        "license_expiry": "2030-06-30",
        "confirmed": True,
    }
    values.update(overrides)
    return account_form(**values)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Each test gets its own in-memory database."""

    async def asyncSetUp(self):
        self.engine = make_engine("sqlite+aiosqlite://")
        await init_db(self.engine)
        self.sessionmaker = make_sessionmaker(self.engine)

    async def asyncTearDown(self):
        await self.engine.dispose()


class MemoryDocumentStore(DocumentStore):
    """Keeps uploads in a dict; fields listed in `fail` raise the given code."""

    def __init__(self, fail: Optional[dict[str, str]] = None):
        self.files: dict[str, bytes] = {}
        self.fail = fail or {}

    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        field_id = path.split("/")[2]
        if field_id in self.fail:
            raise ProviderError(self.fail[field_id], "upload refused")
        self.files[path] = content
        return f"https://files.example.com/{path}"


class RecordingChat(ChatNotifier):
    def __init__(self):
        super().__init__(webhook_url="https://chat.example.com/hook")
        self.payloads: list[dict] = []

    async def send(self, payload: dict) -> bool:
        self.payloads.append(payload)
        return True
