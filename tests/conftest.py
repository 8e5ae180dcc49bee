"""
Test settings. Environment is set before any project module reads config.
Run from the project root: python -m pytest tests -v
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="driver-recruitment-tests-")

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
# Long enough that API tests never race a pending autosave
os.environ["AUTOSAVE_DELAY_SECONDS"] = "30"
os.environ["DOCUMENT_ROOT"] = os.path.join(_TMP, "documents")
os.environ["DOCUMENT_BASE_URL"] = "http://testserver/files"
os.environ["STAGING_ROOT"] = os.path.join(_TMP, "staging")
os.environ["CHAT_WEBHOOK_URL"] = ""
os.environ["PUSH_GATEWAY_URL"] = ""
os.environ["STAFF_EMAILS"] = "staff@example.com"
