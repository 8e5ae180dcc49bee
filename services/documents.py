"""
Document storage.

DocumentStore is the blob-store surface (upload by path, durable URL back).
LocalDocumentStore writes below a root directory that main.py serves as static
files. StagingArea holds files an applicant picked in the wizard until the
submission agent uploads them.
"""
from __future__ import annotations

import json
import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool

from services.errors import ProviderError

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    cleaned = _SAFE_NAME_RE.sub("_", Path(name or "upload").name).strip("._")
    return cleaned or "upload"


def document_path(uid: str, field_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Storage path namespaced by identity and field: documents/{uid}/{field}/{ts}-{name}."""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"documents/{uid}/{field_id}/{ts}-{safe_filename(filename)}"


class DocumentStore:
    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        """Store content at path and return a retrievable URL."""
        raise NotImplementedError


class LocalDocumentStore(DocumentStore):
    def __init__(self, root: str | Path, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise ProviderError("storage/unauthorized", f"Path outside document root: {path}")
        return target

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        target = self._resolve(path)
        try:
            await run_in_threadpool(self._write, target, content)
        except PermissionError as e:
            raise ProviderError("storage/unauthorized", str(e)) from e
        logger.info("Stored document %s (%d bytes)", path, len(content))
        return f"{self.base_url}/{quote(path)}"


@dataclass
class StagedFile:
    field_id: str
    filename: str
    path: Path
    content_type: Optional[str] = None

    def read(self) -> bytes:
        return self.path.read_bytes()


class StagingArea:
    """
    Files picked in the wizard but not uploaded yet, one slot per field.

    Each slot holds exactly two files with fixed names: the content and its
    metadata. The applicant's filename only lives inside the metadata.
    Methods do blocking file I/O; async callers go through run_in_threadpool.
    """

    CONTENT_NAME = "content"
    META_NAME = "meta.json"

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _slot(self, uid: str, field_id: str) -> Path:
        return self.root / safe_filename(uid) / safe_filename(field_id)

    def stage(self, uid: str, field_id: str, filename: str, content: bytes, content_type: Optional[str] = None) -> StagedFile:
        slot = self._slot(uid, field_id)
        if slot.exists():
            shutil.rmtree(slot)
        slot.mkdir(parents=True)
        path = slot / self.CONTENT_NAME
        path.write_bytes(content)
        (slot / self.META_NAME).write_text(json.dumps({"filename": filename, "content_type": content_type}))
        return StagedFile(field_id=field_id, filename=filename, path=path, content_type=content_type)

    def staged(self, uid: str) -> dict[str, StagedFile]:
        user_dir = self.root / safe_filename(uid)
        if not user_dir.is_dir():
            return {}
        out: dict[str, StagedFile] = {}
        for slot in sorted(p for p in user_dir.iterdir() if p.is_dir()):
            meta_path = slot / self.META_NAME
            data_path = slot / self.CONTENT_NAME
            if not (meta_path.is_file() and data_path.is_file()):
                continue
            try:
                meta = json.loads(meta_path.read_text())
            except ValueError:
                logger.warning("Ignoring staged %s with unreadable metadata", slot)
                continue
            out[slot.name] = StagedFile(
                field_id=slot.name,
                filename=meta.get("filename") or slot.name,
                path=data_path,
                content_type=meta.get("content_type"),
            )
        return out

    def discard(self, uid: str, field_id: str) -> None:
        slot = self._slot(uid, field_id)
        if slot.exists():
            shutil.rmtree(slot)

    def clear(self, uid: str) -> None:
        user_dir = self.root / safe_filename(uid)
        if user_dir.exists():
            shutil.rmtree(user_dir)
