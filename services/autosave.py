"""
Debounced autosave of in-progress wizard state.

Each schedule() call restarts a per-identity timer; when it fires the latest
form is merged into the partial record. Only anonymous sessions are saved,
only once a first name or email exists, and credentials are never written.
Failures are logged and dropped so the wizard is never blocked.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemas.application import ApplicationStatus, WizardForm
from services.change_feed import ChangeFeed
from services.identity import Identity
from services.records import fields_from_form, get_application, merge_application

logger = logging.getLogger(__name__)


def should_autosave(identity: Optional[Identity], form: WizardForm) -> bool:
    if identity is None or not identity.is_anonymous:
        return False
    return bool(form.first_name.strip() or form.email.strip())


def partial_fields(form: WizardForm, step: int) -> dict:
    fields = fields_from_form(form, include_vehicle=True)
    fields.update(
        status=ApplicationStatus.SUBMITTED,
        is_partial=True,
        current_step=int(step),
        created_at=datetime.now(timezone.utc),
    )
    return fields


class PartialSaveAgent:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        delay: float = 1.5,
        feed: Optional[ChangeFeed] = None,
    ):
        self.sessionmaker = sessionmaker
        self.delay = delay
        self.feed = feed
        self._timers: dict[str, asyncio.Task] = {}
        self._pending: dict[str, tuple[Identity, WizardForm, int]] = {}

    def schedule(self, identity: Optional[Identity], form: WizardForm, step: int) -> bool:
        """Queue a save for after the quiet period. Returns False if nothing will be saved."""
        if not should_autosave(identity, form):
            return False
        uid = identity.uid
        self._pending[uid] = (identity, form.without_credentials(), step)
        timer = self._timers.pop(uid, None)
        if timer is not None and not timer.done():
            timer.cancel()
        self._timers[uid] = asyncio.create_task(self._fire_later(uid))
        return True

    async def _fire_later(self, uid: str) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return
        # Past this point the save is no longer cancellable by schedule()
        if self._timers.get(uid) is asyncio.current_task():
            del self._timers[uid]
        await self._flush_one(uid)

    async def _flush_one(self, uid: str) -> bool:
        pending = self._pending.pop(uid, None)
        if pending is None:
            return False
        identity, form, step = pending
        return await self.save_now(identity, form, step)

    async def save_now(self, identity: Optional[Identity], form: WizardForm, step: int) -> bool:
        if not should_autosave(identity, form):
            return False
        try:
            async with self.sessionmaker() as session:
                existing = await get_application(session, identity.uid)
                if existing is not None and not existing.is_partial:
                    # Finalized while the timer was pending
                    return False
                await merge_application(session, identity.uid, partial_fields(form, step), feed=self.feed)
                await session.commit()
        except Exception:
            logger.exception("Failed to save partial application for %s", identity.uid)
            return False
        logger.debug("Saved partial application for %s at step %s", identity.uid, step)
        return True

    async def flush(self, uid: Optional[str] = None) -> None:
        """Write pending saves now instead of waiting for the timer."""
        uids = [uid] if uid is not None else list(self._pending)
        for key in uids:
            timer = self._timers.pop(key, None)
            if timer is not None and not timer.done():
                timer.cancel()
            await self._flush_one(key)

    def discard(self, uid: str) -> None:
        self._pending.pop(uid, None)
        timer = self._timers.pop(uid, None)
        if timer is not None and not timer.done():
            timer.cancel()

    async def aclose(self) -> None:
        timers = list(self._timers.values())
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()
        self._pending.clear()
