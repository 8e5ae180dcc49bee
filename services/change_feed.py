"""
In-process change notifications.

Writers publish on a topic ("applications", "applications/{id}",
"messages/{id}", "auth/{uid}"); listeners get a Subscription that must be
closed when they are done, typically with `async with`.

Database writers use publish_on_commit: the event is held on the session and
only delivered once that session commits. A rollback or a session closed
without committing drops it.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "change_feed.pending"


class Subscription:
    def __init__(self, feed: "ChangeFeed", topic: str, maxsize: int = 100):
        self.feed = feed
        self.topic = topic
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.feed._remove(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        while not self.closed:
            yield await self.queue.get()


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, topic: str) -> Subscription:
        sub = Subscription(self, topic)
        self._subscribers[topic].add(sub)
        return sub

    def publish(self, topic: str, event: dict[str, Any]) -> int:
        """Deliver to current subscribers; returns how many received it."""
        delivered = 0
        for sub in list(self._subscribers.get(topic, ())):
            try:
                sub.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping change event for slow subscriber on %s", topic)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.topic)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._subscribers[sub.topic]


def publish_on_commit(session: AsyncSession | Session, feed: ChangeFeed, topic: str, payload: dict[str, Any]) -> None:
    session.info.setdefault(PENDING_EVENTS_KEY, []).append((feed, topic, payload))


@event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    for feed, topic, payload in session.info.pop(PENDING_EVENTS_KEY, ()):
        feed.publish(topic, payload)


@event.listens_for(Session, "after_transaction_end")
def _drop_pending(session: Session, transaction: SessionTransaction) -> None:
    # after_commit has already drained the list when the outer transaction committed
    if transaction.parent is None:
        session.info.pop(PENDING_EVENTS_KEY, None)
