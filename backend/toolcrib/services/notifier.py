# Overview: In-process publish/subscribe fan-out of "something changed" topics.

"""
Change Notifier

Observers (browser tabs on the events stream) hold one Subscription each.
Every committed ledger mutation announces which collections changed; the
observer re-fetches them through the read endpoints. No payload, no replay,
no acknowledgement.

Announcements are never sent directly by the services. They are queued on the
SQLAlchemy session with announce_after_commit() and only delivered from the
session's after_commit event, so a rolled-back unit of work announces nothing.
"""

from __future__ import annotations

import logging
import queue
import threading

from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db

logger = logging.getLogger(__name__)

TOPIC_INVENTORY = "inventory-changed"
TOPIC_LOANS = "loans-changed"
TOPIC_HISTORY = "history-changed"

TOPICS = (TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY)

EXTENSION_KEY = "toolcrib.notifier"
_PENDING_KEY = "toolcrib.pending_announcements"


class Subscription:
    """One observer's mailbox. Use as a context manager to unsubscribe on exit."""

    def __init__(self, notifier: "ChangeNotifier", maxsize: int):
        self._notifier = notifier
        self._queue: queue.Queue[str] = queue.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, topic: str) -> bool:
        try:
            self._queue.put_nowait(topic)
        except queue.Full:
            return False
        return True

    def get(self, timeout: float | None = None) -> str | None:
        """Next topic, or None when nothing arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[str]:
        topics = []
        while True:
            try:
                topics.append(self._queue.get_nowait())
            except queue.Empty:
                return topics

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._notifier.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChangeNotifier:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: set[Subscription] = set()
        # Guards the subscriber set only; ledger writes never take this lock
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.queue_size)
        with self._lock:
            self._subscribers.add(sub)
        logger.debug("observer subscribed (total=%d)", self.subscriber_count)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)
        logger.debug("observer unsubscribed (total=%d)", self.subscriber_count)

    def announce(self, topic: str) -> int:
        """
        Fan topic out to every current subscriber. Fire-and-forget: a
        subscriber whose mailbox is full misses this one and is expected to
        catch up on the next announcement. Returns the number delivered.
        """
        if topic not in TOPICS:
            raise ValueError(f"unknown topic: {topic}")

        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for sub in targets:
            if sub.deliver(topic):
                delivered += 1
            else:
                logger.warning("dropped %s for a slow observer", topic)
        return delivered


def get_notifier() -> ChangeNotifier:
    return current_app.extensions[EXTENSION_KEY]


def init_notifier(app) -> ChangeNotifier:
    notifier = ChangeNotifier(queue_size=app.config.get("EVENT_SUBSCRIBER_QUEUE_SIZE", 100))
    app.extensions[EXTENSION_KEY] = notifier
    install_commit_hooks()
    return notifier


def announce_after_commit(*topics: str, notifier: ChangeNotifier | None = None) -> None:
    """
    Queue topics on the current session; they are announced once, in order,
    after the session commits, and discarded if it rolls back.
    """
    notifier = notifier or get_notifier()
    session = db.session()
    # Pin the topics to a transaction so a rollback is guaranteed to see them
    if not session.in_transaction():
        session.begin()
    pending = session.info.setdefault(_PENDING_KEY, [])
    for topic in topics:
        if topic not in TOPICS:
            raise ValueError(f"unknown topic: {topic}")
        if (notifier, topic) not in pending:
            pending.append((notifier, topic))


def _announce_pending(session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for notifier, topic in pending:
        notifier.announce(topic)


def _discard_pending(session, previous_transaction=None) -> None:
    dropped = session.info.pop(_PENDING_KEY, None)
    if dropped:
        logger.debug("discarded %d announcements on rollback", len(dropped))


def install_commit_hooks() -> None:
    """Idempotent: listeners are registered once per process on the Session class."""
    if not event.contains(Session, "after_commit", _announce_pending):
        event.listen(Session, "after_commit", _announce_pending)
    if not event.contains(Session, "after_soft_rollback", _discard_pending):
        event.listen(Session, "after_soft_rollback", _discard_pending)
