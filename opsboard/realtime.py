"""
Realtime change feed.

Publishes one ChangeEvent per inserted, updated or deleted row of a
watched table, regardless of which client caused the write. Events are
collected when the ORM flushes and only published once the transaction
commits, so subscribers never hear about rolled-back writes.

Events carry the table, the change type and the row identifier, not
the new row contents: subscribers are expected to reload.

Remote dashboard clients consume the feed as a Server-Sent Events
stream (see stream_events); in-process code can subscribe directly.
"""

import json
import logging
import queue
import threading
from dataclasses import dataclass, asdict, field
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from opsboard.models import TABLES
from opsboard.models.base import utcnow

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'

# Seconds between SSE keepalive comments
KEEPALIVE_SECONDS = 15.0


@dataclass
class ChangeEvent:
    """A single row change on a watched table."""
    table: str
    type: str
    record_id: Optional[str]
    commit_timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'ChangeEvent':
        return cls(
            table=data['table'],
            type=data['type'],
            record_id=data.get('record_id'),
            commit_timestamp=data.get('commit_timestamp') or utcnow().isoformat(),
        )


ChangeCallback = Callable[[ChangeEvent], None]


class ChangeFeed:
    """
    Thread-safe publish/subscribe hub keyed by table name.

    Callbacks run on the publishing thread; a failing callback is logged
    and never prevents delivery to the others.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._lock = threading.RLock()
        self._published = 0

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register callback for changes on table.

        Returns an unsubscribe handle.
        """
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)
        logger.debug(f'Subscribed to {table} changes')

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)
            logger.debug(f'Unsubscribed from {table} changes')

        return unsubscribe

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.table, []))
            self._published += 1

        for callback in callbacks:
            try:
                callback(change)
            except Exception as e:
                logger.error(f'Change callback error on {change.table}: {e}')

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'published': self._published,
                'subscribers': {t: len(c) for t, c in self._subscribers.items() if c},
            }


# Singleton instance
change_feed = ChangeFeed()


# -----------------------------------------------------------------------------
# ORM integration
# -----------------------------------------------------------------------------

_WATCHED = {model: name for name, model in TABLES.items()}
_PENDING_KEY = 'opsboard_pending_changes'


def _collect(session: Session, flush_context) -> None:
    # new/dirty/deleted still hold pre-flush state and ids are assigned
    pending = session.info.setdefault(_PENDING_KEY, [])
    for kind, instances in ((INSERT, session.new), (UPDATE, session.dirty), (DELETE, session.deleted)):
        for instance in instances:
            table = _WATCHED.get(type(instance))
            if table is None:
                continue
            if kind == UPDATE and not session.is_modified(instance):
                continue
            pending.append(ChangeEvent(table=table, type=kind, record_id=getattr(instance, 'id', None)))


def _publish_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for change in pending:
        change_feed.publish(change)
    if pending:
        logger.debug(f'Published {len(pending)} change events')


def _discard_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install(session_factory) -> None:
    """Attach change collection to every session made by session_factory."""
    if event.contains(session_factory, 'after_commit', _publish_pending):
        return
    event.listen(session_factory, 'after_flush', _collect)
    event.listen(session_factory, 'after_commit', _publish_pending)
    event.listen(session_factory, 'after_soft_rollback', _discard_on_rollback)


def _discard_on_rollback(session: Session, previous_transaction) -> None:
    _discard_pending(session)


# -----------------------------------------------------------------------------
# Server-Sent Events
# -----------------------------------------------------------------------------

def format_sse(change: ChangeEvent) -> str:
    return f'event: change\ndata: {json.dumps(change.to_dict())}\n\n'


def stream_events(
    table: str,
    feed: Optional[ChangeFeed] = None,
    keepalive: float = KEEPALIVE_SECONDS,
) -> Iterator[str]:
    """
    Yield SSE frames for every change on table until the client disconnects.

    The first frame is a comment so the client knows the subscription is
    live before any change happens.
    """
    feed = feed or change_feed
    events: 'queue.Queue[ChangeEvent]' = queue.Queue()
    unsubscribe = feed.subscribe(table, events.put)

    try:
        yield ': connected\n\n'
        while True:
            try:
                change = events.get(timeout=keepalive)
            except queue.Empty:
                yield ': keepalive\n\n'
                continue
            yield format_sse(change)
    finally:
        unsubscribe()
