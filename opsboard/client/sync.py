"""
List synchronization for dashboard panels.

A ListSynchronizer owns an ordered in-memory list mirroring one remote
table and keeps it consistent with the backend while other clients
write to the same table:

1. load: full fetch, replaces the whole local list (last response wins)
2. create / update / delete: validate locally, call the remote, merge
   the confirmed result into the local list
3. on_remote_change: any push event for the watched table triggers
   exactly one full load; deltas are never applied

Push events are the only sync path. A bounded-interval liveness check
runs alongside and only acts when the subscription itself has died, by
resubscribing and reloading once.

Error policy: every failure is caught at the failing call, logged,
surfaced through the Notifier as one line, and recorded in last_error.
Local state is left unchanged and nothing propagates to the caller.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from opsboard.config import config
from opsboard.errors import (
    OpsBoardError,
    SelfDeletionError,
    SelfDemotionError,
    ValidationError,
)
from opsboard.models.base import utcnow
from opsboard.models.user import AppRole
from opsboard.realtime import ChangeEvent
from opsboard.client.auth import AdminClient, AuthClient
from opsboard.client.notify import Notifier
from opsboard.client.remote import Filter, RemoteTable, Subscription
from opsboard.client.session import SessionContext, parse_roles
from opsboard.validation import (
    parse_timestamp,
    validate_announcement,
    validate_flight,
    validate_new_user,
    validate_password,
)

logger = logging.getLogger(__name__)


def _timestamp_key(value: Any) -> datetime:
    if not value:
        return datetime.min
    try:
        return parse_timestamp(value)
    except ValidationError:
        return datetime.min


class ListSynchronizer:
    """
    Ordered local mirror of one remote table.

    Subclasses set the ordering (order_by / descending), the select
    filters, and the validation applied before inserts.
    """

    label = 'items'
    order_by = 'created_at'
    descending = True
    timestamp_columns = ('created_at',)

    def __init__(
        self,
        table: RemoteTable,
        session: SessionContext,
        notifier: Optional[Notifier] = None,
        liveness_seconds: Optional[float] = None,
    ):
        self.table = table
        self.session = session
        self.notifier = notifier or Notifier()
        self.liveness_seconds = liveness_seconds or config.sync.liveness_seconds

        self._items: List[dict] = []
        self._lock = threading.RLock()

        self.last_error: Optional[OpsBoardError] = None
        # Form fields of the last create; kept on failure so the user can retry
        self.draft: Optional[dict] = None
        self.loading = False

        self._subscriptions: List[Subscription] = []
        # Guards _subscriptions against a liveness recovery racing stop()
        self._feed_lock = threading.Lock()
        # Set while not started; liveness recovery never runs when set
        self._stop = threading.Event()
        self._stop.set()
        self._liveness_thread: Optional[threading.Thread] = None

        # Statistics
        self._load_count = 0
        self._change_count = 0
        self._resubscribe_count = 0

    # -------------------------------------------------------------------------
    # Local state
    # -------------------------------------------------------------------------

    @property
    def items(self) -> List[dict]:
        with self._lock:
            return list(self._items)

    def get(self, record_id: str) -> Optional[dict]:
        with self._lock:
            for row in self._items:
                if row.get('id') == record_id:
                    return dict(row)
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def sort_key(self, row: dict) -> Any:
        value = row.get(self.order_by)
        if self.order_by in self.timestamp_columns:
            return _timestamp_key(value)
        return value if value is not None else ''

    def arrange(self, rows: List[dict]) -> List[dict]:
        """
        Sort rows into display order.

        The sort is stable, so rows with equal keys keep the order the
        remote returned them in.
        """
        return sorted(rows, key=self.sort_key, reverse=self.descending)

    def accepts(self, row: dict) -> bool:
        """Whether a confirmed row belongs in this list's filtered view."""
        return True

    @property
    def limit(self) -> Optional[int]:
        return None

    def select_filters(self) -> Optional[List[Filter]]:
        return None

    def _replace(self, rows: List[dict]) -> None:
        rows = self.arrange(rows)
        if self.limit is not None:
            rows = rows[:self.limit]
        with self._lock:
            self._items = rows

    def _merge(self, row: dict) -> None:
        with self._lock:
            others = [r for r in self._items if r.get('id') != row.get('id')]
            if self.accepts(row):
                others.append(row)
            self._replace(others)

    def _remove(self, record_id: str) -> None:
        with self._lock:
            self._items = [r for r in self._items if r.get('id') != record_id]

    # -------------------------------------------------------------------------
    # Error surfacing
    # -------------------------------------------------------------------------

    def _fail(self, message: str, error: OpsBoardError) -> None:
        self.last_error = error
        logger.error(f'{message}: {error}')
        self.notifier.error(f'{message}: {error.message}' if error.message else message)

    def _succeed(self, message: Optional[str] = None) -> None:
        self.last_error = None
        if message:
            self.notifier.success(message)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Fetch the full (filtered) table and replace the local list.

        Concurrent loads are not coalesced; whichever response arrives
        last is what the list shows. Returns False on failure, leaving
        the list as it was.
        """
        self.loading = True
        try:
            rows = self.table.select(
                filters=self.select_filters(),
                order=self.order_by,
                descending=self.descending,
                limit=self.limit,
            )
        except OpsBoardError as e:
            self._fail(f'Failed to load {self.label}', e)
            return False
        finally:
            self.loading = False

        self._replace(rows)
        self._load_count += 1
        self.last_error = None
        logger.debug(f'Loaded {len(rows)} {self.label} from {self.table.name}')
        return True

    def validate(self, fields: Dict[str, Any]) -> dict:
        """Validate and normalize create fields. Raises ValidationError."""
        return dict(fields)

    def create(self, fields: Dict[str, Any]) -> Optional[dict]:
        """
        Validate, insert, and merge the inserted row.

        Returns the confirmed row, or None on failure. A validation
        failure makes no remote call; any failure keeps the draft.
        """
        self.draft = dict(fields)
        try:
            row = self.validate(fields)
        except ValidationError as e:
            self._fail(f'Invalid {e.field.replace("_", " ")}', e)
            return None

        try:
            created = self._insert(row)
        except OpsBoardError as e:
            self._fail(f'Failed to create {self.singular}', e)
            return None

        self._merge(created)
        self.draft = None
        self._succeed(f'{self.singular.capitalize()} created')
        return created

    def _insert(self, row: dict) -> dict:
        return self.table.insert(row)

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        """Send only the given fields; merge the confirmed row."""
        try:
            updated = self.table.update(record_id, fields)
        except OpsBoardError as e:
            self._fail(f'Failed to update {self.singular}', e)
            return None

        self._merge(updated)
        self._succeed()
        return updated

    def delete(self, record_id: str) -> bool:
        """Delete by identifier; the local row goes only once the remote confirms."""
        try:
            self.check_delete(record_id)
            self._delete_remote(record_id)
        except OpsBoardError as e:
            self._fail(f'Failed to delete {self.singular}', e)
            return False

        self._remove(record_id)
        self._succeed(f'{self.singular.capitalize()} deleted')
        return True

    def check_delete(self, record_id: str) -> None:
        """Local policy run before any remote delete. Raises to refuse."""

    def _delete_remote(self, record_id: str) -> None:
        self.table.delete(record_id)

    @property
    def singular(self) -> str:
        return self.label[:-1] if self.label.endswith('s') else self.label

    # -------------------------------------------------------------------------
    # Push notifications
    # -------------------------------------------------------------------------

    def on_remote_change(self, change: ChangeEvent) -> None:
        """Any insert/update/delete on a watched table triggers one full load."""
        self._change_count += 1
        logger.debug(f'{change.type} on {change.table} ({change.record_id}), reloading {self.label}')
        self.load()

    def change_sources(self) -> List[RemoteTable]:
        """Tables whose change feeds invalidate this list."""
        return [self.table]

    def _subscribe(self) -> None:
        self._subscriptions = [t.subscribe(self.on_remote_change) for t in self.change_sources()]

    def _unsubscribe(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    @property
    def subscribed(self) -> bool:
        return bool(self._subscriptions) and all(s.alive for s in self._subscriptions)

    def check_liveness(self) -> bool:
        """
        Resubscribe and reload once if any subscription has died.

        Returns True when a recovery was needed. Does nothing once stopped.
        """
        with self._feed_lock:
            if self._stop.is_set() or self.subscribed:
                return False

            logger.warning(f'Change feed for {self.label} is down, resubscribing')
            self._unsubscribe()
            self._subscribe()
            self._resubscribe_count += 1

        self.load()
        return True

    def start(self, liveness: bool = True) -> None:
        """Subscribe to the change feed, load once, and start the liveness check."""
        with self._feed_lock:
            self._stop.clear()
            self._subscribe()
        self.load()

        if liveness and self.liveness_seconds > 0:
            self._liveness_thread = threading.Thread(
                target=self._run_liveness,
                name=f'liveness-{self.table.name}',
                daemon=True,
            )
            self._liveness_thread.start()

        logger.info(f'{self.label.capitalize()} sync started on {self.table.name}')

    def _run_liveness(self) -> None:
        while not self._stop.wait(self.liveness_seconds):
            self.check_liveness()

    def stop(self) -> None:
        with self._feed_lock:
            self._stop.set()
            self._unsubscribe()
        if self._liveness_thread:
            self._liveness_thread.join(timeout=5)
            self._liveness_thread = None
        logger.info(f'{self.label.capitalize()} sync stopped')

    @property
    def stats(self) -> dict:
        return {
            'items': len(self),
            'loads': self._load_count,
            'changes': self._change_count,
            'resubscribes': self._resubscribe_count,
            'subscribed': self.subscribed,
        }


class AnnouncementList(ListSynchronizer):
    """Announcements, newest first."""

    label = 'announcements'

    def validate(self, fields: Dict[str, Any]) -> dict:
        return validate_announcement(fields)

    def mark_as_read(self, record_id: str) -> bool:
        """Flag an announcement as seen. No remote call if it already is."""
        row = self.get(record_id)
        if row is not None and row.get('read'):
            return True
        return self.update(record_id, {'read': True}) is not None


class FlightList(ListSynchronizer):
    """Upcoming flights, soonest departure first."""

    label = 'flights'
    order_by = 'departure_time'
    descending = False
    timestamp_columns = ('created_at', 'departure_time', 'arrival_time')

    def __init__(self, *args, limit: Optional[int] = None, clock: Callable[[], datetime] = utcnow, **kwargs):
        super().__init__(*args, **kwargs)
        self._limit = limit if limit is not None else config.sync.flights_limit
        self.clock = clock

    @property
    def limit(self) -> Optional[int]:
        return self._limit

    def select_filters(self) -> Optional[List[Filter]]:
        return [('departure_time', 'gte', self.clock())]

    def accepts(self, row: dict) -> bool:
        return _timestamp_key(row.get('departure_time')) >= self.clock()

    def validate(self, fields: Dict[str, Any]) -> dict:
        return validate_flight(fields)


class UserList(ListSynchronizer):
    """
    User profiles with their role labels, newest first.

    Accounts are created, edited and deleted through the administrative
    endpoint; role grants go straight to the user_roles table. The acting
    session can never delete itself or revoke its own admin role.
    """

    label = 'users'

    def __init__(
        self,
        table: RemoteTable,
        roles_table: RemoteTable,
        admin: AdminClient,
        auth: AuthClient,
        session: SessionContext,
        notifier: Optional[Notifier] = None,
        liveness_seconds: Optional[float] = None,
    ):
        super().__init__(table, session, notifier=notifier, liveness_seconds=liveness_seconds)
        self.roles_table = roles_table
        self.admin = admin
        self.auth = auth

    @staticmethod
    def is_admin(row: dict) -> bool:
        return AppRole.ADMIN in parse_roles(row.get('user_roles'))

    def change_sources(self) -> List[RemoteTable]:
        return [self.table, self.roles_table]

    def validate(self, fields: Dict[str, Any]) -> dict:
        return validate_new_user(fields)

    def _insert(self, row: dict) -> dict:
        body = self.admin.invoke('create', **row)
        return body.get('user') or {}

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        """Edit email, password or full name through the admin endpoint."""
        try:
            self.admin.invoke('update', user_id=record_id, **fields)
        except OpsBoardError as e:
            self._fail('Failed to update user', e)
            return None

        self._succeed('User updated')
        self.load()
        return self.get(record_id)

    def check_delete(self, record_id: str) -> None:
        if self.session.is_self(record_id):
            raise SelfDeletionError()

    def _delete_remote(self, record_id: str) -> None:
        self.admin.invoke('delete', user_id=record_id)

    def set_admin(self, record_id: str, grant: bool) -> bool:
        """
        Grant or revoke the admin role.

        Revoking the acting session's own admin role fails with
        SelfDemotionError before any remote call.
        """
        try:
            if not grant and self.session.is_self(record_id):
                raise SelfDemotionError()
            if grant:
                self.roles_table.insert({'user_id': record_id, 'role': AppRole.ADMIN.value})
            else:
                self.roles_table.delete_where([
                    ('user_id', 'eq', record_id),
                    ('role', 'eq', AppRole.ADMIN.value),
                ])
        except OpsBoardError as e:
            self._fail('Failed to update role', e)
            return False

        self._succeed('Admin role granted' if grant else 'Admin role removed')
        self.load()
        return True

    def toggle_admin(self, record_id: str) -> bool:
        row = self.get(record_id)
        currently_admin = row is not None and self.is_admin(row)
        return self.set_admin(record_id, not currently_admin)

    def reset_password(self, record_id: str, new_password: str) -> bool:
        """Set a new password directly (admin endpoint)."""
        try:
            validate_password(new_password, 'new_password')
            self.admin.invoke('reset-password', user_id=record_id, new_password=new_password)
        except OpsBoardError as e:
            self._fail('Failed to reset password', e)
            return False

        self._succeed('Password reset')
        return True

    def send_password_reset(self, email: str) -> bool:
        """Ask the auth service to email a reset link."""
        try:
            self.auth.reset_password_for_email(email)
        except OpsBoardError as e:
            self._fail('Failed to send reset email', e)
            return False

        self._succeed(f'Password reset email sent to {email}')
        return True
