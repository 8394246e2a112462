import os
import tempfile

# Must be set before anything imports opsboard.config
_DB_DIR = tempfile.mkdtemp(prefix='opsboard-tests-')
os.environ['DATABASE_URL'] = f'sqlite:///{os.path.join(_DB_DIR, "test.db")}'
os.environ.setdefault('SYNC_LIVENESS_SECONDS', '0.05')

import itertools
from typing import Callable, Dict, List, Optional

import pytest

from opsboard.app import create_app
from opsboard.auth import auth_service
from opsboard.client.notify import Notifier
from opsboard.client.remote import Filter, RemoteTable, Subscription
from opsboard.client.session import SessionContext
from opsboard.errors import OpsBoardError, WriteError
from opsboard.models import AppRole, drop_db, get_session
from opsboard.realtime import ChangeEvent, INSERT

ADMIN_EMAIL = 'admin@flyprague.test'
STAFF_EMAIL = 'staff@flyprague.test'
PASSWORD = 'Secret123'


# -----------------------------------------------------------------------------
# Backend fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def app():
    drop_db()
    application = create_app()
    application.config['TESTING'] = True
    yield application
    drop_db()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def accounts(app) -> Dict[str, str]:
    """Create one admin and one staff account; returns their ids."""
    with get_session() as session:
        admin = auth_service.create_account(session, ADMIN_EMAIL, PASSWORD, full_name='Ada Admin', is_admin=True)
        staff = auth_service.create_account(session, STAFF_EMAIL, PASSWORD, full_name='Sam Staff')
        ids = {'admin': admin.id, 'staff': staff.id}
    return ids


def _sign_in(client, email: str) -> str:
    response = client.post('/api/auth/sign-in', json={'email': email, 'password': PASSWORD})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['access_token']


@pytest.fixture
def admin_headers(client, accounts) -> dict:
    return {'Authorization': f'Bearer {_sign_in(client, ADMIN_EMAIL)}'}


@pytest.fixture
def staff_headers(client, accounts) -> dict:
    return {'Authorization': f'Bearer {_sign_in(client, STAFF_EMAIL)}'}


# -----------------------------------------------------------------------------
# Client fakes
# -----------------------------------------------------------------------------

class FakeSubscription(Subscription):
    def __init__(self, table: 'FakeTable', callback: Callable[[ChangeEvent], None]):
        self.table = table
        self.callback = callback
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def drop(self) -> None:
        """Simulate the feed connection dying."""
        self._alive = False

    def unsubscribe(self) -> None:
        self._alive = False
        if self in self.table.subscriptions:
            self.table.subscriptions.remove(self)


class FakeTable(RemoteTable):
    """
    In-memory remote table with a mock push channel.

    Rows come back in insertion order unless ordered; every call is
    counted so tests can assert how many remote calls happened.
    """

    _ids = itertools.count(1)

    def __init__(self, name: str, rows: Optional[List[dict]] = None):
        self.name = name
        self.rows: List[dict] = [dict(r) for r in rows or []]
        self.calls: List[str] = []
        self.subscriptions: List[FakeSubscription] = []
        self.fail: Dict[str, OpsBoardError] = {}

    def _call(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail:
            raise self.fail[op]

    def count(self, op: str) -> int:
        return self.calls.count(op)

    def select(self, filters: Optional[List[Filter]] = None, order=None, descending=False, limit=None) -> List[dict]:
        self._call('select')
        rows = [dict(r) for r in self.rows]
        for column, op, value in filters or ():
            if hasattr(value, 'isoformat'):
                value = value.isoformat()
            if op == 'eq':
                rows = [r for r in rows if r.get(column) == value]
            elif op == 'gte':
                rows = [r for r in rows if r.get(column) >= value]
            elif op == 'lte':
                rows = [r for r in rows if r.get(column) <= value]
        if order:
            rows.sort(key=lambda r: r.get(order), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, row: dict) -> dict:
        self._call('insert')
        stored = {'id': f'{self.name}-{next(self._ids)}', **row}
        stored.setdefault('created_at', f'2026-10-19T12:00:{len(self.rows):02d}')
        if self.name == 'announcements':
            stored.setdefault('read', False)
        self.rows.append(stored)
        return dict(stored)

    def update(self, record_id: str, fields: dict) -> dict:
        self._call('update')
        for row in self.rows:
            if row['id'] == record_id:
                row.update(fields)
                return dict(row)
        raise WriteError(f'No {self.name} row with id {record_id}')

    def delete(self, record_id: str) -> None:
        self._call('delete')
        before = len(self.rows)
        self.rows = [r for r in self.rows if r['id'] != record_id]
        if len(self.rows) == before:
            raise WriteError(f'No {self.name} row with id {record_id}')

    def delete_where(self, filters: List[Filter]) -> int:
        self._call('delete_where')
        keep = []
        for row in self.rows:
            if all(row.get(c) == v for c, _, v in filters):
                continue
            keep.append(row)
        deleted = len(self.rows) - len(keep)
        self.rows = keep
        return deleted

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Subscription:
        self._call('subscribe')
        subscription = FakeSubscription(self, callback)
        self.subscriptions.append(subscription)
        return subscription

    def push(self, change_type: str = INSERT, record_id: Optional[str] = None) -> None:
        """Deliver a change event to every live subscriber."""
        change = ChangeEvent(table=self.name, type=change_type, record_id=record_id)
        for subscription in list(self.subscriptions):
            if subscription.alive:
                subscription.callback(change)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def admin_session() -> SessionContext:
    return SessionContext(
        user_id='user-admin',
        email=ADMIN_EMAIL,
        access_token='token-admin',
        roles=frozenset({AppRole.ADMIN}),
    )


@pytest.fixture
def staff_session() -> SessionContext:
    return SessionContext(user_id='user-staff', email=STAFF_EMAIL, access_token='token-staff')
