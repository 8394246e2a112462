"""
Dashboard client core.

Everything the dashboard does goes through here:
- remote.py   Remote table client (REST + SSE change feed)
- auth.py     Auth client (owns the SessionContext) and admin client
- sync.py     List synchronizers for announcements, flights and users
- dialog.py   Confirmation workflow for destructive/role-changing actions
- notify.py   One-line user-visible notices

Dashboard wires one of each list for a signed-in session.
"""

import logging
from typing import Optional

from opsboard.client.auth import AdminClient, AuthClient
from opsboard.client.dialog import MutationDialog, UserDialog
from opsboard.client.notify import Notifier
from opsboard.client.remote import ApiClient, HttpTableClient
from opsboard.client.session import SessionContext
from opsboard.client.sync import AnnouncementList, FlightList, UserList

logger = logging.getLogger(__name__)


class Dashboard:
    """
    Panels for one signed-in session.

    Created after sign-in and closed at sign-out; the user management
    panel only exists for admins.
    """

    def __init__(self, api: ApiClient, auth: AuthClient, notifier: Optional[Notifier] = None):
        if auth.session is None:
            raise ValueError('Dashboard requires a signed-in session')

        self.session: SessionContext = auth.session
        self.notifier = notifier or Notifier()

        self.announcements = AnnouncementList(
            HttpTableClient('announcements', api), self.session, self.notifier,
        )
        self.flights = FlightList(HttpTableClient('flights', api), self.session, self.notifier)
        self.announcement_dialog = MutationDialog(self.announcements)
        self.flight_dialog = MutationDialog(self.flights)

        self.users: Optional[UserList] = None
        self.user_dialog: Optional[UserDialog] = None
        if self.session.is_admin:
            self.users = UserList(
                HttpTableClient('profiles', api),
                HttpTableClient('user_roles', api),
                AdminClient(api),
                auth,
                self.session,
                self.notifier,
            )
            self.user_dialog = UserDialog(self.users)

    @property
    def lists(self):
        return [s for s in (self.announcements, self.flights, self.users) if s is not None]

    def start(self) -> None:
        for synchronizer in self.lists:
            synchronizer.start()
        logger.info(f'Dashboard started for {self.session.email}')

    def close(self) -> None:
        for synchronizer in self.lists:
            synchronizer.stop()
        logger.info('Dashboard closed')


__all__ = [
    'AdminClient',
    'AnnouncementList',
    'ApiClient',
    'AuthClient',
    'Dashboard',
    'FlightList',
    'HttpTableClient',
    'MutationDialog',
    'Notifier',
    'SessionContext',
    'UserDialog',
    'UserList',
]
