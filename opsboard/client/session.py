"""
Session context for the dashboard client.

One SessionContext exists per signed-in user. The AuthClient creates it
at sign-in and tears it down at sign-out; every synchronizer and dialog
receives it by reference instead of reading global state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Optional

from opsboard.models.user import AppRole


def parse_roles(labels: Iterable) -> FrozenSet[AppRole]:
    """Map role labels (or {'role': label} rows) to AppRole, dropping unknown ones."""
    roles = set()
    for label in labels or ():
        if isinstance(label, dict):
            label = label.get('role')
        try:
            roles.add(AppRole(label))
        except ValueError:
            continue
    return frozenset(roles)


@dataclass
class SessionContext:
    """The acting user's identity, roles and bearer token."""
    user_id: str
    email: str
    access_token: str
    roles: FrozenSet[AppRole] = frozenset()
    full_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    active: bool = field(default=True)

    @property
    def is_admin(self) -> bool:
        return self.active and AppRole.ADMIN in self.roles

    def is_self(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id == self.user_id

    def close(self) -> None:
        """Tear down at sign-out; the token is dropped."""
        self.active = False
        self.access_token = ''
        self.roles = frozenset()
