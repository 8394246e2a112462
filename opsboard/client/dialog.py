"""
Mutation dialog controller.

Drives the confirm-before-acting workflow for destructive and
role-changing actions:

    IDLE --request--> CONFIRMING --confirm--> IN_FLIGHT --> IDLE
                          |
                          +------cancel-----> IDLE

A dialog holds at most one pending action. While IN_FLIGHT the view
disables its controls (see `busy`); that is the only guard against
duplicate submission.

Outcome signals (success/failure notices) come from the synchronizer
operation the dialog runs. On success the list is reloaded exactly once:
by the operation itself where it reloads (role changes, user edits),
otherwise by the dialog.
Guards can refuse to enter CONFIRMING at all, e.g. an admin trying to
revoke their own admin role.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from opsboard.errors import DialogBusyError, OpsBoardError, SelfDeletionError, SelfDemotionError
from opsboard.client.session import SessionContext
from opsboard.client.sync import ListSynchronizer, UserList

logger = logging.getLogger(__name__)

DELETE = 'delete'
GRANT_ADMIN = 'grant_admin'
REVOKE_ADMIN = 'revoke_admin'


class DialogState(str, Enum):
    IDLE = 'idle'
    CONFIRMING = 'confirming'
    IN_FLIGHT = 'in_flight'


@dataclass
class PendingAction:
    """What the user asked for and the call that carries it out."""
    kind: str
    target: dict
    run: Callable[[], Any]


# guard(kind, target) raises to refuse a request
Guard = Callable[[str, dict], None]


class MutationDialog:
    """Single-slot confirmation workflow bound to one list."""

    def __init__(
        self,
        synchronizer: ListSynchronizer,
        guard: Optional[Guard] = None,
    ):
        self.synchronizer = synchronizer
        self.guard = guard
        self.state = DialogState.IDLE
        self.pending: Optional[PendingAction] = None
        self.last_error: Optional[OpsBoardError] = None

    @property
    def busy(self) -> bool:
        """True while the remote call is outstanding; controls stay disabled."""
        return self.state == DialogState.IN_FLIGHT

    @property
    def target(self) -> Optional[dict]:
        return self.pending.target if self.pending else None

    def request(self, kind: str, target: dict, run: Callable[[], Any]) -> bool:
        """
        Ask for confirmation of an action on target.

        Returns False (state stays IDLE) if a guard refuses; the refusal is
        surfaced as a notice. Raises DialogBusyError if another action is
        already pending.
        """
        if self.state != DialogState.IDLE:
            raise DialogBusyError(f'Another action is pending ({self.pending.kind})')

        if self.guard is not None:
            try:
                self.guard(kind, target)
            except OpsBoardError as e:
                self.last_error = e
                logger.warning(f'{kind} on {target.get("id")} refused: {e}')
                self.synchronizer.notifier.error(e.message)
                return False

        self.pending = PendingAction(kind=kind, target=target, run=run)
        self.state = DialogState.CONFIRMING
        self.last_error = None
        logger.debug(f'Confirming {kind} on {target.get("id")}')
        return True

    def request_delete(self, target: dict) -> bool:
        return self.request(DELETE, target, lambda: self.synchronizer.delete(target['id']))

    def cancel(self) -> None:
        """Discard the pending action. Only valid before confirm."""
        if self.state == DialogState.IN_FLIGHT:
            raise DialogBusyError('Cannot cancel an action already in flight')
        if self.pending is not None:
            logger.debug(f'Cancelled {self.pending.kind} on {self.pending.target.get("id")}')
        self.pending = None
        self.state = DialogState.IDLE

    def confirm(self) -> bool:
        """
        Run the pending action and return to IDLE.

        Returns True on success, after which the list is reconciled with
        the backend.
        """
        if self.state != DialogState.CONFIRMING or self.pending is None:
            logger.warning('Confirm with nothing pending')
            return False

        pending = self.pending
        loads_before = self.synchronizer.stats['loads']
        self.state = DialogState.IN_FLIGHT
        try:
            ok = bool(pending.run())
        finally:
            self.pending = None
            self.state = DialogState.IDLE

        self.last_error = None if ok else self.synchronizer.last_error
        # Some actions already reload on success; reload only if this one did not
        if ok and self.synchronizer.stats['loads'] == loads_before:
            self.synchronizer.load()
        return ok


def user_guard(session: SessionContext) -> Guard:
    """Refuse self-deletion and revoking one's own admin role."""

    def guard(kind: str, target: dict) -> None:
        if not session.is_self(target.get('id')):
            return
        if kind == DELETE:
            raise SelfDeletionError()
        if kind == REVOKE_ADMIN and UserList.is_admin(target):
            raise SelfDemotionError()

    return guard


class UserDialog(MutationDialog):
    """Dialog for the user management list, with the self-protection guard."""

    def __init__(self, users: UserList):
        super().__init__(users, guard=user_guard(users.session))
        self.users = users

    def request_role_change(self, target: dict) -> bool:
        """Confirm granting or revoking admin, whichever applies to target now."""
        if UserList.is_admin(target):
            return self.request(REVOKE_ADMIN, target, lambda: self.users.set_admin(target['id'], False))
        return self.request(GRANT_ADMIN, target, lambda: self.users.set_admin(target['id'], True))
