"""
Auth and administrative clients.

AuthClient is the single owner of the SessionContext: it creates one at
sign-in, closes it at sign-out, and tells listeners about both.

AdminClient calls the administrative operations endpoint, one tagged
action per call.
"""

import logging
from typing import Callable, List, Optional

from opsboard.config import config
from opsboard.errors import AuthorizationError, FetchError, WriteError
from opsboard.client.remote import ApiClient
from opsboard.client.session import SessionContext, parse_roles
from opsboard.validation import parse_timestamp

logger = logging.getLogger(__name__)

SIGNED_IN = 'SIGNED_IN'
SIGNED_OUT = 'SIGNED_OUT'

AuthListener = Callable[[str, Optional[SessionContext]], None]


class AuthClient:
    """Sign-in, sign-out, sign-up and password reset against the backend."""

    def __init__(self, api: ApiClient):
        self.api = api
        self.session: Optional[SessionContext] = None
        self._listeners: List[AuthListener] = []

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register listener(event, session) for SIGNED_IN / SIGNED_OUT.

        Returns an unsubscribe callable.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self.session)
            except Exception as e:
                logger.error(f'Auth listener error on {event}: {e}')

    def sign_in(self, email: str, password: str) -> SessionContext:
        """
        Exchange credentials for a session.

        Raises AuthorizationError on bad credentials.
        """
        body = self.api.request(
            'POST',
            '/api/auth/sign-in',
            error_cls=FetchError,
            json={'email': email, 'password': password},
        ) or {}

        if self.session is not None:
            self.session.close()

        user = body.get('user') or {}
        self.api.access_token = body.get('access_token')
        self.session = SessionContext(
            user_id=user.get('id'),
            email=user.get('email', email),
            access_token=body.get('access_token', ''),
            roles=parse_roles(user.get('user_roles')),
            full_name=user.get('full_name'),
            expires_at=parse_timestamp(body['expires_at']) if body.get('expires_at') else None,
        )

        logger.info(f'Signed in as {self.session.email}')
        self._emit(SIGNED_IN)
        return self.session

    def sign_out(self) -> None:
        """Revoke the token server-side and tear down the session context."""
        if self.session is None:
            return

        try:
            self.api.request('POST', '/api/auth/sign-out', error_cls=WriteError)
        except WriteError as e:
            # The local session is torn down regardless
            logger.warning(f'Sign-out request failed: {e}')

        self.session.close()
        self.api.access_token = None
        self._emit(SIGNED_OUT)
        self.session = None
        logger.info('Signed out')

    def get_session(self) -> Optional[SessionContext]:
        """
        Return the current session, refreshing roles from the backend.

        Returns None when signed out; an expired or revoked token signs
        the client out.
        """
        if self.session is None:
            return None

        try:
            body = self.api.request('GET', '/api/auth/session') or {}
        except AuthorizationError as e:
            logger.warning(f'Session no longer valid: {e}')
            self.session.close()
            self.api.access_token = None
            self.session = None
            self._emit(SIGNED_OUT)
            return None

        self.session.roles = parse_roles(body.get('roles'))
        return self.session

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> dict:
        body = self.api.request(
            'POST',
            '/api/auth/sign-up',
            error_cls=WriteError,
            json={'email': email, 'password': password, 'metadata': metadata or {}},
        ) or {}
        return body.get('user') or {}

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        self.api.request(
            'POST',
            '/api/auth/reset-password',
            error_cls=WriteError,
            json={'email': email, 'redirect_to': redirect_to or config.auth.password_reset_redirect},
        )


class AdminClient:
    """Caller for the administrative user operations endpoint."""

    def __init__(self, api: ApiClient):
        self.api = api

    def invoke(self, action: str, **params) -> dict:
        """
        Run one action: create, update, delete or reset-password.

        Raises AuthorizationError if the caller is not an admin, WriteError
        on any other failure.
        """
        logger.info(f'Admin action {action}')
        return self.api.request(
            'POST',
            '/api/admin-users',
            error_cls=WriteError,
            json={'action': action, **params},
        ) or {}
