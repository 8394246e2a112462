"""
Managed auth service.

Owns credentials, bearer sessions and role lookups:
- Password hashing via werkzeug.security
- Opaque bearer tokens with a configurable lifetime
- Account provisioning for the administrative endpoint
- Route guards (require_session / require_admin) for Flask views

Password reset emails are out of scope: a reset request is recorded
and logged, nothing is sent.
"""

import logging
import secrets
from datetime import timedelta
from functools import wraps
from typing import Optional, List, Tuple

from flask import g, request
from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from opsboard.config import config
from opsboard.errors import AuthorizationError, ValidationError, NotFoundError
from opsboard.models import (
    AppRole,
    AuthAccount,
    AuthSession,
    PasswordResetRequest,
    SessionLocal,
    UserProfile,
    UserRole,
)
from opsboard.models.base import utcnow

logger = logging.getLogger(__name__)


class AuthService:
    """Credential and session operations against the auth tables."""

    def __init__(self, session_ttl_hours: Optional[int] = None):
        self.session_ttl = timedelta(hours=session_ttl_hours or config.auth.session_ttl_hours)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(
        self,
        session: Session,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        is_admin: bool = False,
    ) -> UserProfile:
        """Create auth account, profile and optional admin role."""
        email = email.strip().lower()
        self._check_email_free(session, email)

        account = AuthAccount(email=email, password_hash=generate_password_hash(password))
        session.add(account)
        session.flush()

        profile = UserProfile(id=account.id, email=email, full_name=full_name)
        session.add(profile)
        session.flush()

        if is_admin:
            session.add(UserRole(user_id=account.id, role=AppRole.ADMIN.value))

        logger.info(f'Account created: {account.id} ({email})')
        return profile

    def update_account(
        self,
        session: Session,
        user_id: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> UserProfile:
        """Update whichever of email/password/full name were given."""
        account = self._get_account(session, user_id)
        profile = session.get(UserProfile, user_id)

        if email:
            email = email.strip().lower()
            self._check_email_free(session, email, exclude_id=user_id)
            account.email = email
            if profile is not None:
                profile.email = account.email
        if password:
            account.password_hash = generate_password_hash(password)
        if full_name and profile is not None:
            profile.full_name = full_name

        logger.info(f'Account updated: {user_id}')
        return profile

    def set_password(self, session: Session, user_id: str, new_password: str) -> None:
        account = self._get_account(session, user_id)
        account.password_hash = generate_password_hash(new_password)
        logger.info(f'Password reset for account {user_id}')

    def delete_account(self, session: Session, user_id: str) -> None:
        """Delete account; profile, roles and sessions go with it."""
        account = self._get_account(session, user_id)

        # Delete through the ORM so the change feed sees profile and roles go
        profile = session.get(UserProfile, user_id)
        if profile is not None:
            session.delete(profile)
            session.flush()

        session.delete(account)
        logger.info(f'Account deleted: {user_id}')

    def _check_email_free(self, session: Session, email: str, exclude_id: Optional[str] = None) -> None:
        stmt = select(AuthAccount.id).where(AuthAccount.email == email)
        if exclude_id is not None:
            stmt = stmt.where(AuthAccount.id != exclude_id)
        if session.scalar(stmt) is not None:
            raise ValidationError('email', 'A user with this email address has already been registered')

    def _get_account(self, session: Session, user_id: str) -> AuthAccount:
        account = session.get(AuthAccount, user_id)
        if account is None:
            raise NotFoundError(f'User not found: {user_id}')
        return account

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def sign_up(self, session: Session, email: str, password: str, metadata: Optional[dict] = None) -> UserProfile:
        metadata = metadata or {}
        return self.create_account(session, email, password, full_name=metadata.get('full_name'))

    def sign_in(self, session: Session, email: str, password: str) -> Tuple[AuthSession, UserProfile]:
        """
        Verify credentials and issue a bearer session.

        Raises AuthorizationError (401) on unknown email or wrong password;
        both cases return the same message.
        """
        email = (email or '').strip().lower()
        account = session.scalar(select(AuthAccount).where(AuthAccount.email == email))

        if account is None or not check_password_hash(account.password_hash, password or ''):
            logger.warning(f'Failed sign-in for {email}')
            raise AuthorizationError('Invalid email or password', status_code=401)

        now = utcnow()
        auth_session = AuthSession(
            token=secrets.token_hex(32),
            user_id=account.id,
            created_at=now,
            expires_at=now + self.session_ttl,
        )
        session.add(auth_session)

        logger.info(f'Signed in: {account.id}')
        return auth_session, session.get(UserProfile, account.id)

    def sign_out(self, session: Session, token: str) -> None:
        auth_session = session.get(AuthSession, token)
        if auth_session is not None:
            session.delete(auth_session)
            logger.info(f'Signed out: {auth_session.user_id}')

    def get_user_id(self, session: Session, token: Optional[str]) -> Optional[str]:
        """Resolve a bearer token to a user id, dropping expired sessions."""
        if not token:
            return None

        auth_session = session.get(AuthSession, token)
        if auth_session is None:
            return None

        if auth_session.is_expired:
            session.delete(auth_session)
            return None

        return auth_session.user_id

    def get_roles(self, session: Session, user_id: str) -> List[str]:
        rows = session.scalars(select(UserRole.role).where(UserRole.user_id == user_id))
        return sorted(rows)

    def has_role(self, session: Session, user_id: str, role: AppRole) -> bool:
        return role.value in self.get_roles(session, user_id)

    def request_password_reset(self, session: Session, email: str, redirect_to: Optional[str] = None) -> None:
        """
        Record a reset request.

        Succeeds for unknown addresses too, so callers cannot probe which
        emails are registered.
        """
        redirect_to = redirect_to or config.auth.password_reset_redirect
        session.add(PasswordResetRequest(email=email.strip().lower(), redirect_to=redirect_to))
        logger.info(f'Password reset requested for {email} (redirect {redirect_to})')


# Singleton instance
auth_service = AuthService()


# -----------------------------------------------------------------------------
# Route guards
# -----------------------------------------------------------------------------

def bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip() or None
    # EventSource clients cannot set headers
    return request.args.get('access_token') or None


def _load_caller() -> None:
    with SessionLocal() as session:
        user_id = auth_service.get_user_id(session, bearer_token())
        if user_id is None:
            session.commit()
            raise AuthorizationError('Unauthorized', status_code=401)
        g.user_id = user_id
        g.roles = auth_service.get_roles(session, user_id)


def require_session(view):
    """Reject requests without a valid bearer session (401)."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        _load_caller()
        return view(*args, **kwargs)
    return wrapper


def require_admin(view):
    """Reject requests unless the caller holds the admin role (401/403)."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        _load_caller()
        if AppRole.ADMIN.value not in g.roles:
            raise AuthorizationError('Forbidden: Admin access required', status_code=403)
        return view(*args, **kwargs)
    return wrapper


def caller_is_admin() -> bool:
    return AppRole.ADMIN.value in getattr(g, 'roles', [])
