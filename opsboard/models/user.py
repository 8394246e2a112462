"""
User models - accounts, profiles, roles and auth sessions.

The managed auth layer owns credentials (AuthAccount) and bearer
sessions (AuthSession). The dashboard only ever sees profiles, with
their role labels embedded.

Design notes:
- Profile and account share the same identifier
- Roles live in their own table, one row per (user, role)
- Deleting an account cascades to profile, roles and sessions
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsboard.models.base import Base, new_id, utcnow


class AppRole(str, Enum):
    """Closed set of role labels."""
    ADMIN = 'admin'
    USER = 'user'


class AuthAccount(Base):
    """Credentials for one user. Never serialized to clients."""

    __tablename__ = 'auth_accounts'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f'<AuthAccount {self.id} {self.email}>'


class UserProfile(Base):
    """Dashboard-visible user record."""

    __tablename__ = 'profiles'
    __public_columns__ = ('id', 'email', 'full_name', 'created_at')

    id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('auth_accounts.id', ondelete='CASCADE'),
        primary_key=True,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        index=True,
    )

    roles: Mapped[List['UserRole']] = relationship(
        back_populates='profile',
        cascade='all, delete-orphan',
        passive_deletes=True,
        lazy='selectin',
    )

    def __repr__(self) -> str:
        return f'<UserProfile {self.id} {self.email}>'

    @property
    def role_labels(self) -> List[str]:
        return sorted(r.role for r in self.roles)

    def to_dict(self) -> dict:
        row = super().to_dict()
        row['user_roles'] = [{'role': label} for label in self.role_labels]
        return row


class UserRole(Base):
    """One role granted to one user."""

    __tablename__ = 'user_roles'
    __public_columns__ = ('id', 'user_id', 'role')

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('profiles.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(String(20), nullable=False)

    profile: Mapped[UserProfile] = relationship(back_populates='roles')

    __table_args__ = (
        UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )

    def __repr__(self) -> str:
        return f'<UserRole {self.user_id} {self.role}>'


class AuthSession(Base):
    """Opaque bearer token issued at sign-in."""

    __tablename__ = 'auth_sessions'

    token: Mapped[str] = mapped_column(String(64), primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('auth_accounts.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    @property
    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at


class PasswordResetRequest(Base):
    """Recorded request to send a password reset email."""

    __tablename__ = 'password_reset_requests'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    redirect_to: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
