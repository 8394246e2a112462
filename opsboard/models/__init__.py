"""
Database models for OpsBoard.

Every table the dashboard can see is registered in TABLES by its
public name; the REST layer and the change feed address tables only
through that registry.
"""

from opsboard.models.base import Base, engine, SessionLocal, init_db, drop_db, get_session
from opsboard.models.announcement import Announcement, AnnouncementPriority
from opsboard.models.flight import Flight, FlightStatus
from opsboard.models.user import (
    AppRole,
    AuthAccount,
    AuthSession,
    PasswordResetRequest,
    UserProfile,
    UserRole,
)

TABLES = {
    Announcement.__tablename__: Announcement,
    Flight.__tablename__: Flight,
    UserProfile.__tablename__: UserProfile,
    UserRole.__tablename__: UserRole,
}

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'drop_db',
    'get_session',
    'Announcement',
    'AnnouncementPriority',
    'Flight',
    'FlightStatus',
    'AppRole',
    'AuthAccount',
    'AuthSession',
    'PasswordResetRequest',
    'UserProfile',
    'UserRole',
    'TABLES',
]
