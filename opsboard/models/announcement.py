"""
Announcement model - staff-facing operational notices.

Announcements are listed newest first. High-priority notices stay
visually flagged until a staff member marks them as read.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from opsboard.models.base import Base, new_id, utcnow

TITLE_MAX_LENGTH = 200
CONTENT_MAX_LENGTH = 2000


class AnnouncementPriority(str, Enum):
    """Closed set of announcement priorities."""
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'


class Announcement(Base):
    """A notice posted by an administrator."""

    __tablename__ = 'announcements'
    __public_columns__ = (
        'id', 'title', 'content', 'priority', 'created_at', 'created_by', 'read',
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )

    title: Mapped[str] = mapped_column(
        String(TITLE_MAX_LENGTH),
        nullable=False,
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment='Body text, bounded at creation time',
    )

    priority: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=AnnouncementPriority.NORMAL.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        index=True,
    )

    # Author is optional; the profile may since have been deleted
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey('profiles.id', ondelete='SET NULL'),
        nullable=True,
    )

    read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    __table_args__ = (
        Index('ix_announcements_priority_read', 'priority', 'read'),
    )

    def __repr__(self) -> str:
        return f'<Announcement {self.id} [{self.priority}] {self.title!r}>'
