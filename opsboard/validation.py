"""
Field validation and normalization for create/edit forms.

Each validate_* function takes raw form fields, returns the normalized
row that would be sent to the remote table, and raises ValidationError
naming the first violated constraint. Nothing here touches the network.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from opsboard.config import config
from opsboard.errors import ValidationError
from opsboard.models.announcement import (
    AnnouncementPriority,
    TITLE_MAX_LENGTH,
    CONTENT_MAX_LENGTH,
)
from opsboard.models.flight import FlightStatus

EMAIL_MAX_LENGTH = 255
FULL_NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = config.auth.min_password_length

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_PASSWORD_RE = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)')


def parse_timestamp(value: Union[str, datetime, None], field: str = 'timestamp') -> datetime:
    """
    Parse an ISO-8601 string (or datetime) into naive UTC.

    Aware values are converted to UTC; naive values are taken as UTC.
    """
    if value is None or value == '':
        raise ValidationError(field, f'{_label(field)} is required')

    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(field, f'{_label(field)} is not a valid date/time')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _label(field: str) -> str:
    return field.replace('_', ' ').capitalize()


def _required_text(fields: Dict[str, Any], name: str) -> str:
    value = fields.get(name)
    text = str(value).strip() if value is not None else ''
    if not text:
        raise ValidationError(name, f'{_label(name)} is required')
    return text


def _optional_text(fields: Dict[str, Any], name: str) -> Optional[str]:
    value = fields.get(name)
    if value is None:
        return None
    return str(value).strip() or None


def _enum_member(enum_cls, value: Any, name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(m.value for m in enum_cls)
        raise ValidationError(name, f'{_label(name)} must be one of: {allowed}')


# -----------------------------------------------------------------------------
# Announcements
# -----------------------------------------------------------------------------

def validate_announcement(fields: Dict[str, Any]) -> dict:
    """
    Validate a new announcement.

    Title and content are required; both are trimmed before the length
    bounds are checked, so the bounds apply to what gets stored.
    """
    title = _required_text(fields, 'title')
    content = _required_text(fields, 'content')

    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError('title', f'Title must be at most {TITLE_MAX_LENGTH} characters')
    if len(content) > CONTENT_MAX_LENGTH:
        raise ValidationError('content', f'Content must be at most {CONTENT_MAX_LENGTH} characters')

    priority = _enum_member(
        AnnouncementPriority,
        fields.get('priority') or AnnouncementPriority.NORMAL.value,
        'priority',
    )

    return {
        'title': title,
        'content': content,
        'priority': priority.value,
    }


# -----------------------------------------------------------------------------
# Flights
# -----------------------------------------------------------------------------

def validate_flight(fields: Dict[str, Any]) -> dict:
    """
    Validate and normalize a new flight.

    Codes are trimmed and upper-cased; arrival must be strictly after
    departure.
    """
    flight_number = _required_text(fields, 'flight_number').upper()
    departure_airport = _required_text(fields, 'departure_airport').upper()
    arrival_airport = _required_text(fields, 'arrival_airport').upper()

    departure_time = parse_timestamp(fields.get('departure_time'), 'departure_time')
    arrival_time = parse_timestamp(fields.get('arrival_time'), 'arrival_time')

    if arrival_time <= departure_time:
        raise ValidationError('arrival_time', 'Arrival time must be after departure time')

    status = _enum_member(
        FlightStatus,
        fields.get('status') or FlightStatus.SCHEDULED.value,
        'status',
    )

    gate = _optional_text(fields, 'gate')

    return {
        'flight_number': flight_number,
        'departure_airport': departure_airport,
        'arrival_airport': arrival_airport,
        'departure_time': departure_time.isoformat(),
        'arrival_time': arrival_time.isoformat(),
        'status': status.value,
        'gate': gate.upper() if gate else None,
        'aircraft_type': _optional_text(fields, 'aircraft_type'),
    }


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------

def validate_email(value: Any) -> str:
    email = str(value or '').strip()
    if not _EMAIL_RE.match(email):
        raise ValidationError('email', 'Invalid email format')
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError('email', 'Email too long')
    return email


def validate_password(value: Any, field: str = 'password') -> str:
    password = str(value or '')
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(field, f'Password must be at least {PASSWORD_MIN_LENGTH} characters')
    if not _PASSWORD_RE.match(password):
        raise ValidationError(field, 'Password must contain uppercase, lowercase, and number')
    return password


def validate_full_name(value: Any) -> str:
    name = str(value or '').strip()
    if not name:
        raise ValidationError('full_name', 'Name is required')
    if len(name) > FULL_NAME_MAX_LENGTH:
        raise ValidationError('full_name', 'Name too long')
    return name


def validate_new_user(fields: Dict[str, Any]) -> dict:
    """Validate the create-user form."""
    return {
        'email': validate_email(fields.get('email')),
        'password': validate_password(fields.get('password')),
        'full_name': validate_full_name(fields.get('full_name')),
        'is_admin': bool(fields.get('is_admin', False)),
    }
