"""
Flight model - scheduled departures shown on the dashboard.

The dashboard lists upcoming flights only (departure time in the future),
ordered by departure time ascending.

Design notes:
- Airport and flight codes are stored upper-cased
- Arrival strictly after departure is enforced by a CHECK constraint
  as well as by client-side validation
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from opsboard.models.base import Base, new_id, utcnow


class FlightStatus(str, Enum):
    """Operational status of a flight."""
    SCHEDULED = 'scheduled'
    BOARDING = 'boarding'
    DEPARTED = 'departed'
    DELAYED = 'delayed'
    CANCELLED = 'cancelled'


class Flight(Base):
    """A single scheduled flight leg."""

    __tablename__ = 'flights'
    __public_columns__ = (
        'id', 'flight_number', 'departure_airport', 'arrival_airport',
        'departure_time', 'arrival_time', 'status', 'gate', 'aircraft_type',
        'created_at',
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )

    flight_number: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment='Flight designator (e.g., AA1234)'
    )

    departure_airport: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment='IATA or ICAO airport code'
    )

    arrival_airport: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment='IATA or ICAO airport code'
    )

    departure_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
    )

    arrival_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=FlightStatus.SCHEDULED.value,
    )

    gate: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
    )

    aircraft_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment='Free-text aircraft description (e.g., Boeing 737)'
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint('arrival_time > departure_time', name='ck_flights_arrival_after_departure'),
        # Upcoming flights query
        Index('ix_flights_upcoming', 'departure_time', 'status'),
    )

    def __repr__(self) -> str:
        return f'<Flight {self.flight_number} {self.departure_airport}->{self.arrival_airport} {self.status}>'
