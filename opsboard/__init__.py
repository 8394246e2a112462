"""
OpsBoard Package.

Airline-operations dashboard built with Flask and SQLAlchemy: staff view and
manage announcements, flights and user accounts, with every list kept in
sync through a per-table realtime change feed.

Modules:
    api/         REST endpoints for tables, auth and administrative user operations
    models/      SQLAlchemy ORM models (Announcement, Flight, UserProfile, ...)
    client/      Dashboard client core: remote tables, list synchronizers, dialogs
    realtime.py  In-process change feed with Server-Sent Events streaming
    auth.py      Password/session handling and route guards
    validation.py  Field constraints and normalization for create forms
    errors.py    Error taxonomy shared by backend and client
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
