"""
Error taxonomy for OpsBoard.

Shared by the backend (mapped to JSON error bodies with an HTTP status)
and by the dashboard client (caught at the failing call, logged, and
surfaced as a one-line notification).
"""

from typing import Optional


class OpsBoardError(Exception):
    """Base class for all OpsBoard errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message}


class ValidationError(OpsBoardError):
    """Local field constraint violation; never reaches the remote."""
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {'error': self.message, 'field': self.field}


class FetchError(OpsBoardError):
    """A remote read failed (network or backend-reported)."""
    status_code = 502


class WriteError(OpsBoardError):
    """A remote write failed (network or backend-reported)."""
    status_code = 400


class NotFoundError(WriteError):
    """Target row does not exist."""
    status_code = 404


class AuthorizationError(OpsBoardError):
    """Caller lacks a session or the required role."""
    status_code = 403

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class SelfActionError(OpsBoardError):
    """Blocked self-delete or self-demote."""
    status_code = 409


class SelfDeletionError(SelfActionError):
    def __init__(self, message: str = 'You cannot delete your own account'):
        super().__init__(message)


class SelfDemotionError(SelfActionError):
    def __init__(self, message: str = 'You cannot remove your own admin role'):
        super().__init__(message)


class DialogBusyError(OpsBoardError):
    """A dialog already holds a pending action."""
    status_code = 409
