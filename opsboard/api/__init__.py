"""
API module for OpsBoard.

Provides REST endpoints for:
- Remote tables (select/insert/update/delete and change streams)
- Auth (sign-in, sign-out, sign-up, session, password reset)
- Administrative user operations
"""

from opsboard.api.tables import tables_bp
from opsboard.api.auth import auth_bp
from opsboard.api.admin_users import admin_users_bp

__all__ = ['tables_bp', 'auth_bp', 'admin_users_bp']
