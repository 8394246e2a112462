"""
Administrative user operations endpoint.

POST /api/admin-users with a JSON body {"action": ..., **params}.

The caller must hold a valid session (401 otherwise) and the admin role
(403 otherwise), checked by a role lookup before anything runs. Exactly
one action is dispatched per call:

- create:         email, password, full_name, is_admin
- update:         user_id, and any of email, password, full_name
- delete:         user_id
- reset-password: user_id, new_password

Responses are {"success": true, ...} or {"error": message}.
"""

import logging
from typing import Callable, Dict

from flask import Blueprint, g, jsonify, request
from sqlalchemy.orm import Session

from opsboard.auth import auth_service, require_admin
from opsboard.errors import ValidationError
from opsboard.models import get_session
from opsboard.validation import (
    validate_email,
    validate_full_name,
    validate_new_user,
    validate_password,
)

logger = logging.getLogger(__name__)

admin_users_bp = Blueprint('admin_users', __name__, url_prefix='/api/admin-users')


def _require_user_id(params: dict) -> str:
    user_id = params.get('user_id')
    if not user_id:
        raise ValidationError('user_id', 'user_id is required')
    return user_id


def _create(session: Session, params: dict) -> dict:
    fields = validate_new_user(params)
    profile = auth_service.create_account(
        session,
        fields['email'],
        fields['password'],
        full_name=fields['full_name'],
        is_admin=fields['is_admin'],
    )
    session.flush()
    session.refresh(profile, ['roles'])
    return {'user': profile.to_dict()}


def _update(session: Session, params: dict) -> dict:
    user_id = _require_user_id(params)
    auth_service.update_account(
        session,
        user_id,
        email=validate_email(params['email']) if params.get('email') else None,
        password=validate_password(params['password']) if params.get('password') else None,
        full_name=validate_full_name(params['full_name']) if params.get('full_name') else None,
    )
    return {}


def _delete(session: Session, params: dict) -> dict:
    auth_service.delete_account(session, _require_user_id(params))
    return {}


def _reset_password(session: Session, params: dict) -> dict:
    user_id = _require_user_id(params)
    auth_service.set_password(session, user_id, validate_password(params.get('new_password'), 'new_password'))
    return {}


ACTIONS: Dict[str, Callable[[Session, dict], dict]] = {
    'create': _create,
    'update': _update,
    'delete': _delete,
    'reset-password': _reset_password,
}


@admin_users_bp.route('', methods=['POST'])
@require_admin
def dispatch():
    """Authorize, then run exactly one administrative action."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('body', 'Invalid JSON')

    params = dict(data)
    action = params.pop('action', None)
    handler = ACTIONS.get(action)
    if handler is None:
        return jsonify({'error': 'Invalid action'}), 400

    logger.info(f'Admin action: {action} by {g.user_id} (user_id={params.get("user_id")})')

    with get_session() as session:
        result = handler(session, params)

    return jsonify({'success': True, **result})
