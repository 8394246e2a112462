"""
Auth API endpoints.

Provides endpoints for:
- POST /api/auth/sign-in        - Exchange email/password for a bearer session
- POST /api/auth/sign-out       - Revoke the caller's bearer session
- POST /api/auth/sign-up        - Self-service account creation
- GET  /api/auth/session        - Current session's user and roles
- POST /api/auth/reset-password - Request a password reset email
"""

import logging

from flask import Blueprint, g, jsonify, request

from opsboard.auth import auth_service, bearer_token, require_session
from opsboard.errors import ValidationError
from opsboard.models import SessionLocal, UserProfile, get_session
from opsboard.validation import validate_email, validate_password

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('body', 'Invalid JSON')
    return data


@auth_bp.route('/sign-in', methods=['POST'])
def sign_in():
    data = _json_body()
    if not data.get('email') or not data.get('password'):
        raise ValidationError('email', 'Please fill in all fields')

    with get_session() as session:
        auth_session, profile = auth_service.sign_in(session, data['email'], data['password'])
        body = {
            'access_token': auth_session.token,
            'expires_at': auth_session.expires_at.isoformat(),
            'user': profile.to_dict() if profile else {'id': auth_session.user_id, 'email': data['email']},
        }

    return jsonify(body)


@auth_bp.route('/sign-out', methods=['POST'])
def sign_out():
    token = bearer_token()
    if token:
        with get_session() as session:
            auth_service.sign_out(session, token)
    return '', 204


@auth_bp.route('/sign-up', methods=['POST'])
def sign_up():
    data = _json_body()
    email = validate_email(data.get('email'))
    password = validate_password(data.get('password'))

    with get_session() as session:
        profile = auth_service.sign_up(session, email, password, data.get('metadata'))
        session.flush()
        body = {'user': profile.to_dict()}

    return jsonify(body), 201


@auth_bp.route('/session', methods=['GET'])
@require_session
def current_session():
    with SessionLocal() as session:
        profile = session.get(UserProfile, g.user_id)
        user = profile.to_dict() if profile else {'id': g.user_id}

    return jsonify({
        'user': user,
        'roles': g.roles,
    })


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    data = _json_body()
    email = validate_email(data.get('email'))

    with get_session() as session:
        auth_service.request_password_reset(session, email, data.get('redirect_to'))

    return jsonify({'success': True})
