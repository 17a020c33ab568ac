"""
Authentication Routes Blueprint

Handles login/logout, sign-up, the current user's profile and passwords.
"""

from flask import Blueprint, current_app, request, jsonify
import logging

import auth
from app.utils.helpers import API_ERRORS, get_email_service, json_body, server_error
from database.connection import get_db_session
from database.models import Organization
from services.users_repository import UsersRepository

logger = logging.getLogger(__name__)

# Create blueprint
auth_bp = Blueprint('auth_bp', __name__)


def _session_payload(user):
    """User, organization name and module list for the client."""
    with get_db_session() as db:
        organization = db.get(Organization, user['org_id']) if user.get('org_id') else None
        org_name = organization.name if organization else None
    return {
        'user': {**user, 'org_name': org_name},
        'modules': auth.user_modules(user),
    }


# ============================================================================
# LOGIN/LOGOUT ROUTES
# ============================================================================

@auth_bp.route('/api/auth/login', methods=['POST'])
def api_login():
    """API endpoint for user login"""
    try:
        data = json_body()
        email = data.get('email')
        password = data.get('password')

        if not email or not password:
            return jsonify({'success': False, 'error': 'E-mail and password required'}), 400

        with get_db_session() as db:
            user = UsersRepository(db, None).authenticate(email, password)

        if user is None:
            return jsonify({'success': False, 'error': 'Invalid e-mail or password'}), 401

        auth.login_user(user)
        return jsonify({'success': True, **_session_payload(user)})

    except API_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        return jsonify({'success': False, 'error': 'Login failed'}), 500


@auth_bp.route('/api/auth/logout', methods=['POST'])
def api_logout():
    """API endpoint for user logout"""
    auth.logout_user()
    return jsonify({'success': True})


@auth_bp.route('/api/auth/register', methods=['POST'])
def api_register():
    """
    Sign up with an organization invitation code or a pending e-mail invitation.

    Body: {"email", "password", "full_name", "invitation_code"}
    """
    try:
        data = json_body()
        with get_db_session() as db:
            user = UsersRepository(db, None).register(
                data.get('email'), data.get('password'), data.get('full_name'),
                invitation_code=(data.get('invitation_code') or '').strip() or None,
            )

        auth.login_user(user)
        return jsonify({'success': True, **_session_payload(user)}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("registering user", e)


# ============================================================================
# CURRENT USER
# ============================================================================

@auth_bp.route('/api/auth/me', methods=['GET'])
@auth.login_required
def api_me():
    try:
        return jsonify({'success': True, **_session_payload(auth.get_current_user())})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading current user", e)


@auth_bp.route('/api/auth/profile', methods=['PUT'])
@auth.login_required
def api_update_profile():
    """Update own name and phone"""
    try:
        user = auth.get_current_user()
        with get_db_session() as db:
            updated = UsersRepository(db, user.get('org_id'), user).update_profile(json_body())
        return jsonify({'success': True, 'user': updated})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("updating profile", e)


@auth_bp.route('/api/auth/change-password', methods=['POST'])
@auth.login_required
def api_change_password():
    try:
        user = auth.get_current_user()
        data = json_body()
        with get_db_session() as db:
            UsersRepository(db, user.get('org_id'), user).change_password(
                data.get('current_password'), data.get('new_password'))
        return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("changing password", e)


@auth_bp.route('/api/auth/forgot-password', methods=['POST'])
def api_forgot_password():
    """Mail a reset link; the answer is the same for unknown addresses"""
    try:
        email = json_body().get('email')
        if not email:
            return jsonify({'success': False, 'error': 'E-mail required'}), 400
        with get_db_session() as db:
            UsersRepository(db, None).request_password_reset(
                email, get_email_service(), current_app.config.get('PUBLIC_APP_URL', ''))
        return jsonify({'success': True,
                        'message': 'If the address is registered, a reset link has been sent.'})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("requesting password reset", e)


@auth_bp.route('/api/auth/reset-password', methods=['POST'])
def api_reset_password():
    """Redeem a reset link token and set the new password"""
    try:
        data = json_body()
        with get_db_session() as db:
            UsersRepository(db, None).reset_password_with_token(data.get('token'), data.get('password'))
        return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("resetting password", e)
