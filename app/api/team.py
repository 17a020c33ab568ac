"""
Team API Blueprint

Members and e-mail invitations of the signed-in user's organization, plus
the invitations addressed to the signed-in user.
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from auth import get_current_user, login_required, module_required
from app.utils.helpers import API_ERRORS, get_email_service, json_body, repository, server_error
from database.connection import get_db_session
from services.users_repository import UsersRepository

logger = logging.getLogger(__name__)

team_bp = Blueprint('team_bp', __name__)


# ============================================================================
# MEMBERS
# ============================================================================

@team_bp.route('/api/team', methods=['GET'])
@module_required('team')
def get_team():
    """Members, pending invitations and remaining user slots"""
    try:
        with get_db_session() as db:
            overview = repository(UsersRepository, db, get_current_user()).team_overview()
        return jsonify({'success': True, **overview})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading team", e)


@team_bp.route('/api/team/members/<member_id>', methods=['PUT', 'DELETE'])
@module_required('team')
def handle_member(member_id):
    """Edit name, phone or role; DELETE removes the member from the organization"""
    try:
        with get_db_session() as db:
            repo = repository(UsersRepository, db, get_current_user())
            if request.method == 'PUT':
                return jsonify({'success': True, 'member': repo.update_member(member_id, json_body())})

            repo.remove_member(member_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling member {member_id}", e)


@team_bp.route('/api/team/members/<member_id>/reset-password', methods=['POST'])
@module_required('team')
def reset_member_password(member_id):
    try:
        with get_db_session() as db:
            result = repository(UsersRepository, db, get_current_user()).reset_member_password(
                member_id, get_email_service())
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"resetting password of member {member_id}", e)


# ============================================================================
# INVITATIONS
# ============================================================================

@team_bp.route('/api/team/invitations', methods=['GET', 'POST'])
@module_required('team')
def handle_invitations():
    try:
        with get_db_session() as db:
            repo = repository(UsersRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'invitations': repo.list_invitations()})

            data = json_body()
            result = repo.invite(data.get('email'), data.get('role'), get_email_service(),
                                 current_app.config.get('PUBLIC_APP_URL', ''))
            return jsonify({'success': True, **result}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling team invitations", e)


@team_bp.route('/api/team/invitations/<invitation_id>', methods=['DELETE'])
@module_required('team')
def cancel_invitation(invitation_id):
    try:
        with get_db_session() as db:
            repository(UsersRepository, db, get_current_user()).cancel_invitation(invitation_id)
        return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"cancelling invitation {invitation_id}", e)


@team_bp.route('/api/invitations/mine', methods=['GET'])
@login_required
def my_invitations():
    """Pending invitations for the signed-in e-mail address, also for users without an organization"""
    try:
        user = get_current_user()
        with get_db_session() as db:
            invitations = UsersRepository(db, user.get('org_id'), user).my_invitations()
        return jsonify({'success': True, 'invitations': invitations})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing own invitations", e)


@team_bp.route('/api/invitations/<invitation_id>/respond', methods=['POST'])
@login_required
def respond_to_invitation(invitation_id):
    """{"accept": true|false}"""
    try:
        user = get_current_user()
        accept = bool(json_body().get('accept', True))
        with get_db_session() as db:
            result = UsersRepository(db, user.get('org_id'), user).respond_to_invitation(invitation_id, accept)
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"responding to invitation {invitation_id}", e)
