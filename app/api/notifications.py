"""
Notifications API Blueprint

The signed-in user's notifications, translated into ?language=de|al.
"""

import logging
from flask import Blueprint, jsonify

from auth import get_current_user, login_required
from app.utils.helpers import API_ERRORS, arg_bool, arg_int, language_arg, server_error
from database.connection import get_db_session
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

notifications_bp = Blueprint('notifications_bp', __name__)


@notifications_bp.route('/api/notifications', methods=['GET'])
@login_required
def list_notifications():
    try:
        user = get_current_user()
        with get_db_session() as db:
            service = get_notification_service(db, user.get('org_id'))
            notifications = service.get_notifications(
                user['id'],
                unread_only=arg_bool('unread_only', False),
                limit=min(arg_int('limit', 50), 200),
                language=language_arg(),
            )
            unread = service.unread_count(user['id'])
        return jsonify({'success': True, 'notifications': notifications, 'unread_count': unread})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing notifications", e)


@notifications_bp.route('/api/notifications/unread-count', methods=['GET'])
@login_required
def get_unread_count():
    try:
        user = get_current_user()
        with get_db_session() as db:
            count = get_notification_service(db, user.get('org_id')).unread_count(user['id'])
        return jsonify({'success': True, 'unread_count': count})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("counting notifications", e)


@notifications_bp.route('/api/notifications/<notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    try:
        user = get_current_user()
        with get_db_session() as db:
            found = get_notification_service(db, user.get('org_id')).mark_as_read(notification_id, user['id'])
        if not found:
            return jsonify({'success': False, 'error': 'Notification not found'}), 404
        return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"marking notification {notification_id} read", e)


@notifications_bp.route('/api/notifications/read-all', methods=['POST'])
@login_required
def mark_all_notifications_read():
    try:
        user = get_current_user()
        with get_db_session() as db:
            count = get_notification_service(db, user.get('org_id')).mark_all_as_read(user['id'])
        return jsonify({'success': True, 'updated': count})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("marking notifications read", e)
