"""
Content API Blueprint

Help texts per page and the public legal pages (AGB, Datenschutz).
Editing is reserved for super admins.
"""

import logging
from flask import Blueprint, jsonify

from auth import get_current_user, login_required, super_admin_required
from app.utils.helpers import API_ERRORS, json_body, language_arg, server_error
from database.connection import get_db_session
from services import content_service
from validators import ValidationError

logger = logging.getLogger(__name__)

content_bp = Blueprint('content_bp', __name__)


# ============================================================================
# HELP
# ============================================================================

@content_bp.route('/api/help/<page_key>', methods=['GET'])
@login_required
def get_help(page_key):
    try:
        with get_db_session() as db:
            content = content_service.get_help(db, page_key, language_arg())
        return jsonify({'success': True, 'page_key': page_key, 'content': content})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"loading help for {page_key}", e)


@content_bp.route('/api/help', methods=['GET'])
@super_admin_required
def list_help():
    try:
        with get_db_session() as db:
            entries = content_service.list_help(db)
        return jsonify({'success': True, 'entries': entries})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing help content", e)


@content_bp.route('/api/help', methods=['PUT'])
@super_admin_required
def save_help():
    """{"entries": [{"page_key", "content_de", "content_al"}]}"""
    try:
        entries = json_body().get('entries')
        if not isinstance(entries, list):
            raise ValidationError("entries must be a list", 'entries')
        with get_db_session() as db:
            saved = content_service.save_help(db, entries, get_current_user())
        return jsonify({'success': True, 'entries': saved})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("saving help content", e)


# ============================================================================
# LEGAL
# ============================================================================

@content_bp.route('/api/legal/<key>', methods=['GET'])
def get_legal(key):
    """Public: agb or datenschutz"""
    try:
        with get_db_session() as db:
            content = content_service.get_legal(db, key)
        return jsonify({'success': True, 'legal': content})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"loading legal content {key}", e)


@content_bp.route('/api/legal/<key>', methods=['PUT'])
@super_admin_required
def save_legal(key):
    try:
        with get_db_session() as db:
            content = content_service.save_legal(db, key, json_body(), get_current_user())
        return jsonify({'success': True, 'legal': content})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"saving legal content {key}", e)
