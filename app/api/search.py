"""
Global Search API Blueprint
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, login_required
from app.utils.helpers import API_ERRORS, repository, server_error
from database.connection import get_db_session
from services.search_service import SearchService

logger = logging.getLogger(__name__)

search_bp = Blueprint('search_bp', __name__)


@search_bp.route('/api/search', methods=['GET'])
@login_required
def global_search():
    """?q=<term>; terms shorter than three characters return empty lists"""
    try:
        with get_db_session() as db:
            results = repository(SearchService, db, get_current_user()).search(request.args.get('q', ''))
        return jsonify({'success': True, 'results': results})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("searching", e)
