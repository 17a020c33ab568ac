"""
Audit Log API Blueprint

Read access to the changelog written by the SQLAlchemy flush hook.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import API_ERRORS, arg_date, arg_int, org_scope, server_error
from database.connection import get_db_session
from services.audit_log import ACTIONS, AuditLogRepository

logger = logging.getLogger(__name__)

audit_log_bp = Blueprint('audit_log_bp', __name__)


@audit_log_bp.route('/api/audit-log', methods=['GET'])
@module_required('audit_log')
def list_audit_log():
    """?user_email=&action=INSERT|UPDATE|DELETE&table_name=&start_date=&end_date=&page="""
    try:
        with get_db_session() as db:
            repo = AuditLogRepository(db, org_scope(get_current_user()))
            result = repo.query(
                user_email=request.args.get('user_email'),
                action=request.args.get('action'),
                table_name=request.args.get('table_name'),
                start_date=arg_date('start_date'),
                end_date=arg_date('end_date'),
                page=arg_int('page', 1),
            )
            result['tables'] = repo.table_names()
            result['actions'] = list(ACTIONS)
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("querying audit log", e)


@audit_log_bp.route('/api/audit-log/<table_name>/<record_id>', methods=['GET'])
@module_required('audit_log')
def get_record_history(table_name, record_id):
    try:
        with get_db_session() as db:
            history = AuditLogRepository(db, org_scope(get_current_user())).record_history(table_name, record_id)
        return jsonify({'success': True, 'history': history})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"loading history of {table_name} {record_id}", e)
