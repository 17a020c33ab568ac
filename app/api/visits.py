"""
Visits API Blueprint

Field visits with products, expenses, customer signature and invoicing.
Field service employees only see the visits assigned to them.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import (
    API_ERRORS, arg_date, file_response, get_email_service, get_storage,
    json_body, language_arg, list_args, repository, server_error
)
from database.connection import get_db_session
from services.visit_repository import VisitRepository
from validators import ValidationError

logger = logging.getLogger(__name__)

visits_bp = Blueprint('visits_bp', __name__)


@visits_bp.route('/api/visits', methods=['GET', 'POST'])
@module_required('visits')
def handle_visits():
    """List visits (search, status, category, employee, date range) or create one"""
    try:
        with get_db_session() as db:
            repo = repository(VisitRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_visits(
                    search=request.args.get('search'),
                    status=request.args.get('status'),
                    category=request.args.get('category'),
                    employee_id=request.args.get('employee_id'),
                    start_date=arg_date('start_date'),
                    end_date=arg_date('end_date'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            result = repo.save_visit(json_body(), email_service=get_email_service())
            return jsonify({'success': True, **result}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling visits", e)


@visits_bp.route('/api/visits/<int:visit_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('visits')
def handle_visit(visit_id):
    try:
        with get_db_session() as db:
            repo = repository(VisitRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'visit': repo.get_visit(visit_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, **repo.save_visit(json_body(), visit_id)})

            repo.delete_visit(visit_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling visit {visit_id}", e)


@visits_bp.route('/api/visits/<int:visit_id>/copy', methods=['POST'])
@module_required('visits')
def copy_visit(visit_id):
    try:
        with get_db_session() as db:
            visit = repository(VisitRepository, db, get_current_user()).copy_visit(visit_id)
        return jsonify({'success': True, 'visit': visit}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying visit {visit_id}", e)


# ============================================================================
# SIGNATURE
# ============================================================================

@visits_bp.route('/api/visits/<int:visit_id>/sign', methods=['POST'])
@module_required('visits')
def sign_visit(visit_id):
    """
    Store the customer's signature and complete the visit.

    Body: {"signature": "data:image/png;base64,...", "visit": {pending edits}}
    or a multipart upload in field 'signature'.
    """
    try:
        upload = request.files.get('signature')
        data = {} if upload else json_body()
        signature = upload.read() if upload else data.get('signature')
        if not signature:
            raise ValidationError("Signature image is required", 'signature')

        with get_db_session() as db:
            visit = repository(VisitRepository, db, get_current_user()).sign_visit(
                visit_id, signature, get_storage(), changes=data.get('visit'))
        return jsonify({'success': True, 'visit': visit})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"signing visit {visit_id}", e)


@visits_bp.route('/api/visits/<int:visit_id>/signature', methods=['GET'])
@module_required('visits')
def get_visit_signature(visit_id):
    try:
        with get_db_session() as db:
            image = repository(VisitRepository, db, get_current_user()).get_signature(visit_id, get_storage())
        return file_response(image, f"signature_{visit_id}.png", 'image/png', as_attachment=False)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"loading signature of visit {visit_id}", e)


# ============================================================================
# INVOICE, REMINDER, SUMMARY
# ============================================================================

@visits_bp.route('/api/visits/<int:visit_id>/invoice', methods=['POST'])
@module_required('visits')
def create_invoice_from_visit(visit_id):
    try:
        with get_db_session() as db:
            invoice = repository(VisitRepository, db, get_current_user()).create_invoice(visit_id)
        return jsonify({'success': True, 'invoice': invoice}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"creating invoice from visit {visit_id}", e)


@visits_bp.route('/api/visits/<int:visit_id>/reminder', methods=['POST'])
@module_required('visits')
def send_visit_reminder(visit_id):
    try:
        with get_db_session() as db:
            result = repository(VisitRepository, db, get_current_user()).send_reminder(
                visit_id, get_email_service(), language_arg())
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"sending reminder for visit {visit_id}", e)


@visits_bp.route('/api/visits/<int:visit_id>/summary', methods=['GET', 'POST'])
@module_required('visits')
def visit_summary(visit_id):
    """GET downloads the summary PDF, POST mails it to the customer"""
    try:
        with get_db_session() as db:
            repo = repository(VisitRepository, db, get_current_user())
            if request.method == 'POST':
                result = repo.send_summary(visit_id, get_email_service(), language_arg(), get_storage())
                return jsonify({'success': True, **result})

            filename, pdf = repo.render_summary_pdf(visit_id, language_arg(), get_storage())
        return file_response(pdf, filename, 'application/pdf')
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling summary of visit {visit_id}", e)
