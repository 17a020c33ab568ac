"""
Customers API Blueprint

- /api/customers - list (search, sort, pagination) and create
- /api/customers/all - id/name/number list for pickers
- /api/customers/<id> - detail, update, delete
- /api/customers/<id>/notes - notes update
- /api/customers/<id>/timeline - activity timeline
- /api/customers/<id>/documents - document storage
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import (
    API_ERRORS, arg_bool, file_response, get_storage, json_body, list_args, repository, server_error
)
from database.connection import get_db_session
from services.crm_repository import CRMRepository
from validators import ValidationError, validate_document_upload

logger = logging.getLogger(__name__)

# Create blueprint
customers_bp = Blueprint('customers_bp', __name__)


# ============================================================================
# CUSTOMERS
# ============================================================================

@customers_bp.route('/api/customers', methods=['GET', 'POST'])
@module_required('customers')
def handle_customers():
    """List customers or create one"""
    try:
        user = get_current_user()
        with get_db_session() as db:
            repo = repository(CRMRepository, db, user)
            if request.method == 'GET':
                result = repo.list_customers(search=request.args.get('search'), **list_args())
                return jsonify({'success': True, **result})

            customer = repo.create_customer(json_body())
            return jsonify({'success': True, 'customer': customer}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling customers", e)


@customers_bp.route('/api/customers/all', methods=['GET'])
@module_required('customers')
def list_all_customers():
    try:
        with get_db_session() as db:
            customers = repository(CRMRepository, db, get_current_user()).all_customers()
        return jsonify({'success': True, 'customers': customers})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing customer names", e)


@customers_bp.route('/api/customers/<int:customer_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('customers')
def handle_customer(customer_id):
    """Single customer management"""
    try:
        with get_db_session() as db:
            repo = repository(CRMRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'customer': repo.get_customer(customer_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, 'customer': repo.update_customer(customer_id, json_body())})

            repo.delete_customer(customer_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling customer {customer_id}", e)


@customers_bp.route('/api/customers/<int:customer_id>/notes', methods=['PUT'])
@module_required('customers')
def update_customer_notes(customer_id):
    try:
        notes = json_body().get('notes')
        with get_db_session() as db:
            customer = repository(CRMRepository, db, get_current_user()).update_notes(customer_id, notes)
        return jsonify({'success': True, 'customer': customer})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"updating notes of customer {customer_id}", e)


@customers_bp.route('/api/customers/<int:customer_id>/timeline', methods=['GET'])
@module_required('customers')
def get_customer_timeline(customer_id):
    """Visits, documents and e-mails of a customer, newest first"""
    try:
        include_documents = arg_bool('include_documents', False)
        with get_db_session() as db:
            timeline = repository(CRMRepository, db, get_current_user()).get_timeline(
                customer_id, include_documents=include_documents)
        return jsonify({'success': True, 'timeline': timeline})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"building timeline of customer {customer_id}", e)


# ============================================================================
# DOCUMENTS
# ============================================================================

@customers_bp.route('/api/customers/<int:customer_id>/documents', methods=['GET', 'POST'])
@module_required('customers')
def handle_customer_documents(customer_id):
    """List or upload customer documents (multipart field 'file')"""
    try:
        with get_db_session() as db:
            repo = repository(CRMRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'documents': repo.list_documents(customer_id)})

            upload = request.files.get('file')
            is_valid, error, filename = validate_document_upload(upload)
            if not is_valid:
                raise ValidationError(error, 'file')
            document = repo.upload_document(customer_id, filename, upload.read(), get_storage(),
                                            mime_type=upload.mimetype)
            return jsonify({'success': True, 'document': document}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling documents of customer {customer_id}", e)


@customers_bp.route('/api/documents/<document_id>', methods=['GET', 'DELETE'])
@module_required('customers')
def handle_document(document_id):
    """Download or delete a stored document"""
    try:
        with get_db_session() as db:
            repo = repository(CRMRepository, db, get_current_user())
            if request.method == 'DELETE':
                repo.delete_document(document_id, get_storage())
                return jsonify({'success': True})

            document, content = repo.download_document(document_id, get_storage())
        return file_response(content, document['file_name'], document['mime_type'])
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling document {document_id}", e)
