"""
Invoices API Blueprint

- /api/invoices - list and create
- /api/invoices/<id> - detail, update, delete
- /api/invoices/<id>/copy, /pdf, /email, /payment-link, /receipt
- /api/invoices/mark-overdue - sent invoices past due become overdue
- /api/invoices/items/add-products, /api/invoices/items/add-expenses - editor helpers
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import (
    API_ERRORS, arg_int, file_response, get_email_service, get_payment_service, get_storage,
    json_body, language_arg, list_args, repository, server_error
)
from database.connection import get_db_session
from services.billing_repository import InvoiceRepository

logger = logging.getLogger(__name__)

invoices_bp = Blueprint('invoices_bp', __name__)


def invoice_repository(db, user):
    return repository(InvoiceRepository, db, user, payment_service=get_payment_service())


# ============================================================================
# INVOICES
# ============================================================================

@invoices_bp.route('/api/invoices', methods=['GET', 'POST'])
@module_required('invoices')
def handle_invoices():
    """List invoices (search by number or customer name, status filter) or create one"""
    try:
        with get_db_session() as db:
            repo = invoice_repository(db, get_current_user())
            if request.method == 'GET':
                result = repo.list_invoices(
                    search=request.args.get('search'),
                    status=request.args.get('status'),
                    customer_id=arg_int('customer_id'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            result = repo.save_invoice(json_body())
            return jsonify({'success': True, **result}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling invoices", e)


@invoices_bp.route('/api/invoices/<int:invoice_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('invoices')
def handle_invoice(invoice_id):
    try:
        with get_db_session() as db:
            repo = invoice_repository(db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'invoice': repo.get_invoice(invoice_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, **repo.save_invoice(json_body(), invoice_id)})

            repo.delete_invoice(invoice_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling invoice {invoice_id}", e)


@invoices_bp.route('/api/invoices/<int:invoice_id>/copy', methods=['POST'])
@module_required('invoices')
def copy_invoice(invoice_id):
    try:
        with get_db_session() as db:
            invoice = invoice_repository(db, get_current_user()).copy_invoice(invoice_id)
        return jsonify({'success': True, 'invoice': invoice}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying invoice {invoice_id}", e)


@invoices_bp.route('/api/invoices/mark-overdue', methods=['POST'])
@module_required('invoices')
def mark_invoices_overdue():
    try:
        with get_db_session() as db:
            count = invoice_repository(db, get_current_user()).mark_overdue()
        return jsonify({'success': True, 'updated': count})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("marking invoices overdue", e)


# ============================================================================
# PDF, E-MAIL, PAYMENTS
# ============================================================================

@invoices_bp.route('/api/invoices/<int:invoice_id>/pdf', methods=['GET'])
@module_required('invoices')
def download_invoice_pdf(invoice_id):
    """Invoice PDF in German (?language=de) or Albanian (?language=al)"""
    try:
        with get_db_session() as db:
            filename, pdf = invoice_repository(db, get_current_user()).render_pdf(
                invoice_id, language_arg(), get_storage())
        return file_response(pdf, filename, 'application/pdf')
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"rendering invoice {invoice_id}", e)


@invoices_bp.route('/api/invoices/<int:invoice_id>/email', methods=['POST'])
@module_required('invoices')
def email_invoice(invoice_id):
    try:
        data = json_body()
        with get_db_session() as db:
            result = invoice_repository(db, get_current_user()).send_by_email(
                invoice_id, get_email_service(), language_arg(), get_storage(), message=data.get('message'))
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"sending invoice {invoice_id}", e)


@invoices_bp.route('/api/invoices/<int:invoice_id>/payment-link', methods=['POST'])
@module_required('invoices')
def create_invoice_payment_link(invoice_id):
    try:
        with get_db_session() as db:
            link = invoice_repository(db, get_current_user()).create_payment_link(invoice_id)
        return jsonify({'success': True, **link})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"creating payment link for invoice {invoice_id}", e)


@invoices_bp.route('/api/invoices/<int:invoice_id>/receipt', methods=['GET'])
@module_required('invoices')
def get_invoice_receipt(invoice_id):
    try:
        with get_db_session() as db:
            url = invoice_repository(db, get_current_user()).get_receipt_url(invoice_id)
        return jsonify({'success': True, 'url': url})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"looking up receipt of invoice {invoice_id}", e)


# ============================================================================
# EDITOR HELPERS
# ============================================================================

@invoices_bp.route('/api/invoices/items/add-products', methods=['POST'])
@module_required('invoices')
def add_products_to_invoice_items():
    """{"items": [...], "product_ids": [...]} -> merged item list"""
    try:
        data = json_body()
        with get_db_session() as db:
            items = invoice_repository(db, get_current_user()).add_products(
                data.get('items') or [], data.get('product_ids') or [])
        return jsonify({'success': True, 'items': items})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("adding products to invoice items", e)


@invoices_bp.route('/api/invoices/items/add-expenses', methods=['POST'])
@module_required('invoices')
def add_expenses_to_invoice_items():
    try:
        data = json_body()
        with get_db_session() as db:
            items = invoice_repository(db, get_current_user()).add_expenses(
                data.get('items') or [], data.get('expense_ids') or [])
        return jsonify({'success': True, 'items': items})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("adding expenses to invoice items", e)
