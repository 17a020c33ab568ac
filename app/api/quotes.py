"""
Quotes API Blueprint

Quotes share the invoice editor; ?status=expired lists sent quotes whose
validity date has passed.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import (
    API_ERRORS, arg_int, file_response, get_email_service, get_storage,
    json_body, language_arg, list_args, repository, server_error
)
from database.connection import get_db_session
from services.billing_repository import QuoteRepository

logger = logging.getLogger(__name__)

quotes_bp = Blueprint('quotes_bp', __name__)


@quotes_bp.route('/api/quotes', methods=['GET', 'POST'])
@module_required('quotes')
def handle_quotes():
    try:
        with get_db_session() as db:
            repo = repository(QuoteRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_quotes(
                    search=request.args.get('search'),
                    status=request.args.get('status'),
                    customer_id=arg_int('customer_id'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            result = repo.save_quote(json_body())
            return jsonify({'success': True, **result}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling quotes", e)


@quotes_bp.route('/api/quotes/<int:quote_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('quotes')
def handle_quote(quote_id):
    try:
        with get_db_session() as db:
            repo = repository(QuoteRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'quote': repo.get_quote(quote_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, **repo.save_quote(json_body(), quote_id)})

            repo.delete_quote(quote_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling quote {quote_id}", e)


@quotes_bp.route('/api/quotes/<int:quote_id>/copy', methods=['POST'])
@module_required('quotes')
def copy_quote(quote_id):
    try:
        with get_db_session() as db:
            quote = repository(QuoteRepository, db, get_current_user()).copy_quote(quote_id)
        return jsonify({'success': True, 'quote': quote}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying quote {quote_id}", e)


@quotes_bp.route('/api/quotes/<int:quote_id>/convert', methods=['POST'])
@module_required('quotes')
def convert_quote_to_invoice(quote_id):
    """Create a draft invoice from the quote and accept the quote"""
    try:
        with get_db_session() as db:
            invoice = repository(QuoteRepository, db, get_current_user()).convert_to_invoice(quote_id)
        return jsonify({'success': True, 'invoice': invoice}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"converting quote {quote_id}", e)


@quotes_bp.route('/api/quotes/<int:quote_id>/pdf', methods=['GET'])
@module_required('quotes')
def download_quote_pdf(quote_id):
    try:
        with get_db_session() as db:
            filename, pdf = repository(QuoteRepository, db, get_current_user()).render_pdf(
                quote_id, language_arg(), get_storage())
        return file_response(pdf, filename, 'application/pdf')
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"rendering quote {quote_id}", e)


@quotes_bp.route('/api/quotes/<int:quote_id>/email', methods=['POST'])
@module_required('quotes')
def email_quote(quote_id):
    try:
        data = json_body()
        with get_db_session() as db:
            result = repository(QuoteRepository, db, get_current_user()).send_by_email(
                quote_id, get_email_service(), language_arg(), get_storage(), message=data.get('message'))
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"sending quote {quote_id}", e)


@quotes_bp.route('/api/quotes/items/add-products', methods=['POST'])
@module_required('quotes')
def add_products_to_quote_items():
    try:
        data = json_body()
        with get_db_session() as db:
            items = repository(QuoteRepository, db, get_current_user()).add_products(
                data.get('items') or [], data.get('product_ids') or [])
        return jsonify({'success': True, 'items': items})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("adding products to quote items", e)


@quotes_bp.route('/api/quotes/items/add-expenses', methods=['POST'])
@module_required('quotes')
def add_expenses_to_quote_items():
    try:
        data = json_body()
        with get_db_session() as db:
            items = repository(QuoteRepository, db, get_current_user()).add_expenses(
                data.get('items') or [], data.get('expense_ids') or [])
        return jsonify({'success': True, 'items': items})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("adding expenses to quote items", e)
