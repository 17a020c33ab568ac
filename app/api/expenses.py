"""
Expenses API Blueprint
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import API_ERRORS, arg_date, json_body, list_args, repository, server_error
from database.connection import get_db_session
from services.expense_repository import ExpenseRepository

logger = logging.getLogger(__name__)

expenses_bp = Blueprint('expenses_bp', __name__)


@expenses_bp.route('/api/expenses', methods=['GET', 'POST'])
@module_required('expenses')
def handle_expenses():
    """List expenses (search, category, date range) or create one"""
    try:
        with get_db_session() as db:
            repo = repository(ExpenseRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_expenses(
                    search=request.args.get('search'),
                    category=request.args.get('category'),
                    start_date=arg_date('start_date'),
                    end_date=arg_date('end_date'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            expense = repo.create_expense(json_body())
            return jsonify({'success': True, 'expense': expense}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling expenses", e)


@expenses_bp.route('/api/expenses/categories', methods=['GET'])
@module_required('expenses')
def list_expense_categories():
    """Distinct categories in use, for the category picker and DATEV mapping"""
    try:
        with get_db_session() as db:
            categories = repository(ExpenseRepository, db, get_current_user()).categories()
        return jsonify({'success': True, 'categories': categories})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing expense categories", e)


@expenses_bp.route('/api/expenses/<int:expense_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('expenses')
def handle_expense(expense_id):
    try:
        with get_db_session() as db:
            repo = repository(ExpenseRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'expense': repo.get_expense(expense_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, 'expense': repo.update_expense(expense_id, json_body())})

            repo.delete_expense(expense_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling expense {expense_id}", e)


@expenses_bp.route('/api/expenses/<int:expense_id>/copy', methods=['POST'])
@module_required('expenses')
def copy_expense(expense_id):
    try:
        with get_db_session() as db:
            expense = repository(ExpenseRepository, db, get_current_user()).copy_expense(expense_id)
        return jsonify({'success': True, 'expense': expense}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying expense {expense_id}", e)
