"""
Inventory API Blueprint

Products and services with stock tracking.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import API_ERRORS, arg_bool, json_body, list_args, repository, server_error
from database.connection import get_db_session
from services.inventory_repository import InventoryRepository
from validators import to_number

logger = logging.getLogger(__name__)

inventory_bp = Blueprint('inventory_bp', __name__)


@inventory_bp.route('/api/products', methods=['GET', 'POST'])
@module_required('inventory')
def handle_products():
    """List products (search, type, low stock filter) or create one"""
    try:
        with get_db_session() as db:
            repo = repository(InventoryRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_products(
                    search=request.args.get('search'),
                    product_type=request.args.get('type'),
                    low_stock_only=arg_bool('low_stock', False),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            product = repo.create_product(json_body())
            return jsonify({'success': True, 'product': product}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling products", e)


@inventory_bp.route('/api/products/all', methods=['GET'])
@module_required('inventory')
def list_all_products():
    try:
        with get_db_session() as db:
            products = repository(InventoryRepository, db, get_current_user()).all_products()
        return jsonify({'success': True, 'products': products})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing all products", e)


@inventory_bp.route('/api/products/<int:product_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('inventory')
def handle_product(product_id):
    try:
        with get_db_session() as db:
            repo = repository(InventoryRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'product': repo.get_product(product_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, 'product': repo.update_product(product_id, json_body())})

            repo.delete_product(product_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling product {product_id}", e)


@inventory_bp.route('/api/products/<int:product_id>/copy', methods=['POST'])
@module_required('inventory')
def copy_product(product_id):
    try:
        with get_db_session() as db:
            product = repository(InventoryRepository, db, get_current_user()).copy_product(product_id)
        return jsonify({'success': True, 'product': product}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying product {product_id}", e)


@inventory_bp.route('/api/products/<int:product_id>/stock', methods=['POST'])
@module_required('inventory')
def adjust_product_stock(product_id):
    """Manual stock correction: {"delta": <int>}"""
    try:
        delta = int(to_number(json_body().get('delta'), 'delta'))
        with get_db_session() as db:
            product = repository(InventoryRepository, db, get_current_user()).adjust_stock(product_id, delta)
        return jsonify({'success': True, 'product': product})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"adjusting stock of product {product_id}", e)
