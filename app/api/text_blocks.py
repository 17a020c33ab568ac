"""
Text Blocks API Blueprint

Reusable text snippets for invoices, quotes and visits. Rendering resolves
{customer.name} or [document.number] style placeholders for one document.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, login_required, module_required
from app.utils.helpers import API_ERRORS, arg_int, json_body, repository, server_error
from database.connection import get_db_session
from services.text_block_repository import TextBlockRepository

logger = logging.getLogger(__name__)

text_blocks_bp = Blueprint('text_blocks_bp', __name__)


@text_blocks_bp.route('/api/text-blocks', methods=['GET'])
@login_required
def list_text_blocks():
    """Readable from every document editor; ?applicable_to=invoice|quote|visit"""
    try:
        with get_db_session() as db:
            blocks = repository(TextBlockRepository, db, get_current_user()).list_text_blocks(
                request.args.get('applicable_to'))
        return jsonify({'success': True, 'text_blocks': blocks})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing text blocks", e)


@text_blocks_bp.route('/api/text-blocks', methods=['POST'])
@module_required('text_blocks')
def create_text_block():
    try:
        with get_db_session() as db:
            block = repository(TextBlockRepository, db, get_current_user()).create_text_block(json_body())
        return jsonify({'success': True, 'text_block': block}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("creating text block", e)


@text_blocks_bp.route('/api/text-blocks/<block_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('text_blocks')
def handle_text_block(block_id):
    try:
        with get_db_session() as db:
            repo = repository(TextBlockRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'text_block': repo.get_text_block(block_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, 'text_block': repo.update_text_block(block_id, json_body())})

            repo.delete_text_block(block_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling text block {block_id}", e)


@text_blocks_bp.route('/api/text-blocks/<block_id>/render', methods=['GET'])
@login_required
def render_text_block(block_id):
    """?document_type=invoice&document_id=12&customer_id=3"""
    try:
        document_type = request.args.get('document_type')
        document_id = request.args.get('document_id') or None
        with get_db_session() as db:
            block = repository(TextBlockRepository, db, get_current_user()).render_text_block(
                block_id, document_type, document_id, arg_int('customer_id'))
        return jsonify({'success': True, 'text_block': block})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"rendering text block {block_id}", e)
