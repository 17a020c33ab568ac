"""
Helper functions shared by the API blueprints: request parsing, service
construction from the app config and file responses.
"""

import io
import logging
from typing import Any, Dict, Optional, Tuple

from flask import current_app, jsonify, request, send_file

from services.email_service import EmailService
from services.errors import PermissionDeniedError, ServiceError
from services.payment_service import PaymentService
from services.storage import LocalStorage
from validators import ValidationError, parse_date

logger = logging.getLogger(__name__)

# Raised by services and answered by the app-wide error handlers
API_ERRORS = (ServiceError, ValidationError)

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def json_body() -> Dict[str, Any]:
    """
    The request's JSON object; an empty body is an empty dict.

    Raises:
        ValidationError: If the body is JSON but not an object
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def arg_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = request.args.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", name)


def arg_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    value = request.args.get(name)
    if value in (None, ''):
        return default
    return value.lower() in TRUE_VALUES


def arg_date(name: str):
    return parse_date(request.args.get(name), name)


def list_args(default_sort: str = None, default_order: str = None) -> Dict[str, Any]:
    """page, per_page, sort_by and sort_order from the query string."""
    args = {
        'page': arg_int('page', 1),
        'per_page': arg_int('per_page', current_app.config.get('ITEMS_PER_PAGE', 25)),
    }
    sort_by = request.args.get('sort_by') or default_sort
    sort_order = request.args.get('sort_order') or default_order
    if sort_by:
        args['sort_by'] = sort_by
    if sort_order:
        args['sort_order'] = sort_order
    return args


def language_arg() -> str:
    language = request.args.get('language') or current_app.config.get('DEFAULT_LANGUAGE', 'de')
    return language if language in ('de', 'al') else 'de'


def org_scope(user: Dict) -> Optional[str]:
    """
    Organization the user works in.

    Only super admins may act without an organization; they read across
    organizations.
    """
    org_id = user.get('org_id')
    if not org_id and user.get('role') != 'super_admin':
        raise PermissionDeniedError("You are not a member of an organization")
    return org_id


def repository(repo_class, db, user: Dict, **kwargs):
    """Construct a tenant repository for the current user."""
    return repo_class(db, org_scope(user), user, **kwargs)


def get_storage() -> LocalStorage:
    return LocalStorage.from_config(current_app.config)


def get_email_service() -> EmailService:
    return EmailService(current_app.config)


def get_payment_service() -> PaymentService:
    return PaymentService(current_app.config)


def file_response(data, filename: str, mimetype: str, as_attachment: bool = True):
    """Send bytes (or text, encoded as UTF-8) as a download."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return send_file(io.BytesIO(data), mimetype=mimetype, as_attachment=as_attachment,
                     download_name=filename)


def server_error(action: str, error: Exception) -> Tuple[Any, int]:
    """Log an unexpected failure and answer with the generic 500 JSON."""
    logger.error(f"Error {action}: {error}", exc_info=True)
    return jsonify({'success': False, 'error': str(error)}), 500
