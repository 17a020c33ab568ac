"""
Authentication & authorization for ZoguOne.

Session-based login backed by the users table. Routes are protected with
login_required, roles_required and module_required; the current user is
loaded once per request and cached on flask.g.
"""

import logging
from functools import wraps
from typing import Dict, Optional

from flask import g, jsonify, session

from database.connection import get_db_session
from database.models import User
from services.permissions import get_role_modules, has_module

logger = logging.getLogger(__name__)

ROLES = {
    'super_admin': 'Super Admin',
    'admin': 'Admin',
    'key_user': 'Key User',
    'field_service_employee': 'Field Service Employee',
}


def login_user(user: Dict):
    """Set user session"""
    session.clear()
    session['user_id'] = user['id']
    session['user_email'] = user['email']
    session.permanent = True
    g.current_user = user
    g.audit_user_email = user['email']


def logout_user():
    """Clear user session"""
    session.clear()
    g.pop('current_user', None)


def is_authenticated() -> bool:
    return get_current_user() is not None


def get_current_user() -> Optional[Dict]:
    """
    Currently logged in user as a dict, or None.

    Deactivated or deleted accounts end the session.
    """
    if 'current_user' in g:
        return g.current_user

    user_id = session.get('user_id')
    if not user_id:
        return None

    with get_db_session() as db:
        user = db.get(User, user_id)
        data = user.to_dict() if user is not None and user.is_active else None

    if data is None:
        logger.warning(f"Session for unknown or inactive user {user_id} cleared")
        session.clear()
    else:
        g.audit_user_email = data['email']
    g.current_user = data
    return data


def user_modules(user: Dict) -> list:
    """Modules the user may open, for the client navigation."""
    with get_db_session() as db:
        return get_role_modules(db, user.get('org_id'), user.get('role'))


def user_has_module(user: Dict, module: str) -> bool:
    with get_db_session() as db:
        return has_module(db, user, module)


# Decorators for route protection
def login_required(f):
    """Decorator to require login for a route"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Decorator to restrict a route to the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return jsonify({'success': False, 'error': 'Authentication required'}), 401
            if user.get('role') not in roles:
                logger.warning(f"User {user['email']} ({user.get('role')}) denied, requires {roles}")
                return jsonify({'success': False, 'error': 'Permission denied'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def module_required(module: str):
    """Decorator to require access to a module of the user's organization"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return jsonify({'success': False, 'error': 'Authentication required'}), 401
            if not user_has_module(user, module):
                logger.warning(f"User {user['email']} denied access to module {module}")
                return jsonify({'success': False, 'error': 'Permission denied', 'required': module}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def super_admin_required(f):
    """Decorator to require the super admin role"""
    return roles_required('super_admin')(f)
