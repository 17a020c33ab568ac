"""
ZoguOne Field Service - Application Package

This package contains the modular backend structure:
- api/: HTTP route handlers (Flask Blueprints)
- utils/: Formatting and request helpers

Business logic lives in the services/ package at the project root and the
app factory in app_init.py.

STORAGE POLICY:
- Production: DATABASE_URL is REQUIRED; the schema is managed by Alembic.
- Development/testing: SQLite is allowed and missing tables are created on startup.
"""

import logging
from importlib import import_module

logger = logging.getLogger(__name__)

BLUEPRINT_MODULES = [
    ('app.api.auth_routes', 'auth_bp'),
    ('app.api.team', 'team_bp'),
    ('app.api.organization', 'organization_bp'),
    ('app.api.customers', 'customers_bp'),
    ('app.api.inventory', 'inventory_bp'),
    ('app.api.expenses', 'expenses_bp'),
    ('app.api.invoices', 'invoices_bp'),
    ('app.api.quotes', 'quotes_bp'),
    ('app.api.visits', 'visits_bp'),
    ('app.api.scheduling', 'scheduling_bp'),
    ('app.api.text_blocks', 'text_blocks_bp'),
    ('app.api.dashboard', 'dashboard_bp'),
    ('app.api.data_exchange', 'data_exchange_bp'),
    ('app.api.audit_log', 'audit_log_bp'),
    ('app.api.notifications', 'notifications_bp'),
    ('app.api.search', 'search_bp'),
    ('app.api.content', 'content_bp'),
]


def validate_storage_policy(config_class=None):
    """
    Validate storage configuration at startup.

    Raises:
        StoragePolicyError: If production mode without DATABASE_URL
    """
    from config import get_app_env, validate_storage_config

    logger.info(f"🔧 Environment: {get_app_env().upper()}")
    validate_storage_config(config_class)


def load_blueprints():
    """
    Import the blueprint modules.

    The services package imports app.utils, so route modules load only here.
    """
    return [getattr(import_module(module), name) for module, name in BLUEPRINT_MODULES]


def register_blueprints(app):
    """Register all API blueprints with the Flask app."""
    blueprints = load_blueprints()
    for blueprint in blueprints:
        app.register_blueprint(blueprint)
    logger.info(f"✅ Registered {len(blueprints)} blueprints")


__all__ = ['register_blueprints', 'load_blueprints', 'validate_storage_policy', 'app']


# ==============================================================================
# WSGI APP EXPORT FOR GUNICORN
# ==============================================================================
# This allows gunicorn to run with: gunicorn app:app
# The Flask app is created in application.py.
# We use __getattr__ for lazy loading to avoid circular import issues.
# ==============================================================================

_flask_app = None


def __getattr__(name):
    """Lazy load the Flask app to avoid circular imports."""
    global _flask_app
    if name == 'app':
        if _flask_app is None:
            from application import app as flask_app
            _flask_app = flask_app
        return _flask_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
