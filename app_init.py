"""
Application Initialization Module
Properly initializes Flask app with all infrastructure components
"""
import os
from flask import Flask
from config import config_by_name, get_app_env, get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from database.connection import configure_database, init_db
from services.audit_log import register_audit_hooks
import logging

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Application factory that creates and configures Flask app with all infrastructure

    Args:
        config_name: Key of config_by_name; defaults to the FLASK_ENV selection

    Returns:
        Configured Flask application instance
    """
    from app import register_blueprints, validate_storage_policy

    # Create Flask app
    app = Flask(__name__)

    # Load configuration
    config_class = config_by_name[config_name] if config_name else get_config()
    app.config.from_object(config_class)

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("🚀 Initializing ZoguOne Field Service")
    logger.info("=" * 60)
    logger.info(f"Environment: {config_name or get_app_env()}")
    logger.info(f"Debug mode: {app.debug}")

    # Fail fast in production without a database
    validate_storage_policy(config_class)

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    initialize_database(app)

    # Create required directories
    create_required_directories(app)

    # Register health check endpoints
    register_health_checks(app)

    register_blueprints(app)

    logger.info("✅ Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_database(app):
    """
    Bind the engine to the configured database and install the audit hook

    Args:
        app: Flask application instance
    """
    configure_database(app.config['DATABASE_URL'], app.config.get('SQLALCHEMY_ENGINE_OPTIONS'))
    register_audit_hooks()

    if app.config.get('AUTO_CREATE_TABLES'):
        init_db()
    else:
        logger.info("Schema managed by Alembic (run 'alembic upgrade head')")


def create_required_directories(app):
    """
    Create all required application directories

    Args:
        app: Flask application instance
    """
    storage = app.config['STORAGE_FOLDER']
    if not os.path.isabs(storage):
        storage = os.path.join(app.config['BASE_DIR'], storage)

    directories = [storage, app.config.get('LOG_DIR', 'logs')]

    for directory in directories:
        try:
            os.makedirs(directory, exist_ok=True)
            logger.debug(f"Directory ensured: {directory}")
        except OSError as e:
            logger.error(f"Failed to create directory {directory}: {e}")

    logger.info(f"✅ Created {len(directories)} required directories")
