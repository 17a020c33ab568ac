"""
Health Check & Monitoring Endpoints
Liveness, readiness and metrics endpoints for the deployment platform
"""
import os
import sys
import time
import psutil
from datetime import datetime
from typing import Dict, Any
from flask import Blueprint, jsonify, current_app
import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = 'zoguone-field-service'
SERVICE_VERSION = '1.0.0'

health_bp = Blueprint('health', __name__)

# Track application start time
START_TIME = time.time()


def get_system_metrics() -> Dict[str, Any]:
    """
    Get basic process metrics

    Returns:
        Dictionary of system metrics (empty when psutil fails)
    """
    try:
        process = psutil.Process()

        return {
            'cpu_percent': process.cpu_percent(interval=0.1),
            'memory_mb': process.memory_info().rss / 1024 / 1024,
            'memory_percent': process.memory_percent(),
            'threads': process.num_threads(),
        }
    except Exception as e:
        logger.warning(f"Failed to get system metrics: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    """Get application uptime"""
    uptime_seconds = time.time() - START_TIME

    return {
        'uptime_seconds': round(uptime_seconds, 2),
        'uptime_minutes': round(uptime_seconds / 60, 2),
        'uptime_hours': round(uptime_seconds / 3600, 2),
        'started_at': datetime.fromtimestamp(START_TIME).isoformat()
    }


def _storage_path(app) -> str:
    storage = app.config.get('STORAGE_FOLDER', 'storage')
    if os.path.isabs(storage):
        return storage
    return os.path.join(app.config.get('BASE_DIR', os.getcwd()), storage)


def get_storage_usage(app) -> Dict[str, Any]:
    """Disk usage of the volume holding documents, signatures and logos"""
    try:
        usage = psutil.disk_usage(_storage_path(app))
        return {
            'total_gb': round(usage.total / 1024 ** 3, 2),
            'free_gb': round(usage.free / 1024 ** 3, 2),
            'percent_used': usage.percent,
        }
    except OSError as e:
        logger.warning(f"Failed to read storage usage: {e}")
        return {}


def get_tenant_counts() -> Dict[str, int]:
    """Organizations, active users and unredeemed organization invitation codes"""
    from database.connection import get_db_session
    from database.models import Organization, OrganizationInvitation, User

    try:
        with get_db_session() as db:
            return {
                'organizations': db.query(Organization).count(),
                'active_users': db.query(User).filter(User.is_active == True).count(),  # noqa: E712
                'pending_organization_invitations': db.query(OrganizationInvitation).filter(
                    OrganizationInvitation.status == 'pending').count(),
            }
    except Exception as e:
        logger.warning(f"Failed to count tenants: {e}")
        return {}


def check_database() -> Dict[str, Any]:
    """Run a trivial query against the configured database"""
    from database.connection import check_db_connection

    try:
        check_db_connection()
        return {'connected': True}
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return {'connected': False, 'error': str(e)}


def check_integrations(app) -> Dict[str, bool]:
    """Report which optional integrations are configured"""
    return {
        'smtp': bool(app.config.get('SMTP_HOST')),
        'stripe': bool(app.config.get('STRIPE_SECRET_KEY')),
    }


def check_filesystem(app=None) -> Dict[str, Dict[str, bool]]:
    """
    Check that the storage directory exists and is writable

    Returns:
        Dictionary of filesystem checks keyed by the configured folder
    """
    app = app or current_app
    storage = app.config.get('STORAGE_FOLDER', 'storage')
    dir_path = _storage_path(app)

    exists = os.path.exists(dir_path)
    writable = os.access(dir_path, os.W_OK) if exists else False

    return {
        storage: {
            'exists': exists,
            'writable': writable,
            'healthy': exists and writable
        }
    }


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Basic health check endpoint
    Returns 200 if application is running
    """
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Readiness probe endpoint
    Returns 200 when the database answers and storage is writable
    """
    try:
        database = check_database()
        filesystem = check_filesystem(current_app)
        filesystem_healthy = all(status['healthy'] for status in filesystem.values())

        is_ready = database['connected'] and filesystem_healthy

        response = {
            'status': 'ready' if is_ready else 'not_ready',
            'timestamp': datetime.utcnow().isoformat(),
            'checks': {
                'database': database,
                'filesystem': filesystem,
                'filesystem_healthy': filesystem_healthy,
            }
        }

        return jsonify(response), 200 if is_ready else 503

    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return jsonify({
            'status': 'error',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Basic metrics endpoint
    Process metrics, integration status, storage volume usage and tenant counts
    """
    try:
        response = {
            'timestamp': datetime.utcnow().isoformat(),
            'service': SERVICE_NAME,
            'version': SERVICE_VERSION,
            'environment': os.environ.get('FLASK_ENV', 'production'),
            'uptime': get_uptime(),
            'system': get_system_metrics(),
            'integrations': check_integrations(current_app),
            'storage': get_storage_usage(current_app),
            'tenants': get_tenant_counts(),
            'python_version': sys.version.split()[0]
        }

        return jsonify(response), 200

    except Exception as e:
        logger.error(f"Metrics collection failed: {e}")
        return jsonify({
            'status': 'error',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 500


@health_bp.route('/ping', methods=['GET'])
def ping():
    """Simple connectivity test"""
    return 'pong', 200


def register_health_checks(app):
    """
    Register health check blueprint with Flask app

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp, url_prefix='/api')
    logger.info("Health check endpoints registered: /api/health, /api/ready, /api/metrics, /api/ping")
