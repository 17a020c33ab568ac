"""
Security Utilities & Middleware

Session secret handling, CORS for the browser client, response headers,
request logging and the JSON error handlers shared by every blueprint.
"""
import os
import secrets
from typing import Any, Dict, List
from flask import Flask, request, jsonify, session, Response
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError
import logging

from validators import ValidationError, format_validation_error
from services.errors import ServiceError

logger = logging.getLogger(__name__)

# Probes hit these every few seconds; they stay out of the request log
QUIET_PATHS = ('/api/health', '/api/ping', '/api/ready', '/api/metrics')

MIN_SECRET_KEY_LENGTH = 32
WEAK_SECRET_MARKERS = ('secret', 'password', 'changeme', '12345', 'zoguone')


class SecurityConfig:
    """Session secret checks"""

    @staticmethod
    def generate_secret_key() -> str:
        return secrets.token_hex(MIN_SECRET_KEY_LENGTH)

    @staticmethod
    def validate_secret_key(secret_key: str, allow_test_keys: bool = False) -> bool:
        """
        A key is usable when it is long enough and does not look like a default.

        Args:
            secret_key: Candidate key
            allow_test_keys: Skip the weak-marker check (testing config)
        """
        if not secret_key or len(secret_key) < MIN_SECRET_KEY_LENGTH:
            logger.warning(f"Secret key is too short (minimum {MIN_SECRET_KEY_LENGTH} characters)")
            return False

        if not allow_test_keys and any(marker in secret_key.lower() for marker in WEAK_SECRET_MARKERS):
            logger.warning("Secret key appears to be weak or default")
            return False

        return True

    @staticmethod
    def ensure_secret_key(config: Dict[str, Any]) -> str:
        """
        The configured SECRET_KEY, or a freshly generated one.

        A generated key logs everybody out on restart, so production
        deployments are expected to set SECRET_KEY.
        """
        secret_key = config.get('SECRET_KEY')
        if SecurityConfig.validate_secret_key(secret_key, allow_test_keys=bool(config.get('TESTING'))):
            return secret_key

        if not config.get('DEBUG') and not config.get('TESTING'):
            logger.error("No secure SECRET_KEY configured; sessions will not survive a restart")
        secret_key = SecurityConfig.generate_secret_key()
        logger.warning(f"Generated new secret key (length: {len(secret_key)})")
        return secret_key


def setup_security_headers(app: Flask):
    """
    Add security headers to all responses

    Args:
        app: Flask application instance
    """
    @app.after_request
    def add_security_headers(response: Response) -> Response:
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        # JSON and file downloads only; nothing here should ever run scripts
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'self'"
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        # Invoices, signatures and GDPR exports must not end up in shared caches
        if response.mimetype != 'application/json' or request.path.startswith('/api/gdpr'):
            response.headers['Cache-Control'] = 'no-store'

        return response

    logger.info("Security headers configured")


def setup_cors(app: Flask, config: Dict[str, Any]):
    """
    Configure CORS for the browser client. Credentials are allowed because
    the client authenticates with the session cookie.
    """
    cors_origins = config.get('CORS_ORIGINS', ['*'])
    cors_methods = config.get('CORS_METHODS', ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])
    cors_headers = config.get('CORS_ALLOW_HEADERS', ['Content-Type'])

    if not app.debug and '*' in cors_origins:
        logger.warning("Using wildcard CORS outside development! Set CORS_ORIGINS to the client URL.")

    CORS(
        app,
        resources={r"/api/*": {"origins": cors_origins}},
        methods=cors_methods,
        allow_headers=cors_headers,
        expose_headers=['Content-Disposition'],
        supports_credentials=True,
        max_age=3600
    )

    logger.info(f"CORS configured: origins={cors_origins}")


def sanitize_error_response(error: Exception, include_details: bool = False) -> Dict[str, Any]:
    """
    Generic 500 body; exception details only in debug mode.
    """
    error_response = {
        'success': False,
        'error': 'Internal Server Error',
        'message': 'An error occurred while processing your request'
    }

    if include_details:
        error_response['details'] = str(error)
        error_response['type'] = type(error).__name__

    return error_response


def _error(status: int, title: str, message: str):
    return jsonify({'success': False, 'error': title, 'message': message}), status


def setup_error_handlers(app: Flask):
    """
    Register error handlers that answer with JSON and never expose stack traces

    Args:
        app: Flask application instance
    """
    include_details = app.debug

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        return jsonify(format_validation_error(error.field, error.message)), 400

    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        if error.status_code >= 500:
            logger.error(f"Service error: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error: IntegrityError):
        # Unique numbers or a concurrent insert lost the race
        logger.warning(f"Integrity error on {request.method} {request.path}: {error.orig}")
        return _error(409, 'Conflict', 'The record conflicts with existing data. Please reload and try again')

    @app.errorhandler(400)
    def bad_request(error):
        return _error(400, 'Bad Request', 'The request could not be understood or was missing required parameters')

    @app.errorhandler(401)
    def unauthorized(error):
        return _error(401, 'Unauthorized', 'Authentication required')

    @app.errorhandler(403)
    def forbidden(error):
        return _error(403, 'Forbidden', 'You do not have permission to access this resource')

    @app.errorhandler(404)
    def not_found(error):
        return _error(404, 'Not Found', 'The requested resource was not found')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error(405, 'Method Not Allowed', 'The method is not allowed for the requested URL')

    @app.errorhandler(413)
    def request_entity_too_large(error):
        limit_mb = (app.config.get('MAX_CONTENT_LENGTH') or 0) // (1024 * 1024)
        return _error(413, 'Payload Too Large', f'Uploads are limited to {limit_mb} MB')

    @app.errorhandler(500)
    def internal_server_error(error):
        logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify(sanitize_error_response(error, include_details)), 500

    @app.errorhandler(503)
    def service_unavailable(error):
        return _error(503, 'Service Unavailable', 'The service is temporarily unavailable. Please try again later')

    logger.info("Error handlers registered")


def setup_request_logging(app: Flask):
    """
    Log every API call with the signed-in user's e-mail so requests can be
    matched with changelog entries.
    """
    @app.before_request
    def log_request():
        if request.path in QUIET_PATHS:
            return

        logger.info(
            f"Request: {request.method} {request.path} "
            f"user={session.get('user_email', 'anonymous')} from {request.remote_addr}"
        )

    @app.after_request
    def log_response(response: Response) -> Response:
        if request.path in QUIET_PATHS:
            return response

        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            f"Response: {request.method} {request.path} "
            f"status={response.status_code} "
            f"size={response.content_length}"
        )

        return response

    logger.info("Request logging configured")


def check_production_settings(config: Dict[str, Any]) -> List[str]:
    """
    Names of settings a production deployment is missing.

    SECRET_KEY and DATABASE_URL are required; without SMTP or Stripe the
    e-mail and payment link features stay switched off.
    """
    missing = [name for name in ('SECRET_KEY', 'DATABASE_URL') if not os.environ.get(name)]
    for name in missing:
        logger.error(f"Missing required environment variable: {name}")

    if not config.get('SMTP_HOST'):
        logger.warning("SMTP_HOST is not set; invoices, quotes and invitations cannot be e-mailed")
    if not config.get('STRIPE_SECRET_KEY'):
        logger.warning("STRIPE_SECRET_KEY is not set; payment links are disabled")

    return missing


def setup_security(app: Flask, config: Dict[str, Any]):
    """
    Setup all security features for the application

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    logger.info("Configuring application security...")

    app.secret_key = SecurityConfig.ensure_secret_key(config)
    setup_cors(app, config)
    setup_security_headers(app)
    setup_error_handlers(app)
    setup_request_logging(app)

    if not app.debug and not app.testing:
        check_production_settings(config)

    logger.info("Security configuration complete")
