"""
Centralized Logging Configuration

Console plus rotating file output. Every record carries the e-mail of the
signed-in user (or 'system'), the same attribution the changelog uses.
"""
import logging
import logging.handlers
from pathlib import Path

from flask import has_request_context, session

NOISY_LOGGERS = ('werkzeug', 'urllib3', 'sqlalchemy.engine', 'alembic', 'PIL')


class ActorFilter(logging.Filter):
    """Adds record.actor for the %(actor)s format field."""

    def filter(self, record):
        actor = 'system'
        if has_request_context():
            actor = session.get('user_email') or 'anonymous'
        record.actor = actor
        return True


def _handler(handler, level, log_format):
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format))
    handler.addFilter(ActorFilter())
    return handler


def setup_logging(app):
    """
    Setup application-wide logging with file rotation and console output

    Args:
        app: Flask application instance
    """
    log_level = getattr(logging, app.config['LOG_LEVEL'].upper(), logging.INFO)
    log_format = app.config['LOG_FORMAT']

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    root_logger.addHandler(_handler(logging.StreamHandler(), log_level, log_format))

    # No log files under test runs
    log_path = None
    if not app.config.get('TESTING'):
        log_dir = Path(app.config.get('LOG_DIR', 'logs'))
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / app.config['LOG_FILE']
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        root_logger.addHandler(_handler(file_handler, log_level, log_format))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.info(f"Logging initialized at {logging.getLevelName(log_level)} level")
    if log_path:
        app.logger.info(f"Log file: {log_path}")

    return root_logger
