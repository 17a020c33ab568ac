"""
Database connection management for ZoguOne.
Handles SQLAlchemy engine creation, session management, and connection verification.
"""

import os
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def normalize_database_url(url):
    """Accept the legacy postgres:// scheme some hosts still hand out."""
    if url and url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


DATABASE_URL = normalize_database_url(os.environ.get('DATABASE_URL'))

# SQLAlchemy Base for model declarations
Base = declarative_base()

# Engine and SessionLocal are created lazily or by configure_database()
engine = None
SessionLocal = None


def _enable_sqlite_savepoints(sqlite_engine):
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs (begin_nested) behave on pysqlite."""

    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def configure_database(url=None, engine_options=None):
    """
    (Re)create the engine and session factory for the given URL.

    The app factory calls this with the configured DATABASE_URL. In-memory
    SQLite URLs share one connection so every session sees the same tables.
    """
    global engine, SessionLocal, DATABASE_URL

    url = normalize_database_url(url or DATABASE_URL)
    if not url:
        raise RuntimeError(
            "DATABASE_URL not configured. Please set the DATABASE_URL environment variable."
        )

    options = dict(engine_options or {})
    if url.startswith('sqlite'):
        options.pop('pool_size', None)
        options.pop('max_overflow', None)
        options.setdefault('connect_args', {'check_same_thread': False})
        if url in ('sqlite://', 'sqlite:///:memory:'):
            options['poolclass'] = StaticPool

    if engine is not None:
        engine.dispose()

    try:
        engine = create_engine(url, **options)
    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise RuntimeError(f"Failed to connect to database: {e}")

    if url.startswith('sqlite'):
        _enable_sqlite_savepoints(engine)

    DATABASE_URL = url
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info(f"Database engine created for {engine.url.get_backend_name()}")
    return engine


def get_engine():
    """Get or create the SQLAlchemy engine."""
    if engine is None:
        configure_database()
    return engine


def get_session_factory():
    """Get or create the session factory."""
    if SessionLocal is None:
        configure_database()
    return SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for a database session.
    Commits on success, rolls back on any exception.

    Example:
        with get_db_session() as db:
            customers = db.query(Customer).all()
    """
    session_factory = get_session_factory()
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connection():
    """
    Verify that the database connection is working.
    Returns True if connection is successful, raises exception otherwise.
    """
    try:
        eng = get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        raise RuntimeError(f"Cannot connect to database: {e}")


def init_db():
    """
    Create all tables that do not exist yet.
    Production schemas are managed by Alembic; this is for development and tests.
    """
    from database import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables created/verified")


def drop_db():
    """Drop every table (tests only)."""
    from database import models  # noqa: F401

    Base.metadata.drop_all(bind=get_engine())


def is_db_configured():
    """Check if a database URL is available (without failing)."""
    return bool(DATABASE_URL)
