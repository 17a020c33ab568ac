"""
Audit Log - records every insert, update and delete of tenant data.

A SQLAlchemy after_flush hook writes one changelog row per changed object,
attributed to the signed-in user's e-mail (or 'system' outside a request).
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

from flask import g, has_request_context, session as flask_session
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from database.models import Changelog, generate_uuid

logger = logging.getLogger(__name__)

AUDITED_TABLES = {
    'organizations', 'users', 'role_permissions', 'user_invitations',
    'customers', 'products', 'expenses',
    'invoices', 'invoice_items', 'quotes', 'quote_items',
    'visits', 'visit_products', 'visit_expenses',
    'appointments', 'tasks', 'text_blocks', 'customer_documents',
}

# Never copied into the changelog
REDACTED_COLUMNS = {'password_hash', 'password_reset_token'}

# Child rows take the org of their parent document
PARENT_ATTRIBUTES = ('invoice', 'quote', 'visit')

ACTIONS = ('INSERT', 'UPDATE', 'DELETE')


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def current_actor_email() -> str:
    """E-mail of the user behind the current request, or 'system'."""
    if has_request_context():
        email = getattr(g, 'audit_user_email', None) or flask_session.get('user_email')
        if email:
            return email
    return 'system'


def _org_id_of(obj) -> Optional[str]:
    if obj.__tablename__ == 'organizations':
        return obj.id
    org_id = getattr(obj, 'org_id', None)
    if org_id:
        return org_id
    for attribute in PARENT_ATTRIBUTES:
        parent = getattr(obj, attribute, None)
        if parent is not None and getattr(parent, 'org_id', None):
            return parent.org_id
    return None


def _record_id(obj) -> Optional[str]:
    identity = inspect(obj).identity
    if identity:
        return ','.join(str(part) for part in identity)
    primary_key = getattr(obj, 'id', None) or getattr(obj, 'key', None)
    return str(primary_key) if primary_key is not None else None


def _snapshot(obj) -> Dict[str, Any]:
    mapper = inspect(obj).mapper
    return {
        column.key: _jsonable(getattr(obj, column.key))
        for column in mapper.column_attrs
        if column.key not in REDACTED_COLUMNS
    }


def _changes(obj) -> Dict[str, Dict[str, Any]]:
    state = inspect(obj)
    changes = {}
    for column in state.mapper.column_attrs:
        if column.key in REDACTED_COLUMNS or column.key == 'updated_at':
            continue
        history = state.attrs[column.key].history
        if not history.has_changes():
            continue
        old = history.deleted[0] if history.deleted else None
        new = history.added[0] if history.added else None
        if old != new:
            changes[column.key] = {'old': _jsonable(old), 'new': _jsonable(new)}
    return changes


def _collect_entries(session: Session):
    actor = current_actor_email()
    now = datetime.utcnow()
    entries = []

    def add(obj, action, changes):
        entries.append({
            'id': generate_uuid(),
            'org_id': _org_id_of(obj),
            'user_email': actor,
            'action': action,
            'table_name': obj.__tablename__,
            'record_id': _record_id(obj),
            'changes': changes,
            'created_at': now,
        })

    for obj in session.new:
        if getattr(obj, '__tablename__', None) in AUDITED_TABLES:
            add(obj, 'INSERT', _snapshot(obj))

    for obj in session.dirty:
        if getattr(obj, '__tablename__', None) not in AUDITED_TABLES:
            continue
        changes = _changes(obj)
        if changes:
            add(obj, 'UPDATE', changes)

    for obj in session.deleted:
        if getattr(obj, '__tablename__', None) in AUDITED_TABLES:
            add(obj, 'DELETE', _snapshot(obj))

    return entries


def _after_flush(session: Session, flush_context):
    entries = _collect_entries(session)
    if entries:
        session.connection().execute(Changelog.__table__.insert(), entries)


def register_audit_hooks():
    """Attach the changelog writer to every SQLAlchemy session (idempotent)."""
    if not event.contains(Session, 'after_flush', _after_flush):
        event.listen(Session, 'after_flush', _after_flush)
        logger.info("Audit log hooks registered")


# =============================================================================
# QUERYING
# =============================================================================

class AuditLogRepository:
    """Read access to the changelog."""

    PER_PAGE = 25

    def __init__(self, session: Session, organization_id: Optional[str]):
        self.session = session
        self.organization_id = organization_id

    def query(self, user_email: str = None, action: str = None, table_name: str = None,
              start_date: date = None, end_date: date = None,
              page: int = 1, per_page: int = None) -> Dict[str, Any]:
        """
        Filtered, newest-first page of changelog rows.

        The end date is inclusive up to the end of that day. Without an
        organization (super admin) rows of all organizations are returned.
        """
        per_page = per_page or self.PER_PAGE
        page = max(page, 1)

        query = self.session.query(Changelog)
        if self.organization_id:
            query = query.filter(Changelog.org_id == self.organization_id)
        if user_email:
            query = query.filter(Changelog.user_email.ilike(f"%{user_email}%"))
        if action:
            query = query.filter(Changelog.action == action.upper())
        if table_name:
            query = query.filter(Changelog.table_name == table_name)
        if start_date:
            query = query.filter(Changelog.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(Changelog.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

        total = query.count()
        rows = query.order_by(Changelog.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()

        return {
            'entries': [row.to_dict() for row in rows],
            'total': total,
            'page': page,
            'per_page': per_page,
            'pages': (total + per_page - 1) // per_page,
        }

    def record_history(self, table_name: str, record_id) -> list:
        """All changes of one record, newest first."""
        query = self.session.query(Changelog).filter(
            Changelog.table_name == table_name,
            Changelog.record_id == str(record_id)
        )
        if self.organization_id:
            query = query.filter(Changelog.org_id == self.organization_id)
        return [row.to_dict() for row in query.order_by(Changelog.created_at.desc()).all()]

    def table_names(self) -> list:
        return sorted(AUDITED_TABLES)
