"""
Tests for the changelog written on every flush
"""
import pytest
from datetime import datetime, timedelta

from flask import g

from database.models import Changelog
from services.audit_log import AUDITED_TABLES, AuditLogRepository, current_actor_email
from tests.conftest import make_customer, make_org, make_user


def _entries(db, table_name):
    db.flush()
    return db.query(Changelog).filter(Changelog.table_name == table_name).all()


@pytest.mark.unit
class TestAuditHooks:
    """Tests for the after_flush writer"""

    def test_insert_is_logged_as_system(self, db, org):
        customer = make_customer(db, org.id)
        entries = _entries(db, 'customers')
        assert len(entries) == 1
        assert entries[0].action == 'INSERT'
        assert entries[0].org_id == org.id
        assert entries[0].user_email == 'system'
        assert entries[0].record_id == str(customer.id)
        assert entries[0].changes['name'] == 'Erika Mustermann'

    def test_update_records_old_and_new(self, db, org, customer):
        customer.name = 'Erika Musterfrau'
        db.flush()
        update = [e for e in _entries(db, 'customers') if e.action == 'UPDATE']
        assert update[0].changes == {'name': {'old': 'Erika Mustermann', 'new': 'Erika Musterfrau'}}

    def test_delete(self, db, org, customer):
        db.delete(customer)
        assert 'DELETE' in [e.action for e in _entries(db, 'customers')]

    def test_password_hash_is_never_logged(self, db, org):
        make_user(db, org.id, 'key_user')
        assert 'password_hash' not in _entries(db, 'users')[0].changes

    def test_unaudited_tables_are_skipped(self, db):
        assert 'changelog' not in AUDITED_TABLES
        assert 'number_sequences' not in AUDITED_TABLES

    def test_actor_from_request(self, app, db, org):
        with app.test_request_context():
            g.audit_user_email = 'admin@muster.example'
            assert current_actor_email() == 'admin@muster.example'
            make_customer(db, org.id)
            db.flush()
        assert _entries(db, 'customers')[0].user_email == 'admin@muster.example'


@pytest.mark.unit
class TestAuditLogRepository:
    """Tests for reading the changelog"""

    def test_filters(self, db, org, customer):
        customer.name = 'Neu'
        db.flush()
        repo = AuditLogRepository(db, org.id)

        assert repo.query(table_name='customers', action='update')['total'] == 1
        assert repo.query(user_email='SYS')['total'] >= 2
        assert repo.query(start_date=datetime.utcnow().date() + timedelta(days=1))['total'] == 0
        assert repo.query(end_date=datetime.utcnow().date())['total'] >= 2

    def test_scoped_to_org(self, db, org, customer):
        other = make_org(db, name='Fremd')
        make_customer(db, other.id, name='Fremdkunde')
        db.flush()
        entries = AuditLogRepository(db, org.id).query(table_name='customers', per_page=100)['entries']
        assert {e['org_id'] for e in entries} == {org.id}

    def test_paging(self, db, org):
        for i in range(3):
            make_customer(db, org.id, name=f"Kunde {i}")
        db.flush()
        page = AuditLogRepository(db, org.id).query(table_name='customers', per_page=2, page=2)
        assert page['total'] == 3
        assert page['pages'] == 2
        assert len(page['entries']) == 1

    def test_record_history(self, db, org, customer):
        customer.phone = '+49301111'
        db.flush()
        history = AuditLogRepository(db, org.id).record_history('customers', customer.id)
        assert sorted(e['action'] for e in history) == ['INSERT', 'UPDATE']
