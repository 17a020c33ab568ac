"""
Pytest configuration and shared fixtures
"""
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Application on a fresh in-memory database with storage under tmp_path"""
    from config import TestingConfig
    from app_init import create_app

    monkeypatch.setattr(TestingConfig, 'STORAGE_FOLDER', str(tmp_path / 'storage'))
    monkeypatch.setattr(TestingConfig, 'LOG_DIR', str(tmp_path / 'logs'))
    return create_app('testing')


@pytest.fixture
def db(app):
    """
    Plain session for service tests. Nothing is committed; the in-memory
    database is thrown away with the app.
    """
    from database.connection import get_session_factory

    session = get_session_factory()()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# MODEL FACTORIES
# ============================================================================

def make_org(db, **overrides):
    from database.models import Organization

    values = {
        'name': 'Muster Haustechnik',
        'company_name': 'Muster Haustechnik GmbH',
        'address': 'Hauptstr. 1, 10115 Berlin',
        'email': 'info@muster.example',
        'iban': 'DE89370400440532013000',
        'bic': 'COBADEFFXXX',
        'max_users': 5,
    }
    values.update(overrides)
    org = Organization(**values)
    db.add(org)
    db.flush()
    return org


def make_user(db, org_id, role='admin', email=None, password='secret-pass-1', **overrides):
    """Create a user and return the dict the repositories expect"""
    from database.models import User
    from services.users_repository import hash_password

    user = User(
        org_id=org_id,
        email=email or f"{role}@muster.example",
        full_name=overrides.pop('full_name', role.replace('_', ' ').title()),
        role=role,
        password_hash=hash_password(password),
        **overrides,
    )
    db.add(user)
    db.flush()
    return user.to_dict()


def make_customer(db, org_id, name='Erika Mustermann', **overrides):
    from database.models import Customer

    customer = Customer(
        org_id=org_id,
        name=name,
        email=overrides.pop('email', 'erika@kunde.example'),
        phone=overrides.pop('phone', '+4930123456'),
        address=overrides.pop('address', 'Lindenweg 5, 10117 Berlin'),
        **overrides,
    )
    db.add(customer)
    db.flush()
    return customer


def make_product(db, org_id, name='Thermostat', **overrides):
    from database.models import Product

    values = {
        'name': name,
        'selling_price': 50.0,
        'type': 'good',
        'stock_level': 10,
        'minimum_stock_level': 2,
        'stock_status': 'Available',
    }
    values.update(overrides)
    product = Product(org_id=org_id, **values)
    db.add(product)
    db.flush()
    return product


def make_expense(db, org_id, description='Anfahrt', amount=30.0, **overrides):
    from database.models import Expense

    expense = Expense(
        org_id=org_id,
        description=description,
        amount=amount,
        category=overrides.pop('category', 'Travel'),
        expense_date=overrides.pop('expense_date', date(2026, 3, 10)),
        **overrides,
    )
    db.add(expense)
    db.flush()
    return expense


@pytest.fixture
def org(db):
    return make_org(db)


@pytest.fixture
def admin(db, org):
    return make_user(db, org.id, 'admin')


@pytest.fixture
def key_user(db, org):
    return make_user(db, org.id, 'key_user')


@pytest.fixture
def fse(db, org):
    return make_user(db, org.id, 'field_service_employee', email='fse@muster.example')


@pytest.fixture
def super_admin(db):
    return make_user(db, None, 'super_admin', email='root@zoguone.local')


@pytest.fixture
def customer(db, org):
    return make_customer(db, org.id)


@pytest.fixture
def product(db, org):
    return make_product(db, org.id)


@pytest.fixture
def service_product(db, org):
    return make_product(db, org.id, name='Wartungspauschale', type='service',
                        selling_price=80.0, stock_level=None, minimum_stock_level=0)


@pytest.fixture
def expense(db, org):
    return make_expense(db, org.id)


@pytest.fixture
def invoice_payload(customer, product):
    """Fixture providing a two-line invoice body"""
    return {
        'customer_id': customer.id,
        'issue_date': '2026-03-01',
        'status': 'draft',
        'items': [
            {'product_id': product.id, 'description': 'Thermostat', 'quantity': 2,
             'unit_price': 50.0, 'vat_rate': 19},
            {'description': 'Montage', 'quantity': 1, 'unit_price': 100.0, 'vat_rate': 7},
        ],
    }


@pytest.fixture
def visit_payload(customer):
    return {
        'customer_id': customer.id,
        'start_time': '2026-03-02T09:00:00',
        'end_time': '2026-03-02T11:00:00',
        'category': 'Maintenance',
        'purpose': 'Heizungswartung',
        'location': 'Lindenweg 5',
    }


# ============================================================================
# HTTP CLIENTS
# ============================================================================

@pytest.fixture
def seeded(app):
    """
    Committed organization with an admin, a field service employee and a
    customer, for tests that go through the HTTP client. Returns ids only.
    """
    from database.connection import get_db_session

    with get_db_session() as session:
        organization = make_org(session)
        admin_user = make_user(session, organization.id, 'admin')
        fse_user = make_user(session, organization.id, 'field_service_employee',
                             email='fse@muster.example')
        customer_row = make_customer(session, organization.id)
        ids = {
            'org_id': organization.id,
            'admin': admin_user,
            'fse': fse_user,
            'customer_id': customer_row.id,
        }
    return ids


def _login(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user['id']
        sess['user_email'] = user['email']
    return client


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app, seeded):
    return _login(app.test_client(), seeded['admin'])


@pytest.fixture
def fse_client(app, seeded):
    return _login(app.test_client(), seeded['fse'])

