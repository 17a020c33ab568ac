"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates all tables for the ZoguOne field service backend.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps(updated=True):
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()))
    return columns


def _org_fk(nullable=False):
    return sa.Column('org_id', sa.String(36), sa.ForeignKey('organizations.id'), nullable=nullable)


def _user_fk(name):
    return sa.Column(name, sa.String(36), sa.ForeignKey('users.id'))


def _document_items(table, parent):
    op.create_table(table,
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(f'{parent}_id', sa.Integer(),
                  sa.ForeignKey(f'{parent}s.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id')),
        sa.Column('expense_id', sa.Integer(), sa.ForeignKey('expenses.id')),
        sa.Column('description', sa.Text()),
        sa.Column('quantity', sa.Float(), server_default='1'),
        sa.Column('unit_price', sa.Float(), server_default='0'),
        sa.Column('vat_rate', sa.Float(), server_default='19'),
    )
    op.create_index(f'ix_{table}_{parent}', table, [f'{parent}_id'])


def upgrade() -> None:
    # =========================================================================
    # Tenants, users, roles
    # =========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('company_name', sa.String(255)),
        sa.Column('address', sa.Text()),
        sa.Column('phone', sa.String(50)),
        sa.Column('email', sa.String(255)),
        sa.Column('logo_url', sa.String(500)),
        sa.Column('iban', sa.String(50)),
        sa.Column('bic', sa.String(20)),
        sa.Column('ust_idnr', sa.String(30)),
        sa.Column('max_users', sa.Integer(), server_default='5'),
        sa.Column('is_payment_gateway_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('stripe_account_id', sa.String(100)),
        sa.Column('is_document_storage_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_datev_export_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('datev_settings', JSON),
        sa.Column('is_email_sending_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_visit_reminder_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_text_blocks_enabled', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table('users',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        sa.Column('role', sa.String(50), nullable=False, server_default='field_service_employee'),
        sa.Column('current_plan', sa.String(20), server_default='free'),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('last_login', sa.DateTime()),
        sa.Column('password_reset_token', sa.String(64)),
        sa.Column('password_reset_expires', sa.DateTime()),
        *_timestamps(),
    )
    op.create_index('ix_users_org', 'users', ['org_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('permissions', JSON),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('org_id', 'role', name='uq_role_permissions_org_role'),
    )

    op.create_table('user_invitations',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('invited_user_email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), server_default='pending'),
        _user_fk('invited_by_user_id'),
        *_timestamps(updated=False),
    )
    op.create_index('ix_user_invitations_email', 'user_invitations', ['invited_user_email'])

    op.create_table('organization_invitations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(64), nullable=False, unique=True),
        sa.Column('org_name', sa.String(255), nullable=False),
        sa.Column('max_users', sa.Integer(), server_default='5'),
        _user_fk('created_by'),
        sa.Column('status', sa.String(20), server_default='pending'),
        _user_fk('accepted_by_user_id'),
        sa.Column('accepted_at', sa.DateTime()),
        *_timestamps(updated=False),
    )

    # =========================================================================
    # Master data
    # =========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('customer_number', sa.String(50)),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        sa.Column('address', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('is_reminder_relevant', sa.Boolean(), server_default=sa.true()),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )
    op.create_index('ix_customers_org', 'customers', ['org_id'])
    op.create_index('ix_customers_name', 'customers', ['name'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('product_number', sa.String(50)),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('selling_price', sa.Float(), server_default='0'),
        sa.Column('type', sa.String(20), server_default='good'),
        sa.Column('unit', sa.String(30)),
        sa.Column('stock_level', sa.Float()),
        sa.Column('minimum_stock_level', sa.Integer(), server_default='0'),
        sa.Column('stock_status', sa.String(30), server_default='Available'),
        sa.Column('restock_date', sa.Date()),
        *_timestamps(),
    )
    op.create_index('ix_products_org', 'products', ['org_id'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('expense_number', sa.String(50)),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('category', sa.String(100)),
        sa.Column('expense_date', sa.Date(), nullable=False),
        _user_fk('user_id'),
        *_timestamps(),
    )
    op.create_index('ix_expenses_org_date', 'expenses', ['org_id', 'expense_date'])

    # =========================================================================
    # Field service
    # =========================================================================
    op.create_table('visits',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('visit_number', sa.String(50)),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        _user_fk('assigned_employee_id'),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), server_default='planned'),
        sa.Column('category', sa.String(30), server_default='Maintenance'),
        sa.Column('location', sa.String(500)),
        sa.Column('purpose', sa.Text()),
        sa.Column('internal_notes', sa.Text()),
        sa.Column('signature_storage_path', sa.String(500)),
        sa.Column('signature_date', sa.DateTime()),
        sa.Column('was_reminder_sent', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_visits_org_start', 'visits', ['org_id', 'start_time'])
    op.create_index('ix_visits_employee', 'visits', ['assigned_employee_id'])

    op.create_table('visit_products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('visit_id', sa.Integer(), sa.ForeignKey('visits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Float(), server_default='1'),
        sa.Column('unit_price', sa.Float()),
    )

    op.create_table('visit_expenses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('visit_id', sa.Integer(), sa.ForeignKey('visits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('expense_id', sa.Integer(), sa.ForeignKey('expenses.id'), nullable=False),
    )

    # =========================================================================
    # Billing
    # =========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('invoice_number', sa.String(50)),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        _user_fk('user_id'),
        sa.Column('visit_id', sa.Integer(), sa.ForeignKey('visits.id')),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Float(), server_default='0'),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('customer_notes', sa.Text()),
        sa.Column('internal_notes', sa.Text()),
        sa.Column('payment_link_url', sa.String(1000)),
        sa.Column('stripe_payment_intent_id', sa.String(100)),
        sa.Column('was_sent_via_email', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_invoices_org_status', 'invoices', ['org_id', 'status'])
    op.create_index('ix_invoices_customer', 'invoices', ['customer_id'])
    _document_items('invoice_items', 'invoice')

    op.create_table('quotes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('quote_number', sa.String(50)),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        _user_fk('user_id'),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('valid_until_date', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Float(), server_default='0'),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('notes', sa.Text()),
        sa.Column('internal_notes', sa.Text()),
        sa.Column('was_sent_via_email', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_quotes_org_status', 'quotes', ['org_id', 'status'])
    op.create_index('ix_quotes_customer', 'quotes', ['customer_id'])
    _document_items('quote_items', 'quote')

    # =========================================================================
    # Scheduling
    # =========================================================================
    op.create_table('appointments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('appointment_number', sa.String(50)),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id')),
        _user_fk('user_id'),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('type', sa.String(20), server_default='standard'),
        sa.Column('is_all_day', sa.Boolean(), server_default=sa.false()),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
    )
    op.create_index('ix_appointments_org_start', 'appointments', ['org_id', 'start_time'])

    op.create_table('tasks',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id')),
        _user_fk('user_id'),
        _user_fk('created_by_user_id'),
        sa.Column('start_time', sa.DateTime()),
        sa.Column('end_time', sa.DateTime()),
        sa.Column('is_complete', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_tasks_org_user', 'tasks', ['org_id', 'user_id'])

    # =========================================================================
    # Supporting records
    # =========================================================================
    op.create_table('text_blocks',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('applicable_to', JSON),
        _user_fk('created_by_user_id'),
        *_timestamps(),
    )

    op.create_table('customer_documents',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        _user_fk('uploaded_by_user_id'),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size_bytes', sa.Integer()),
        sa.Column('mime_type', sa.String(100)),
        *_timestamps(updated=False),
    )

    op.create_table('email_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id')),
        _user_fk('sent_by_user_id'),
        sa.Column('document_type', sa.String(30), nullable=False),
        sa.Column('related_document_id', sa.String(50)),
        sa.Column('subject', sa.String(500)),
        sa.Column('recipient', sa.String(255)),
        sa.Column('sent_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_email_logs_document', 'email_logs', ['document_type', 'related_document_id'])

    op.create_table('notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(nullable=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text()),
        sa.Column('type', sa.String(30), server_default='generic'),
        sa.Column('related_entity_path', sa.String(255)),
        sa.Column('related_entity_id', sa.String(50)),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        *_timestamps(updated=False),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])

    op.create_table('changelog',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('org_id', sa.String(36)),
        sa.Column('user_email', sa.String(255), server_default='system'),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.String(50)),
        sa.Column('changes', JSON),
        *_timestamps(updated=False),
    )
    op.create_index('ix_changelog_org_created', 'changelog', ['org_id', 'created_at'])

    op.create_table('number_sequences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column('document_type', sa.String(30), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('org_id', 'document_type', 'year', name='uq_number_sequences'),
    )

    op.create_table('help_content',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('page_key', sa.String(100), nullable=False, unique=True),
        sa.Column('content_de', sa.Text()),
        sa.Column('content_al', sa.Text()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table('legal_content',
        sa.Column('key', sa.String(30), primary_key=True),
        sa.Column('content_de', sa.Text()),
        sa.Column('content_al', sa.Text()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in (
        'legal_content', 'help_content', 'number_sequences', 'changelog',
        'notifications', 'email_logs', 'customer_documents', 'text_blocks',
        'tasks', 'appointments', 'quote_items', 'quotes', 'invoice_items',
        'invoices', 'visit_expenses', 'visit_products', 'visits', 'expenses',
        'products', 'customers', 'organization_invitations', 'user_invitations',
        'role_permissions', 'users', 'organizations',
    ):
        op.drop_table(table)
