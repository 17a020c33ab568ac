"""
SQLAlchemy models for ZoguOne.
Defines all tenant tables for CRM, billing, field service, scheduling and administration.

Business documents (customers, products, expenses, invoices, quotes, visits,
appointments) use integer primary keys; everything else uses string UUIDs.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date,
    ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from database.connection import Base


def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


def _iso(value):
    return value.isoformat() if value else None


# =============================================================================
# ORGANIZATION (tenant)
# =============================================================================

class Organization(Base):
    """Company using the application. Every tenant row points here."""
    __tablename__ = 'organizations'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    company_name = Column(String(255))
    address = Column(Text)
    phone = Column(String(50))
    email = Column(String(255))
    logo_url = Column(String(500))
    iban = Column(String(50))
    bic = Column(String(20))
    ust_idnr = Column(String(30))
    max_users = Column(Integer, default=5)

    # Feature flags
    is_payment_gateway_enabled = Column(Boolean, default=False)
    stripe_account_id = Column(String(100))
    is_document_storage_enabled = Column(Boolean, default=False)
    is_datev_export_enabled = Column(Boolean, default=False)
    datev_settings = Column(JSONType, default=dict)
    is_email_sending_enabled = Column(Boolean, default=False)
    is_visit_reminder_enabled = Column(Boolean, default=False)
    is_text_blocks_enabled = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="organization")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'company_name': self.company_name,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'logo_url': self.logo_url,
            'iban': self.iban,
            'bic': self.bic,
            'ust_idnr': self.ust_idnr,
            'max_users': self.max_users,
            'is_payment_gateway_enabled': bool(self.is_payment_gateway_enabled),
            'stripe_account_id': self.stripe_account_id,
            'is_document_storage_enabled': bool(self.is_document_storage_enabled),
            'is_datev_export_enabled': bool(self.is_datev_export_enabled),
            'datev_settings': self.datev_settings or {},
            'is_email_sending_enabled': bool(self.is_email_sending_enabled),
            'is_visit_reminder_enabled': bool(self.is_visit_reminder_enabled),
            'is_text_blocks_enabled': bool(self.is_text_blocks_enabled),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


# =============================================================================
# USERS, ROLES & INVITATIONS
# =============================================================================

class User(Base):
    """User profile with login credentials. org_id is empty for super admins and removed members."""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=True)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255))
    phone = Column(String(50))
    role = Column(String(50), nullable=False, default='field_service_employee')
    current_plan = Column(String(20), default='free')
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime)
    # sha256 of the single-use token mailed by the forgot-password flow
    password_reset_token = Column(String(64))
    password_reset_expires = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="users")

    __table_args__ = (
        Index('ix_users_org', 'org_id'),
    )

    def to_dict(self, include_sensitive=False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
            'current_plan': self.current_plan,
            'is_active': self.is_active,
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at),
        }
        if include_sensitive:
            data['password_hash'] = self.password_hash
        return data


class RolePermission(Base):
    """Module access per role and organization: {"modules": [...]}."""
    __tablename__ = 'role_permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    role = Column(String(50), nullable=False)
    permissions = Column(JSONType, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('org_id', 'role', name='uq_role_permissions_org_role'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'role': self.role,
            'permissions': self.permissions or {'modules': []},
        }


class UserInvitation(Base):
    """Invitation of an e-mail address into an organization."""
    __tablename__ = 'user_invitations'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    invited_user_email = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)
    status = Column(String(20), default='pending')  # pending, accepted, declined
    invited_by_user_id = Column(String(36), ForeignKey('users.id'))
    created_at = Column(DateTime, default=datetime.utcnow)

    organization = relationship("Organization")

    __table_args__ = (
        Index('ix_user_invitations_email', 'invited_user_email'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'org_name': self.organization.name if self.organization else None,
            'invited_user_email': self.invited_user_email,
            'role': self.role,
            'status': self.status,
            'invited_by_user_id': self.invited_by_user_id,
            'created_at': _iso(self.created_at),
        }


class OrganizationInvitation(Base):
    """Code a super admin hands out so someone can found a new organization."""
    __tablename__ = 'organization_invitations'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(64), unique=True, nullable=False)
    org_name = Column(String(255), nullable=False)
    max_users = Column(Integer, default=5)
    created_by = Column(String(36), ForeignKey('users.id'))
    status = Column(String(20), default='pending')  # pending, accepted
    accepted_by_user_id = Column(String(36), ForeignKey('users.id'))
    accepted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'org_name': self.org_name,
            'max_users': self.max_users,
            'created_by': self.created_by,
            'status': self.status,
            'accepted_by_user_id': self.accepted_by_user_id,
            'accepted_at': _iso(self.accepted_at),
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# CRM - CUSTOMERS, PRODUCTS, EXPENSES
# =============================================================================

class Customer(Base):
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    customer_number = Column(String(50))
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    address = Column(Text)
    notes = Column(Text)
    is_reminder_relevant = Column(Boolean, default=True)
    created_by_user_id = Column(String(36), ForeignKey('users.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_customers_org', 'org_id'),
        Index('ix_customers_name', 'name'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'customer_number': self.customer_number,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'notes': self.notes,
            'is_reminder_relevant': self.is_reminder_relevant,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def to_summary(self):
        return {'id': self.id, 'name': self.name, 'email': self.email, 'customer_number': self.customer_number}


class Product(Base):
    """Goods carry a stock level; services usually do not."""
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    product_number = Column(String(50))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    selling_price = Column(Float, default=0.0)
    type = Column(String(20), default='good')  # good, service
    unit = Column(String(30))
    stock_level = Column(Float)
    minimum_stock_level = Column(Integer, default=0)
    stock_status = Column(String(30), default='Available')
    restock_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_products_org', 'org_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'product_number': self.product_number,
            'name': self.name,
            'description': self.description,
            'selling_price': self.selling_price or 0.0,
            'type': self.type,
            'unit': self.unit,
            'stock_level': self.stock_level,
            'minimum_stock_level': self.minimum_stock_level,
            'stock_status': self.stock_status,
            'restock_date': _iso(self.restock_date),
            'created_at': _iso(self.created_at),
        }


class Expense(Base):
    __tablename__ = 'expenses'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    expense_number = Column(String(50))
    description = Column(String(500), nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    category = Column(String(100))
    expense_date = Column(Date, nullable=False)
    user_id = Column(String(36), ForeignKey('users.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_expenses_org_date', 'org_id', 'expense_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'expense_number': self.expense_number,
            'description': self.description,
            'amount': self.amount or 0.0,
            'category': self.category,
            'expense_date': _iso(self.expense_date),
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# BILLING - INVOICES & QUOTES
# =============================================================================

class Invoice(Base):
    __tablename__ = 'invoices'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    invoice_number = Column(String(50))
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    user_id = Column(String(36), ForeignKey('users.id'))
    visit_id = Column(Integer, ForeignKey('visits.id'))
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    total_amount = Column(Float, default=0.0)
    status = Column(String(20), default='draft')  # draft, sent, paid, overdue
    customer_notes = Column(Text)
    internal_notes = Column(Text)
    payment_link_url = Column(String(1000))
    stripe_payment_intent_id = Column(String(100))
    was_sent_via_email = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
                         order_by="InvoiceItem.id")

    __table_args__ = (
        Index('ix_invoices_org_status', 'org_id', 'status'),
        Index('ix_invoices_customer', 'customer_id'),
    )

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'invoice_number': self.invoice_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'user_id': self.user_id,
            'visit_id': self.visit_id,
            'issue_date': _iso(self.issue_date),
            'due_date': _iso(self.due_date),
            'total_amount': self.total_amount or 0.0,
            'status': self.status,
            'customer_notes': self.customer_notes,
            'internal_notes': self.internal_notes,
            'payment_link_url': self.payment_link_url,
            'stripe_payment_intent_id': self.stripe_payment_intent_id,
            'was_sent_via_email': bool(self.was_sent_via_email),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id'))
    expense_id = Column(Integer, ForeignKey('expenses.id'))
    description = Column(Text)
    quantity = Column(Float, default=1.0)
    unit_price = Column(Float, default=0.0)
    vat_rate = Column(Float, default=19.0)

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'product_id': self.product_id,
            'expense_id': self.expense_id,
            'description': self.description,
            'quantity': self.quantity or 0.0,
            'unit_price': self.unit_price or 0.0,
            'vat_rate': self.vat_rate or 0.0,
            'unit': self.product.unit if self.product else None,
            'product_type': self.product.type if self.product else None,
        }


class Quote(Base):
    __tablename__ = 'quotes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    quote_number = Column(String(50))
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    user_id = Column(String(36), ForeignKey('users.id'))
    issue_date = Column(Date, nullable=False)
    valid_until_date = Column(Date, nullable=False)
    total_amount = Column(Float, default=0.0)
    status = Column(String(20), default='draft')  # draft, sent, accepted, declined
    notes = Column(Text)
    internal_notes = Column(Text)
    was_sent_via_email = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    items = relationship("QuoteItem", back_populates="quote", cascade="all, delete-orphan",
                         order_by="QuoteItem.id")

    __table_args__ = (
        Index('ix_quotes_org_status', 'org_id', 'status'),
        Index('ix_quotes_customer', 'customer_id'),
    )

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'quote_number': self.quote_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'user_id': self.user_id,
            'issue_date': _iso(self.issue_date),
            'valid_until_date': _iso(self.valid_until_date),
            'total_amount': self.total_amount or 0.0,
            'status': self.status,
            'notes': self.notes,
            'internal_notes': self.internal_notes,
            'was_sent_via_email': bool(self.was_sent_via_email),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class QuoteItem(Base):
    __tablename__ = 'quote_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id'))
    expense_id = Column(Integer, ForeignKey('expenses.id'))
    description = Column(Text)
    quantity = Column(Float, default=1.0)
    unit_price = Column(Float, default=0.0)
    vat_rate = Column(Float, default=19.0)

    quote = relationship("Quote", back_populates="items")
    product = relationship("Product")

    def to_dict(self):
        return {
            'id': self.id,
            'quote_id': self.quote_id,
            'product_id': self.product_id,
            'expense_id': self.expense_id,
            'description': self.description,
            'quantity': self.quantity or 0.0,
            'unit_price': self.unit_price or 0.0,
            'vat_rate': self.vat_rate or 0.0,
            'unit': self.product.unit if self.product else None,
            'product_type': self.product.type if self.product else None,
        }


# =============================================================================
# FIELD SERVICE - VISITS
# =============================================================================

class Visit(Base):
    __tablename__ = 'visits'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    visit_number = Column(String(50))
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    assigned_employee_id = Column(String(36), ForeignKey('users.id'))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default='planned')  # planned, completed, cancelled
    category = Column(String(30), default='Maintenance')
    location = Column(String(500))
    purpose = Column(Text)
    internal_notes = Column(Text)
    signature_storage_path = Column(String(500))
    signature_date = Column(DateTime)
    was_reminder_sent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    assigned_employee = relationship("User")
    products = relationship("VisitProduct", back_populates="visit", cascade="all, delete-orphan",
                            order_by="VisitProduct.id")
    expenses = relationship("VisitExpense", back_populates="visit", cascade="all, delete-orphan",
                            order_by="VisitExpense.id")

    __table_args__ = (
        Index('ix_visits_org_start', 'org_id', 'start_time'),
        Index('ix_visits_employee', 'assigned_employee_id'),
    )

    def to_dict(self, include_lines=False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'visit_number': self.visit_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'assigned_employee_id': self.assigned_employee_id,
            'assigned_employee_name': self.assigned_employee.full_name if self.assigned_employee else None,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'status': self.status,
            'category': self.category,
            'location': self.location,
            'purpose': self.purpose,
            'internal_notes': self.internal_notes,
            'signature_storage_path': self.signature_storage_path,
            'signature_date': _iso(self.signature_date),
            'was_reminder_sent': bool(self.was_reminder_sent),
            'created_at': _iso(self.created_at),
        }
        if include_lines:
            data['products'] = [p.to_dict() for p in self.products]
            data['expenses'] = [e.to_dict() for e in self.expenses]
        return data


class VisitProduct(Base):
    __tablename__ = 'visit_products'

    id = Column(Integer, primary_key=True, autoincrement=True)
    visit_id = Column(Integer, ForeignKey('visits.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False)
    quantity = Column(Float, default=1.0)
    unit_price = Column(Float)

    visit = relationship("Visit", back_populates="products")
    product = relationship("Product")

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'product_number': self.product.product_number if self.product else None,
            'product_type': self.product.type if self.product else None,
            'unit': self.product.unit if self.product else None,
            'quantity': self.quantity or 0.0,
            'unit_price': self.unit_price,
        }


class VisitExpense(Base):
    __tablename__ = 'visit_expenses'

    id = Column(Integer, primary_key=True, autoincrement=True)
    visit_id = Column(Integer, ForeignKey('visits.id', ondelete='CASCADE'), nullable=False)
    expense_id = Column(Integer, ForeignKey('expenses.id'), nullable=False)

    visit = relationship("Visit", back_populates="expenses")
    expense = relationship("Expense")

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'expense_id': self.expense_id,
            'description': self.expense.description if self.expense else None,
            'amount': self.expense.amount if self.expense else None,
        }


# =============================================================================
# SCHEDULING - APPOINTMENTS & TASKS
# =============================================================================

class Appointment(Base):
    """Calendar entry; absences (type 'absence') have no customer."""
    __tablename__ = 'appointments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    appointment_number = Column(String(50))
    title = Column(String(255), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id'))
    user_id = Column(String(36), ForeignKey('users.id'))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default='draft')  # draft, open, in_progress, done
    type = Column(String(20), default='standard')  # standard, absence
    is_all_day = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    user = relationship("User")

    __table_args__ = (
        Index('ix_appointments_org_start', 'org_id', 'start_time'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'appointment_number': self.appointment_number,
            'title': self.title,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'user_id': self.user_id,
            'user_name': self.user.full_name if self.user else None,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'status': self.status,
            'type': self.type,
            'is_all_day': bool(self.is_all_day),
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }


class Task(Base):
    __tablename__ = 'tasks'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    customer_id = Column(Integer, ForeignKey('customers.id'))
    user_id = Column(String(36), ForeignKey('users.id'))
    created_by_user_id = Column(String(36), ForeignKey('users.id'))
    start_time = Column(DateTime)
    end_time = Column(DateTime)
    is_complete = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        Index('ix_tasks_org_user', 'org_id', 'user_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'title': self.title,
            'description': self.description,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'user_id': self.user_id,
            'user_name': self.user.full_name if self.user else None,
            'created_by_user_id': self.created_by_user_id,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'is_complete': bool(self.is_complete),
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# CONTENT - TEXT BLOCKS, DOCUMENTS, E-MAIL LOG
# =============================================================================

class TextBlock(Base):
    __tablename__ = 'text_blocks'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    applicable_to = Column(JSONType, default=list)  # subset of invoice, quote, visit
    created_by_user_id = Column(String(36), ForeignKey('users.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'title': self.title,
            'content': self.content,
            'applicable_to': self.applicable_to or [],
            'created_at': _iso(self.created_at),
        }


class CustomerDocument(Base):
    __tablename__ = 'customer_documents'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    uploaded_by_user_id = Column(String(36), ForeignKey('users.id'))
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size_bytes = Column(Integer)
    mime_type = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'customer_id': self.customer_id,
            'uploaded_by_user_id': self.uploaded_by_user_id,
            'file_name': self.file_name,
            'file_path': self.file_path,
            'file_size_bytes': self.file_size_bytes,
            'mime_type': self.mime_type,
            'created_at': _iso(self.created_at),
        }


class EmailLog(Base):
    __tablename__ = 'email_logs'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id'))
    sent_by_user_id = Column(String(36), ForeignKey('users.id'))
    document_type = Column(String(30), nullable=False)  # invoice, quote, visit_reminder, visit_summary
    related_document_id = Column(String(50))
    subject = Column(String(500))
    recipient = Column(String(255))
    sent_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_email_logs_document', 'document_type', 'related_document_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'customer_id': self.customer_id,
            'sent_by_user_id': self.sent_by_user_id,
            'document_type': self.document_type,
            'related_document_id': self.related_document_id,
            'subject': self.subject,
            'recipient': self.recipient,
            'sent_at': _iso(self.sent_at),
        }


# =============================================================================
# NOTIFICATIONS & AUDIT
# =============================================================================

class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), ForeignKey('organizations.id'))
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    type = Column(String(30), default='generic')  # new_task, new_visit, new_appointment, generic
    related_entity_path = Column(String(255))
    related_entity_id = Column(String(50))
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_notifications_user_read', 'user_id', 'is_read'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'title': self.title,
            'body': self.body,
            'type': self.type,
            'related_entity_path': self.related_entity_path,
            'related_entity_id': self.related_entity_id,
            'is_read': bool(self.is_read),
            'created_at': _iso(self.created_at),
        }


class Changelog(Base):
    """Audit trail row written by the flush hook in services.audit_log."""
    __tablename__ = 'changelog'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36))
    user_email = Column(String(255), default='system')
    action = Column(String(10), nullable=False)  # INSERT, UPDATE, DELETE
    table_name = Column(String(100), nullable=False)
    record_id = Column(String(50))
    changes = Column(JSONType, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_changelog_org_created', 'org_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'user_email': self.user_email,
            'action': self.action,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'changes': self.changes or {},
            'created_at': _iso(self.created_at),
        }


# =============================================================================
# NUMBERING & STATIC CONTENT
# =============================================================================

class NumberSequence(Base):
    """Last issued number per organization, document type and year (0 for master data)."""
    __tablename__ = 'number_sequences'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id'), nullable=False)
    document_type = Column(String(30), nullable=False)
    year = Column(Integer, nullable=False, default=0)
    last_value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('org_id', 'document_type', 'year', name='uq_number_sequences'),
    )


class HelpContent(Base):
    __tablename__ = 'help_content'

    id = Column(Integer, primary_key=True, autoincrement=True)
    page_key = Column(String(100), unique=True, nullable=False)
    content_de = Column(Text)
    content_al = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'page_key': self.page_key,
            'content_de': self.content_de,
            'content_al': self.content_al,
            'updated_at': _iso(self.updated_at),
        }


class LegalContent(Base):
    __tablename__ = 'legal_content'

    key = Column(String(30), primary_key=True)  # agb, datenschutz
    content_de = Column(Text)
    content_al = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'key': self.key,
            'content_de': self.content_de,
            'content_al': self.content_al,
            'updated_at': _iso(self.updated_at),
        }
