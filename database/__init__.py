"""
Database package for ZoguOne.
Provides SQLAlchemy models, connection management, and session handling.
"""

from database.connection import (
    Base,
    configure_database,
    get_engine,
    get_db_session,
    init_db,
    check_db_connection
)

from database.models import (
    Organization,
    User,
    RolePermission,
    UserInvitation,
    OrganizationInvitation,
    Customer,
    Product,
    Expense,
    Invoice,
    InvoiceItem,
    Quote,
    QuoteItem,
    Visit,
    VisitProduct,
    VisitExpense,
    Appointment,
    Task,
    TextBlock,
    CustomerDocument,
    EmailLog,
    Notification,
    Changelog,
    NumberSequence,
    HelpContent,
    LegalContent
)

__all__ = [
    # Connection
    'Base',
    'configure_database',
    'get_engine',
    'get_db_session',
    'init_db',
    'check_db_connection',
    # Models
    'Organization',
    'User',
    'RolePermission',
    'UserInvitation',
    'OrganizationInvitation',
    'Customer',
    'Product',
    'Expense',
    'Invoice',
    'InvoiceItem',
    'Quote',
    'QuoteItem',
    'Visit',
    'VisitProduct',
    'VisitExpense',
    'Appointment',
    'Task',
    'TextBlock',
    'CustomerDocument',
    'EmailLog',
    'Notification',
    'Changelog',
    'NumberSequence',
    'HelpContent',
    'LegalContent'
]
