"""
Services package for ZoguOne.
Contains repository classes for database access and the business services.
"""

from services.billing_repository import InvoiceRepository, QuoteRepository
from services.crm_repository import CRMRepository
from services.dashboard_service import DashboardService
from services.expense_repository import ExpenseRepository
from services.exports import CustomerDataRepository
from services.inventory_repository import InventoryRepository
from services.organization_repository import OrganizationRepository
from services.scheduling_repository import SchedulingRepository
from services.search_service import SearchService
from services.text_block_repository import TextBlockRepository
from services.users_repository import UsersRepository
from services.visit_repository import VisitRepository

__all__ = [
    'CRMRepository',
    'CustomerDataRepository',
    'DashboardService',
    'ExpenseRepository',
    'InventoryRepository',
    'InvoiceRepository',
    'OrganizationRepository',
    'QuoteRepository',
    'SchedulingRepository',
    'SearchService',
    'TextBlockRepository',
    'UsersRepository',
    'VisitRepository',
]
