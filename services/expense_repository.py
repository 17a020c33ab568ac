"""
Expense Repository - business expenses, billable through invoices and visits.
"""

import logging
from datetime import date
from typing import Dict, List

from sqlalchemy import or_

from database.models import Expense
from services.base_repository import TenantRepository, apply_sort, paginate
from services.numbering import next_number
from validators import ensure_valid, parse_date, to_number, validate_expense_payload

logger = logging.getLogger(__name__)

EXPENSE_FIELDS = ['description', 'amount', 'category', 'expense_date']
EXPENSE_SORT_FIELDS = ['expense_date', 'expense_number', 'amount', 'description', 'created_at']


class ExpenseRepository(TenantRepository):
    """Repository for expense database operations."""

    def list_expenses(self, search: str = None, category: str = None,
                      start_date: date = None, end_date: date = None,
                      page: int = 1, per_page: int = 25,
                      sort_by: str = 'expense_date', sort_order: str = 'desc') -> Dict:
        query = self._scoped(Expense)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Expense.description.ilike(term), Expense.expense_number.ilike(term)))
        if category:
            query = query.filter(Expense.category == category)
        if start_date:
            query = query.filter(Expense.expense_date >= start_date)
        if end_date:
            query = query.filter(Expense.expense_date <= end_date)
        query = apply_sort(query, Expense, sort_by, sort_order, EXPENSE_SORT_FIELDS, 'expense_date')
        return paginate(query, page, per_page)

    def get_expense(self, expense_id: int) -> Dict:
        return self._get(Expense, expense_id, 'Expense').to_dict()

    def get_expenses(self, expense_ids: List[int]) -> List[Expense]:
        if not expense_ids:
            return []
        return self._scoped(Expense).filter(Expense.id.in_(expense_ids)).all()

    def categories(self) -> List[str]:
        rows = self._scoped(Expense).with_entities(Expense.category).filter(
            Expense.category != None  # noqa: E711
        ).distinct().all()
        return sorted(row[0] for row in rows if row[0])

    def _apply(self, expense: Expense, data: Dict):
        for key in EXPENSE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key == 'amount':
                value = to_number(value, key)
            elif key == 'expense_date':
                value = parse_date(value, key)
            setattr(expense, key, value)

    def create_expense(self, data: Dict) -> Dict:
        ensure_valid(validate_expense_payload(data))
        org_id = self._require_org()
        expense_date = parse_date(data['expense_date'], 'expense_date')

        expense = Expense(
            org_id=org_id,
            expense_number=next_number(self.session, org_id, 'expense', today=expense_date),
            user_id=self.user_id,
        )
        self._apply(expense, data)
        self.session.add(expense)
        self.session.flush()

        logger.info(f"Created expense: {expense.expense_number}")
        return expense.to_dict()

    def update_expense(self, expense_id: int, data: Dict) -> Dict:
        expense = self._get(Expense, expense_id, 'Expense')
        ensure_valid(validate_expense_payload({**expense.to_dict(), **data}))
        self._apply(expense, data)
        self.session.flush()
        logger.info(f"Updated expense: {expense_id}")
        return expense.to_dict()

    def copy_expense(self, expense_id: int) -> Dict:
        source = self._get(Expense, expense_id, 'Expense')
        today = date.today()
        copy = Expense(
            org_id=source.org_id,
            expense_number=next_number(self.session, source.org_id, 'expense', today=today),
            description=f"(Copy) {source.description}",
            amount=source.amount,
            category=source.category,
            expense_date=today,
            user_id=self.user_id,
        )
        self.session.add(copy)
        self.session.flush()
        logger.info(f"Copied expense {expense_id} to {copy.expense_number}")
        return copy.to_dict()

    def delete_expense(self, expense_id: int) -> bool:
        expense = self._get(Expense, expense_id, 'Expense')
        self.session.delete(expense)
        self.session.flush()
        logger.info(f"Deleted expense: {expense_id}")
        return True
