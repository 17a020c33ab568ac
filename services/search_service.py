"""
Global search across customers, documents, products, tasks and appointments.
"""

import logging
from typing import Dict, List

from sqlalchemy import or_

from database.models import Appointment, Customer, Invoice, Product, Quote, Task, Visit
from services.base_repository import TenantRepository

logger = logging.getLogger(__name__)

RESULTS_PER_QUERY = 5
MIN_TERM_LENGTH = 3


def _unique(*result_lists) -> List:
    """Concatenate, keeping the first occurrence of every id."""
    seen = set()
    merged = []
    for results in result_lists:
        for row in results:
            if row.id in seen:
                continue
            seen.add(row.id)
            merged.append(row)
    return merged


def _customer_name(row):
    return row.customer.name if getattr(row, 'customer', None) else None


class SearchService(TenantRepository):
    """Case-insensitive substring search, a handful of hits per entity."""

    def _matches(self, model, *columns, term: str):
        conditions = [column.ilike(term) for column in columns]
        return self._scoped(model).filter(or_(*conditions)).limit(RESULTS_PER_QUERY).all()

    def _by_customer_name(self, model, term: str):
        return self._scoped(model).join(Customer, model.customer_id == Customer.id).filter(
            Customer.name.ilike(term)).limit(RESULTS_PER_QUERY).all()

    def search(self, query: str) -> Dict[str, List[Dict]]:
        """
        Returns:
            {entity: [{'id', 'label', 'sublabel', 'path'}]}; all lists are empty
            for terms shorter than three characters.
        """
        empty = {key: [] for key in ('customers', 'invoices', 'quotes', 'visits', 'appointments', 'products', 'tasks')}
        query = (query or '').strip()
        if len(query) < MIN_TERM_LENGTH:
            return empty

        term = f"%{query}%"
        customers = self._matches(Customer, Customer.name, Customer.customer_number, term=term)
        invoices = _unique(self._matches(Invoice, Invoice.invoice_number, term=term),
                           self._by_customer_name(Invoice, term))
        quotes = _unique(self._matches(Quote, Quote.quote_number, term=term),
                         self._by_customer_name(Quote, term))
        visits = _unique(self._matches(Visit, Visit.visit_number, Visit.purpose, Visit.category, term=term),
                         self._by_customer_name(Visit, term))
        appointments = _unique(self._matches(Appointment, Appointment.title, Appointment.appointment_number, term=term),
                               self._by_customer_name(Appointment, term))
        products = self._matches(Product, Product.name, Product.product_number, term=term)
        tasks = _unique(self._matches(Task, Task.title, term=term), self._by_customer_name(Task, term))

        results = {
            'customers': [{'id': c.id, 'label': c.name, 'sublabel': c.customer_number,
                           'path': f"/customers/{c.id}"} for c in customers],
            'invoices': [{'id': i.id, 'label': i.invoice_number, 'sublabel': _customer_name(i),
                          'path': f"/invoices/edit/{i.id}"} for i in invoices],
            'quotes': [{'id': q.id, 'label': q.quote_number, 'sublabel': _customer_name(q),
                        'path': f"/quotes/edit/{q.id}"} for q in quotes],
            'visits': [{'id': v.id, 'label': v.visit_number, 'sublabel': _customer_name(v) or v.purpose,
                        'path': f"/visits/edit/{v.id}"} for v in visits],
            'appointments': [{'id': a.id, 'label': a.title, 'sublabel': _customer_name(a) or a.appointment_number,
                              'path': f"/appointments/edit/{a.id}"} for a in appointments],
            'products': [{'id': p.id, 'label': p.name, 'sublabel': p.product_number,
                          'path': '/inventory'} for p in products],
            'tasks': [{'id': t.id, 'label': t.title, 'sublabel': _customer_name(t),
                       'path': '/tasks'} for t in tasks],
        }
        logger.debug(f"Search '{query}' returned {sum(len(v) for v in results.values())} hits")
        return results
