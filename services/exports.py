"""
Data exports: generic CSV lists and the GDPR (DSGVO) export and deletion of
everything stored about one customer.
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Tuple

from database.models import (
    Appointment, Customer, CustomerDocument, EmailLog, Expense, Invoice, Product, Quote, Task, Visit
)
from services.base_repository import TenantRepository
from services.errors import ServiceError
from services.stock import apply_stock_deltas, compute_stock_deltas

logger = logging.getLogger(__name__)

GDPR_SECTIONS = [
    'customer_details', 'invoices', 'invoice_items', 'quotes', 'quote_items', 'visits',
    'visit_products', 'visit_expenses', 'tasks', 'appointments', 'email_logs',
]


# =============================================================================
# CSV HELPERS
# =============================================================================

def json_to_csv(items: List[Dict[str, Any]]) -> str:
    """
    Header from the first row's keys; every cell JSON-encoded, None as an
    empty string. Rows joined with CRLF.
    """
    if not items:
        return ''
    header = list(items[0].keys())
    lines = [','.join(header)]
    for row in items:
        cells = []
        for field in header:
            if field not in row:
                cells.append('')
                continue
            value = row[field]
            cells.append(json.dumps('' if value is None else value, ensure_ascii=False, default=str))
        lines.append(','.join(cells))
    return '\r\n'.join(lines)


def escape_csv_cell(value: Any) -> str:
    text = '' if value is None else str(value)
    if ',' in text or '"' in text or '\n' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def csv_section(rows: List[Dict[str, Any]], name: str) -> str:
    if not rows:
        return ''
    header = list(rows[0].keys())
    lines = [f"SECTION,{name.upper()}", ','.join(escape_csv_cell(h) for h in header)]
    lines.extend(','.join(escape_csv_cell(row.get(h)) for h in header) for row in rows)
    return '\r\n'.join(lines)


def gdpr_csv(export: Dict[str, Any]) -> str:
    """Flatten the nested export into one multi-section CSV; empty sections are left out."""
    invoices, invoice_items = [], []
    for invoice in export.get('invoices') or []:
        invoice = dict(invoice)
        invoice_items.extend({'invoice_id': invoice['id'], **item} for item in invoice.pop('items', []) or [])
        invoices.append(invoice)

    quotes, quote_items = [], []
    for quote in export.get('quotes') or []:
        quote = dict(quote)
        quote_items.extend({'quote_id': quote['id'], **item} for item in quote.pop('items', []) or [])
        quotes.append(quote)

    visits, visit_products, visit_expenses = [], [], []
    for visit in export.get('visits') or []:
        visit = dict(visit)
        visit_products.extend({'visit_id': visit['id'], **line} for line in visit.pop('products', []) or [])
        visit_expenses.extend({'visit_id': visit['id'], **line} for line in visit.pop('expenses', []) or [])
        visits.append(visit)

    details = export.get('customer_details')
    sections = {
        'customer_details': details if isinstance(details, list) else [details] if details else [],
        'invoices': invoices,
        'invoice_items': invoice_items,
        'quotes': quotes,
        'quote_items': quote_items,
        'visits': visits,
        'visit_products': visit_products,
        'visit_expenses': visit_expenses,
        'tasks': export.get('tasks') or [],
        'appointments': export.get('appointments') or [],
        'email_logs': export.get('email_logs') or [],
    }
    parts = [csv_section(sections[name], name) for name in GDPR_SECTIONS if sections[name]]
    return '\r\n\r\n'.join(parts)


def gdpr_filename(customer_name: str, extension: str, today: date = None) -> str:
    safe_name = '_'.join((customer_name or 'customer').split())
    return f"DSGVO_Export_{safe_name}_{(today or date.today()).isoformat()}.{extension}"


# =============================================================================
# GDPR REPOSITORY
# =============================================================================

class CustomerDataRepository(TenantRepository):
    """Export and erase all data linked to a customer."""

    def export_customer_data(self, customer_id: int) -> Dict[str, Any]:
        customer = self._get(Customer, customer_id, 'Customer')

        def rows(model, order_column, **to_dict_kwargs):
            query = self._scoped(model).filter(model.customer_id == customer.id).order_by(order_column)
            return [row.to_dict(**to_dict_kwargs) for row in query.all()]

        data = {
            'customer_details': customer.to_dict(),
            'invoices': rows(Invoice, Invoice.issue_date, include_items=True),
            'quotes': rows(Quote, Quote.issue_date, include_items=True),
            'visits': rows(Visit, Visit.start_time, include_lines=True),
            'tasks': rows(Task, Task.created_at),
            'appointments': rows(Appointment, Appointment.start_time),
            'email_logs': rows(EmailLog, EmailLog.sent_at),
            'documents': rows(CustomerDocument, CustomerDocument.created_at),
        }
        logger.info(f"Exported GDPR data of customer {customer.customer_number}")
        return data

    def export_as_json(self, customer_id: int) -> Tuple[str, str]:
        data = self.export_customer_data(customer_id)
        return (gdpr_filename(data['customer_details']['name'], 'json'),
                json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def export_as_csv(self, customer_id: int) -> Tuple[str, str]:
        data = self.export_customer_data(customer_id)
        return gdpr_filename(data['customer_details']['name'], 'csv'), gdpr_csv(data)

    def delete_customer_data(self, customer_id: int, storage=None) -> Dict[str, int]:
        """
        Permanently delete a customer with its documents, e-mails, tasks,
        appointments, visits, quotes and invoices. Stock reserved by the
        deleted documents is released.
        """
        customer = self._get(Customer, customer_id, 'Customer', lock=True)
        counts = {}

        for document_type, model, lines_attr in (('invoice', Invoice, 'items'),
                                                 ('quote', Quote, 'items'),
                                                 ('visit', Visit, 'products')):
            documents = self._scoped(model).filter(model.customer_id == customer.id).all()
            for document in documents:
                lines = [(line.product_id, line.quantity) for line in getattr(document, lines_attr)]
                apply_stock_deltas(self.session, document.org_id,
                                   compute_stock_deltas(document_type, document.status, lines, None, []))
                if document_type == 'visit':
                    self.session.query(Invoice).filter(Invoice.visit_id == document.id).update(
                        {Invoice.visit_id: None}, synchronize_session=False)
                    if storage is not None and document.signature_storage_path:
                        storage.delete(document.signature_storage_path)
                self.session.delete(document)
            counts[f"{document_type}s"] = len(documents)

        documents = self._scoped(CustomerDocument).filter(CustomerDocument.customer_id == customer.id).all()
        for document in documents:
            if storage is not None:
                storage.delete(document.file_path)
            self.session.delete(document)
        counts['documents'] = len(documents)

        for key, model in (('tasks', Task), ('appointments', Appointment), ('email_logs', EmailLog)):
            rows = self._scoped(model).filter(model.customer_id == customer.id).all()
            for row in rows:
                self.session.delete(row)
            counts[key] = len(rows)

        self.session.delete(customer)
        self.session.flush()

        logger.info(f"Deleted all data of customer {customer_id}: {counts}")
        return counts


# =============================================================================
# LIST EXPORTS
# =============================================================================

# entity -> (model, order column name)
LIST_EXPORTS = {
    'customers': (Customer, 'customer_number'),
    'products': (Product, 'product_number'),
    'expenses': (Expense, 'expense_date'),
    'invoices': (Invoice, 'issue_date'),
    'quotes': (Quote, 'issue_date'),
    'visits': (Visit, 'start_time'),
    'appointments': (Appointment, 'start_time'),
}


class ListExportRepository(TenantRepository):
    """CSV download of a whole entity list."""

    def export_list(self, entity: str, today: date = None) -> Tuple[str, str]:
        """Returns (filename, csv text)."""
        if entity not in LIST_EXPORTS:
            raise ServiceError(f"Unknown export: {entity}")
        model, order_column = LIST_EXPORTS[entity]
        rows = [row.to_dict() for row in self._scoped(model).order_by(getattr(model, order_column)).all()]
        logger.info(f"Exported {len(rows)} {entity}")
        return f"{entity}_{(today or date.today()).isoformat()}.csv", json_to_csv(rows)
