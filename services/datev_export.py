"""
DATEV export - posting batch ("Buchungsstapel") CSV for accountants.

Invoices are booked per VAT rate against the debtor account, expenses per
mapped category against the creditor account.
"""

import logging
from datetime import date
from typing import Dict, List, Tuple

from sqlalchemy.orm import Session, joinedload

from database.models import Expense, Invoice, Organization
from services.document_totals import net_by_vat_rate
from services.errors import PermissionDeniedError, ServiceError
from app.utils.formatting import format_decimal_comma
from validators import ValidationError

logger = logging.getLogger(__name__)

DATEV_COLUMNS = [
    'Umsatz (ohne Soll/Haben-Kz)', 'Soll/Haben-Kennzeichen', 'WKZ Umsatz', 'Kurs', 'Basis-Umsatz',
    'WKZ Basis-Umsatz', 'Konto', 'Gegenkonto', 'BU-Schlüssel', 'Belegdatum', 'Belegfeld 1',
    'Belegfeld 2', 'Skonto', 'Buchungstext',
]

# Invoices in these states are bookable revenue
EXPORTED_INVOICE_STATUSES = ('sent', 'paid', 'overdue')

REVENUE_ACCOUNT_KEYS = {19: 'revenue_19', 7: 'revenue_7', 0: 'revenue_0'}
TAX_KEYS = {19: '3', 7: '2'}
EXPENSE_TAX_KEY = '9'
BOOKING_TEXT_LENGTH = 60

NO_DATA_MESSAGE = "No data could be formatted for DATEV. Check your data and settings."


def _row(amount: float, debit_credit: str, account: str, contra_account: str, tax_key: str,
         document_date: date, document_number: str, text: str) -> List[str]:
    return [
        format_decimal_comma(amount), debit_credit, 'EUR', '', '', '',
        account, contra_account, tax_key,
        document_date.strftime('%d%m') if document_date else '',
        document_number or '', '', '',
        text[:BOOKING_TEXT_LENGTH],
    ]


def invoice_rows(invoice, settings: Dict) -> List[List[str]]:
    """One gross booking per VAT rate that has a revenue account."""
    rows = []
    debtor = settings.get('debtor_account')
    customer_name = invoice.customer.name if invoice.customer else ''
    for rate, net in net_by_vat_rate(invoice.items).items():
        # Accounts exist for whole-number rates only; fractional rates are truncated
        rate = int(rate)
        revenue_account = settings.get(REVENUE_ACCOUNT_KEYS[rate]) if rate in REVENUE_ACCOUNT_KEYS else None
        if not revenue_account or not debtor:
            continue
        rows.append(_row(
            net * (1 + rate / 100.0), 'S', debtor, revenue_account, TAX_KEYS.get(rate, ''),
            invoice.issue_date, invoice.invoice_number, f"{invoice.invoice_number} {customer_name}",
        ))
    return rows


def expense_rows(expense, settings: Dict) -> List[List[str]]:
    account = (settings.get('expense_mappings') or {}).get(expense.category or '', '')
    creditor = settings.get('creditor_account')
    if not account or not creditor:
        return []
    return [_row(
        expense.amount or 0.0, 'H', account, creditor, EXPENSE_TAX_KEY,
        expense.expense_date, expense.expense_number, f"{expense.expense_number} {expense.description or ''}",
    )]


def build_datev_csv(invoices, expenses, settings: Dict, start: date, end: date,
                    source: str = 'ZoguOne Export') -> str:
    """
    Render the EXTF CSV.

    Raises:
        ServiceError: If no invoice or expense produced a booking row
    """
    settings = settings or {}
    rows = []
    for invoice in invoices:
        rows.extend(invoice_rows(invoice, settings))
    for expense in expenses:
        rows.extend(expense_rows(expense, settings))

    if not rows:
        raise ServiceError(NO_DATA_MESSAGE)

    header = [
        f'"EXTF";{len(rows) + 1};210;"Buchungsstapel";8;',
        f'"{source}";"";"";"";"";"";{start.strftime("%Y%m%d")};{end.strftime("%Y%m%d")};"";"";1;',
        ';'.join(f'"{column}"' for column in DATEV_COLUMNS),
    ]
    body = [';'.join(f'"{value}"' for value in row) for row in rows]
    return '\r\n'.join(header + body)


def datev_filename(today: date = None) -> str:
    return f"DATEV_Export_{(today or date.today()).isoformat()}.csv"


def export_datev(session: Session, org_id: str, start: date, end: date,
                 source: str = 'ZoguOne Export') -> Tuple[str, str]:
    """
    Export an organization's invoices and expenses in [start, end].

    Returns:
        (filename, csv text)
    """
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required", 'start_date')
    if end < start:
        raise ValidationError("end_date must not be before start_date", 'end_date')

    organization = session.get(Organization, org_id)
    if organization is None or not organization.is_datev_export_enabled:
        raise PermissionDeniedError("DATEV export is not enabled for this organization")

    invoices = session.query(Invoice).options(
        joinedload(Invoice.items), joinedload(Invoice.customer)
    ).filter(
        Invoice.org_id == org_id,
        Invoice.status.in_(EXPORTED_INVOICE_STATUSES),
        Invoice.issue_date >= start,
        Invoice.issue_date <= end,
    ).order_by(Invoice.issue_date, Invoice.invoice_number).all()

    expenses = session.query(Expense).filter(
        Expense.org_id == org_id,
        Expense.expense_date >= start,
        Expense.expense_date <= end,
    ).order_by(Expense.expense_date, Expense.expense_number).all()

    csv_text = build_datev_csv(invoices, expenses, organization.datev_settings or {}, start, end, source)
    logger.info(f"DATEV export for org {org_id}: {len(invoices)} invoices, {len(expenses)} expenses")
    return datev_filename(), csv_text
