"""
Billing Repository - invoices and quotes with their line items.

Saving a document replaces its items wholesale, recomputes the total on the
server and applies the stock reservation change of its product lines.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_

from database.models import Customer, Expense, Invoice, InvoiceItem, Organization, Product, Quote, QuoteItem
from services import pdf_generator
from services.base_repository import TenantRepository, apply_sort, paginate
from services.document_totals import (
    add_expenses_to_items, add_products_to_items, calculate_totals, document_total, is_blank_line
)
from services.email_service import email_history, ensure_customer_mail_allowed, log_email
from services.errors import PermissionDeniedError, ServiceError
from services.numbering import next_number
from services.permissions import can_convert_quote, can_edit_invoice, can_save_quote
from services.stock import apply_stock_deltas, compute_stock_deltas
from validators import (
    ValidationError, ensure_valid, parse_date, to_number,
    validate_invoice_payload, validate_quote_payload
)

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 14
QUOTE_VALID_DAYS = 30

# An invoice that has been in one of these states was already sent once
SENT_INVOICE_STATUSES = ('sent', 'paid', 'overdue')

ITEM_FIELDS = ('product_id', 'expense_id', 'description', 'quantity', 'unit_price', 'vat_rate')


def _optional_id(value, field: str) -> Optional[int]:
    if value in (None, '', 0):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field)


def item_to_dict(item) -> Dict[str, Any]:
    return {key: getattr(item, key) for key in ITEM_FIELDS}


def load_logo(organization: Organization, storage) -> Optional[bytes]:
    """Logo bytes from storage, or None when there is no stored logo."""
    if storage is None or not organization or not organization.logo_url:
        return None
    if not storage.exists(organization.logo_url):
        return None
    return storage.read(organization.logo_url)


class BillingRepository(TenantRepository):
    """Line item handling shared by invoices and quotes."""

    document_type = None
    model = None
    item_model = None
    number_attr = None
    label = None

    def __init__(self, session, organization_id, user=None, payment_service=None):
        super().__init__(session, organization_id, user)
        self.payment_service = payment_service

    # =========================================================================
    # LINE ITEMS
    # =========================================================================

    def _clean_items(self, items) -> List[Dict[str, Any]]:
        """Normalize posted items, drop blank editor lines and check product/expense ownership."""
        cleaned = []
        for item in items or []:
            if is_blank_line(item):
                continue
            cleaned.append({
                'product_id': _optional_id(item.get('product_id'), 'product_id'),
                'expense_id': _optional_id(item.get('expense_id'), 'expense_id'),
                'description': (item.get('description') or '').strip(),
                'quantity': to_number(item.get('quantity'), 'quantity'),
                'unit_price': to_number(item.get('unit_price'), 'unit_price'),
                'vat_rate': to_number(item.get('vat_rate'), 'vat_rate'),
            })

        product_ids = {item['product_id'] for item in cleaned if item['product_id']}
        if product_ids and self._scoped(Product).filter(Product.id.in_(product_ids)).count() != len(product_ids):
            raise ValidationError("Items reference an unknown product", 'items')
        expense_ids = {item['expense_id'] for item in cleaned if item['expense_id']}
        if expense_ids and self._scoped(Expense).filter(Expense.id.in_(expense_ids)).count() != len(expense_ids):
            raise ValidationError("Items reference an unknown expense", 'items')
        return cleaned

    @staticmethod
    def _lines(items) -> List:
        """(product_id, quantity) pairs for stock reservation."""
        lines = []
        for item in items:
            if isinstance(item, dict):
                lines.append((item.get('product_id'), item.get('quantity')))
            else:
                lines.append((item.product_id, item.quantity))
        return lines

    def _replace_items(self, document, items: List[Dict[str, Any]]):
        document.items = [self.item_model(**item) for item in items]

    def add_products(self, items: List[Dict], product_ids: List[int]) -> List[Dict]:
        """Merge products into an editor item list (existing line: quantity + 1)."""
        products = {p.id: p for p in self._scoped(Product).filter(Product.id.in_(product_ids or [])).all()}
        ordered = [products[pid] for pid in product_ids if pid in products]
        return add_products_to_items(items or [], ordered)

    def add_expenses(self, items: List[Dict], expense_ids: List[int]) -> List[Dict]:
        """Merge expenses into an editor item list (each expense at most once)."""
        expenses = {e.id: e for e in self._scoped(Expense).filter(Expense.id.in_(expense_ids or [])).all()}
        ordered = [expenses[eid] for eid in expense_ids if eid in expenses]
        return add_expenses_to_items(items or [], ordered)

    def _apply_stock(self, document, initial_status, initial_lines, final_status, final_lines):
        deltas = compute_stock_deltas(self.document_type, initial_status, initial_lines, final_status, final_lines)
        return apply_stock_deltas(self.session, document.org_id, deltas)

    # =========================================================================
    # READ
    # =========================================================================

    def _list_query(self, search: str = None, status: str = None, customer_id: int = None):
        query = self._scoped(self.model).join(Customer, self.model.customer_id == Customer.id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(getattr(self.model, self.number_attr).ilike(term), Customer.name.ilike(term)))
        if status:
            query = query.filter(self.model.status == status)
        if customer_id:
            query = query.filter(self.model.customer_id == customer_id)
        return query

    def _sorted_page(self, query, sort_fields, page, per_page, sort_by, sort_order) -> Dict:
        if sort_by == 'customer_name':
            column = Customer.name
            query = query.order_by(column.asc() if (sort_order or '').lower() == 'asc' else column.desc())
        else:
            query = apply_sort(query, self.model, sort_by, sort_order, sort_fields, 'issue_date')
        return paginate(query, page, per_page)

    def _detail(self, document) -> Dict:
        data = document.to_dict(include_items=True)
        organization = self.session.get(Organization, document.org_id)
        data['customer'] = document.customer.to_dict() if document.customer else None
        data['organization'] = organization.to_dict() if organization else None
        data['totals'] = calculate_totals(document.items)
        data['email_history'] = email_history(self.session, self.document_type, document.id)
        return data

    def render_pdf(self, document_id: int, language: str = 'de', storage=None):
        """Returns (filename, pdf bytes)."""
        document = self._get(self.model, document_id, self.label)
        organization = self.session.get(Organization, document.org_id)
        data = document.to_dict(include_items=True)
        pdf = pdf_generator.generate_document_pdf(
            data, self.document_type, organization.to_dict(), document.customer.to_dict(),
            language=language, logo_bytes=load_logo(organization, storage),
        )
        return pdf_generator.document_filename(data, self.document_type, language), pdf

    def send_by_email(self, document_id: int, email_service, language: str = 'de',
                      storage=None, message: str = None) -> Dict:
        """
        Mail the document PDF to the customer and record it in the e-mail log.

        Raises:
            ServiceError: If mail sending is disabled or the customer has no e-mail
            ExternalServiceError: If the SMTP server fails
        """
        document = self._get(self.model, document_id, self.label)
        organization = self.session.get(Organization, document.org_id)
        recipient = ensure_customer_mail_allowed(organization, document.customer)

        filename, pdf = self.render_pdf(document_id, language, storage)
        number = getattr(document, self.number_attr)
        company = organization.company_name or organization.name
        subject = f"{pdf_generator.label(self.document_type, language)} {number} - {company}"
        body = message or (
            f"Dear {document.customer.name},\n\n"
            f"please find attached {self.document_type} {number}.\n\n"
            f"Kind regards\n{company}\n"
        )

        email_service.send_email(recipient, subject, body, attachments=[(filename, pdf, 'pdf')],
                                 reply_to=organization.email, from_name=company)
        log_email(self.session, document.org_id, self.document_type, document.id, recipient, subject,
                  customer_id=document.customer_id, sent_by_user_id=self.user_id)
        document.was_sent_via_email = True
        self.session.flush()

        logger.info(f"Sent {self.document_type} {number} to {recipient}")
        return {'recipient': recipient, 'subject': subject}


# =============================================================================
# INVOICES
# =============================================================================

class InvoiceRepository(BillingRepository):
    """Repository for invoice database operations."""

    document_type = 'invoice'
    model = Invoice
    item_model = InvoiceItem
    number_attr = 'invoice_number'
    label = 'Invoice'

    SORT_FIELDS = ['invoice_number', 'issue_date', 'due_date', 'total_amount', 'status', 'created_at']

    def list_invoices(self, search: str = None, status: str = None, customer_id: int = None,
                      page: int = 1, per_page: int = 25,
                      sort_by: str = 'issue_date', sort_order: str = 'desc') -> Dict:
        query = self._list_query(search, status, customer_id)
        return self._sorted_page(query, self.SORT_FIELDS, page, per_page, sort_by, sort_order)

    def get_invoice(self, invoice_id: int) -> Dict:
        invoice = self._get(Invoice, invoice_id, 'Invoice')
        data = self._detail(invoice)
        data['can_edit'] = can_edit_invoice(self.role, invoice.status)
        return data

    def save_invoice(self, data: Dict, invoice_id: int = None) -> Dict:
        """
        Create or update an invoice.

        Returns:
            {'invoice': dict with items, 'warnings': [str]}; a failed payment
            link is a warning, the invoice is still saved.
        """
        invoice = None
        initial_status, initial_lines = None, []
        if invoice_id:
            invoice = self._get(Invoice, invoice_id, 'Invoice', lock=True)
            initial_status = invoice.status
            initial_lines = self._lines(invoice.items)

        if not can_edit_invoice(self.role, initial_status):
            raise PermissionDeniedError("This invoice is read-only" if invoice else
                                        "You are not allowed to create invoices")

        merged = {**(invoice.to_dict() if invoice else {}), **data}
        ensure_valid(validate_invoice_payload(merged), 'invoice')
        customer = self._get(Customer, merged['customer_id'], 'Customer')

        issue_date = parse_date(merged.get('issue_date'), 'issue_date') or date.today()
        due_date = parse_date(merged.get('due_date'), 'due_date') or issue_date + timedelta(days=INVOICE_DUE_DAYS)
        status = merged.get('status') or 'draft'

        replace_items = invoice is None or 'items' in data
        items = self._clean_items(data.get('items')) if replace_items else [item_to_dict(i) for i in invoice.items]

        if invoice is None:
            org_id = self._require_org()
            invoice = Invoice(
                org_id=org_id,
                invoice_number=next_number(self.session, org_id, 'invoice', today=issue_date),
                user_id=self.user_id,
            )
            self.session.add(invoice)

        invoice.customer_id = customer.id
        invoice.issue_date = issue_date
        invoice.due_date = due_date
        invoice.status = status
        for key in ('customer_notes', 'internal_notes'):
            if key in data:
                setattr(invoice, key, data[key])
        if replace_items:
            self._replace_items(invoice, items)
        invoice.total_amount = document_total(items)
        self.session.flush()

        self._apply_stock(invoice, initial_status, initial_lines, status, self._lines(items))

        warnings = []
        if status == 'sent' and initial_status not in SENT_INVOICE_STATUSES and not invoice.payment_link_url:
            organization = self.session.get(Organization, invoice.org_id)
            if organization and organization.is_payment_gateway_enabled:
                warning = self._attach_payment_link(invoice, organization)
                if warning:
                    warnings.append(warning)

        self.session.flush()
        logger.info(f"Saved invoice {invoice.invoice_number} ({status})")
        return {'invoice': invoice.to_dict(include_items=True), 'warnings': warnings}

    def _attach_payment_link(self, invoice: Invoice, organization: Organization) -> Optional[str]:
        """Create and store a payment link; returns a warning message on failure."""
        try:
            if self.payment_service is None:
                raise ServiceError("Payment gateway is not configured")
            link = self.payment_service.create_payment_link(invoice, organization)
        except ServiceError as e:
            logger.warning(f"Payment link for invoice {invoice.invoice_number} failed: {e.message}")
            return f"Could not auto-generate payment link: {e.message}"

        if not link.get('url'):
            return "Could not auto-generate payment link: the payment provider returned no URL"
        invoice.payment_link_url = link['url']
        invoice.stripe_payment_intent_id = link.get('payment_intent_id')
        return None

    def create_payment_link(self, invoice_id: int) -> Dict:
        """Return the stored payment link or create a new one."""
        invoice = self._get(Invoice, invoice_id, 'Invoice')
        if invoice.payment_link_url:
            return {'url': invoice.payment_link_url, 'created': False}

        organization = self.session.get(Organization, invoice.org_id)
        if not organization.is_payment_gateway_enabled:
            raise ServiceError("Payment gateway is not enabled for this organization")
        if self.payment_service is None:
            raise ServiceError("Payment gateway is not configured")

        link = self.payment_service.create_payment_link(invoice, organization)
        if not link.get('url'):
            raise ServiceError("The payment provider did not return a payment URL")
        invoice.payment_link_url = link['url']
        invoice.stripe_payment_intent_id = link.get('payment_intent_id')
        self.session.flush()
        return {'url': invoice.payment_link_url, 'created': True}

    def get_receipt_url(self, invoice_id: int) -> Optional[str]:
        invoice = self._get(Invoice, invoice_id, 'Invoice')
        if self.payment_service is None:
            raise ServiceError("Payment gateway is not configured")
        organization = self.session.get(Organization, invoice.org_id)
        return self.payment_service.get_receipt_url(invoice, organization)

    def delete_invoice(self, invoice_id: int) -> bool:
        invoice = self._get(Invoice, invoice_id, 'Invoice', lock=True)
        if not can_edit_invoice(self.role, invoice.status):
            raise PermissionDeniedError("This invoice cannot be deleted")

        self._apply_stock(invoice, invoice.status, self._lines(invoice.items), None, [])
        self.session.delete(invoice)
        self.session.flush()
        logger.info(f"Deleted invoice: {invoice_id}")
        return True

    def copy_invoice(self, invoice_id: int) -> Dict:
        """Draft copy with a new number, today's date and the same items."""
        if not can_edit_invoice(self.role, None):
            raise PermissionDeniedError("You are not allowed to create invoices")
        source = self._get(Invoice, invoice_id, 'Invoice')
        today = date.today()

        copy = Invoice(
            org_id=source.org_id,
            invoice_number=next_number(self.session, source.org_id, 'invoice', today=today),
            customer_id=source.customer_id,
            user_id=self.user_id,
            issue_date=today,
            due_date=today + timedelta(days=INVOICE_DUE_DAYS),
            status='draft',
            customer_notes=f"(Copy of {source.invoice_number})\n{source.customer_notes or ''}".strip(),
            internal_notes=source.internal_notes,
        )
        copy.items = [InvoiceItem(**item_to_dict(item)) for item in source.items]
        copy.total_amount = document_total(source.items)
        self.session.add(copy)
        self.session.flush()

        logger.info(f"Copied invoice {source.invoice_number} to {copy.invoice_number}")
        return copy.to_dict(include_items=True)

    def mark_overdue(self, today: date = None) -> int:
        """Sent invoices past their due date become overdue. Returns the number changed."""
        today = today or date.today()
        invoices = self._scoped(Invoice).filter(Invoice.status == 'sent', Invoice.due_date < today).all()
        for invoice in invoices:
            invoice.status = 'overdue'
        self.session.flush()
        if invoices:
            logger.info(f"Marked {len(invoices)} invoices as overdue")
        return len(invoices)


# =============================================================================
# QUOTES
# =============================================================================

class QuoteRepository(BillingRepository):
    """Repository for quote database operations."""

    document_type = 'quote'
    model = Quote
    item_model = QuoteItem
    number_attr = 'quote_number'
    label = 'Quote'

    SORT_FIELDS = ['quote_number', 'issue_date', 'valid_until_date', 'total_amount', 'status', 'created_at']

    def list_quotes(self, search: str = None, status: str = None, customer_id: int = None,
                    page: int = 1, per_page: int = 25,
                    sort_by: str = 'issue_date', sort_order: str = 'desc', today: date = None) -> Dict:
        """The pseudo status 'expired' selects sent quotes whose validity has passed."""
        if status == 'expired':
            query = self._list_query(search, 'sent', customer_id).filter(
                Quote.valid_until_date < (today or date.today()))
        else:
            query = self._list_query(search, status, customer_id)
        return self._sorted_page(query, self.SORT_FIELDS, page, per_page, sort_by, sort_order)

    def get_quote(self, quote_id: int) -> Dict:
        quote = self._get(Quote, quote_id, 'Quote')
        data = self._detail(quote)
        data['can_edit'] = can_save_quote(self.role, quote.status)
        data['can_convert'] = can_convert_quote(self.role, quote.status)
        return data

    def _check_fixed_prices(self, quote: Optional[Quote], items: List[Dict]):
        """Field service employees keep the stored price of every product line."""
        previous = {item.product_id: item.unit_price for item in (quote.items if quote else []) if item.product_id}
        product_ids = [item['product_id'] for item in items if item['product_id']]
        selling_prices = {
            p.id: p.selling_price or 0.0
            for p in self._scoped(Product).filter(Product.id.in_(product_ids or [])).all()
        }
        for item in items:
            product_id = item['product_id']
            if not product_id:
                continue
            expected = previous.get(product_id, selling_prices.get(product_id, 0.0))
            if abs((item['unit_price'] or 0.0) - (expected or 0.0)) > 0.005:
                raise PermissionDeniedError("Field service employees cannot change the unit price of products")

    def save_quote(self, data: Dict, quote_id: int = None) -> Dict:
        quote = None
        initial_status, initial_lines = None, []
        if quote_id:
            quote = self._get(Quote, quote_id, 'Quote', lock=True)
            initial_status = quote.status
            initial_lines = self._lines(quote.items)

        if not can_save_quote(self.role, initial_status):
            raise PermissionDeniedError("This quote is read-only" if quote else
                                        "You are not allowed to create quotes")

        merged = {**(quote.to_dict() if quote else {}), **data}
        ensure_valid(validate_quote_payload(merged), 'quote')
        customer = self._get(Customer, merged['customer_id'], 'Customer')

        issue_date = parse_date(merged.get('issue_date'), 'issue_date') or date.today()
        valid_until = (parse_date(merged.get('valid_until_date'), 'valid_until_date')
                       or issue_date + timedelta(days=QUOTE_VALID_DAYS))
        status = merged.get('status') or 'draft'

        replace_items = quote is None or 'items' in data
        items = self._clean_items(data.get('items')) if replace_items else [item_to_dict(i) for i in quote.items]
        if replace_items and self.role == 'field_service_employee':
            self._check_fixed_prices(quote, items)

        if quote is None:
            org_id = self._require_org()
            quote = Quote(
                org_id=org_id,
                quote_number=next_number(self.session, org_id, 'quote', today=issue_date),
                user_id=self.user_id,
            )
            self.session.add(quote)

        quote.customer_id = customer.id
        quote.issue_date = issue_date
        quote.valid_until_date = valid_until
        quote.status = status
        for key in ('notes', 'internal_notes'):
            if key in data:
                setattr(quote, key, data[key])
        if replace_items:
            self._replace_items(quote, items)
        quote.total_amount = document_total(items)
        self.session.flush()

        self._apply_stock(quote, initial_status, initial_lines, status, self._lines(items))
        self.session.flush()

        logger.info(f"Saved quote {quote.quote_number} ({status})")
        return {'quote': quote.to_dict(include_items=True), 'warnings': []}

    def delete_quote(self, quote_id: int) -> bool:
        quote = self._get(Quote, quote_id, 'Quote', lock=True)
        if not can_save_quote(self.role, quote.status):
            raise PermissionDeniedError("This quote cannot be deleted")

        self._apply_stock(quote, quote.status, self._lines(quote.items), None, [])
        self.session.delete(quote)
        self.session.flush()
        logger.info(f"Deleted quote: {quote_id}")
        return True

    def copy_quote(self, quote_id: int) -> Dict:
        if not can_save_quote(self.role, None):
            raise PermissionDeniedError("You are not allowed to create quotes")
        source = self._get(Quote, quote_id, 'Quote')
        today = date.today()

        copy = Quote(
            org_id=source.org_id,
            quote_number=next_number(self.session, source.org_id, 'quote', today=today),
            customer_id=source.customer_id,
            user_id=self.user_id,
            issue_date=today,
            valid_until_date=today + timedelta(days=QUOTE_VALID_DAYS),
            status='draft',
            notes=f"(Copy of {source.quote_number})\n{source.notes or ''}".strip(),
            internal_notes=source.internal_notes,
        )
        copy.items = [QuoteItem(**item_to_dict(item)) for item in source.items]
        copy.total_amount = document_total(source.items)
        self.session.add(copy)
        self.session.flush()

        logger.info(f"Copied quote {source.quote_number} to {copy.quote_number}")
        return copy.to_dict(include_items=True)

    def convert_to_invoice(self, quote_id: int) -> Dict:
        """
        Create a draft invoice from the quote and mark the quote accepted.

        Raises:
            PermissionDeniedError: For super admins, field service employees
                and quotes that are already accepted
        """
        quote = self._get(Quote, quote_id, 'Quote', lock=True)
        if not can_convert_quote(self.role, quote.status):
            raise PermissionDeniedError("This quote cannot be converted to an invoice")

        today = date.today()
        invoice = Invoice(
            org_id=quote.org_id,
            invoice_number=next_number(self.session, quote.org_id, 'invoice', today=today),
            customer_id=quote.customer_id,
            user_id=self.user_id,
            issue_date=today,
            due_date=today + timedelta(days=INVOICE_DUE_DAYS),
            status='draft',
            customer_notes=quote.notes,
            internal_notes=f"Created from Quote #{quote.quote_number}",
        )
        invoice.items = [InvoiceItem(**item_to_dict(item)) for item in quote.items]
        invoice.total_amount = document_total(quote.items)
        self.session.add(invoice)

        lines = self._lines(quote.items)
        initial_status = quote.status
        quote.status = 'accepted'
        self.session.flush()
        self._apply_stock(quote, initial_status, lines, 'accepted', lines)

        logger.info(f"Converted quote {quote.quote_number} to invoice {invoice.invoice_number}")
        return invoice.to_dict(include_items=True)
