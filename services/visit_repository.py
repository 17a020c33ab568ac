"""
Visit Repository - field visits, their products/expenses, signatures and invoicing.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from database.models import (
    Customer, Expense, Invoice, InvoiceItem, Organization, Product, User, Visit, VisitExpense, VisitProduct
)
from services import pdf_generator
from services.base_repository import TenantRepository, apply_sort, paginate
from services.billing_repository import INVOICE_DUE_DAYS, load_logo
from services.document_totals import DEFAULT_VAT_RATE, document_total
from services.email_service import email_history, ensure_customer_mail_allowed, log_email
from services.errors import ConflictError, PermissionDeniedError, ServiceError
from services.notification_service import NotificationService
from services.numbering import next_number
from services.permissions import can_edit_visit
from services.stock import apply_stock_deltas, compute_stock_deltas
from services.storage import PNG_SIGNATURE, decode_data_url, signature_path
from app.utils.formatting import format_european_date, format_european_time
from validators import ValidationError, ensure_valid, parse_datetime, to_number, validate_visit_payload

logger = logging.getLogger(__name__)

VISIT_FIELDS = ['category', 'location', 'purpose', 'internal_notes']
VISIT_SORT_FIELDS = ['start_time', 'visit_number', 'status', 'category', 'created_at']

FIELD_SERVICE = 'field_service_employee'


class VisitRepository(TenantRepository):
    """Repository for visit database operations."""

    @property
    def is_field_service(self) -> bool:
        return self.role == FIELD_SERVICE

    def _visible(self):
        """Field service employees only see the visits assigned to them."""
        query = self._scoped(Visit)
        if self.is_field_service:
            query = query.filter(Visit.assigned_employee_id == self.user_id)
        return query

    def _get_visit(self, visit_id: int, lock: bool = False) -> Visit:
        visit = self._get(Visit, visit_id, 'Visit', lock=lock)
        if self.is_field_service and visit.assigned_employee_id != self.user_id:
            raise PermissionDeniedError("This visit is assigned to another employee")
        return visit

    def list_visits(self, search: str = None, status: str = None, category: str = None,
                    employee_id: str = None, start_date: date = None, end_date: date = None,
                    page: int = 1, per_page: int = 25,
                    sort_by: str = 'start_time', sort_order: str = 'desc') -> Dict:
        query = self._visible().join(Customer, Visit.customer_id == Customer.id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Visit.visit_number.ilike(term), Customer.name.ilike(term),
                                     Visit.purpose.ilike(term), Visit.location.ilike(term)))
        if status:
            query = query.filter(Visit.status == status)
        if category:
            query = query.filter(Visit.category == category)
        if employee_id:
            query = query.filter(Visit.assigned_employee_id == employee_id)
        if start_date:
            query = query.filter(Visit.start_time >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(Visit.start_time < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        query = apply_sort(query, Visit, sort_by, sort_order, VISIT_SORT_FIELDS, 'start_time')
        return paginate(query, page, per_page)

    def get_visit(self, visit_id: int) -> Dict:
        visit = self._get_visit(visit_id)
        data = visit.to_dict(include_lines=True)
        data['customer'] = visit.customer.to_dict() if visit.customer else None
        organization = self.session.get(Organization, visit.org_id)
        data['organization'] = organization.to_dict() if organization else None
        data['can_edit'] = can_edit_visit(visit.status, bool(visit.signature_storage_path))
        data['invoice_id'] = self._invoice_id_for(visit.id)
        history = (email_history(self.session, 'visit_reminder', visit.id)
                   + email_history(self.session, 'visit_summary', visit.id))
        data['email_history'] = sorted(history, key=lambda entry: entry['sent_at'] or '', reverse=True)
        return data

    def _invoice_id_for(self, visit_id: int) -> Optional[int]:
        invoice = self.session.query(Invoice.id).filter(Invoice.visit_id == visit_id).first()
        return invoice[0] if invoice else None

    # =========================================================================
    # SAVE
    # =========================================================================

    def _clean_products(self, lines) -> List[Dict]:
        cleaned = []
        for line in lines or []:
            if not line.get('product_id'):
                continue
            cleaned.append({
                'product_id': int(line['product_id']),
                'quantity': to_number(line.get('quantity'), 'quantity', default=1.0),
            })
        ids = {line['product_id'] for line in cleaned}
        products = {p.id: p for p in self._scoped(Product).filter(Product.id.in_(ids)).all()} if ids else {}
        if len(products) != len(ids):
            raise ValidationError("Visit references an unknown product", 'products')
        for line in cleaned:
            line['unit_price'] = products[line['product_id']].selling_price or 0.0
        return cleaned

    def _clean_expenses(self, lines) -> List[int]:
        expense_ids = []
        for line in lines or []:
            expense_id = line.get('expense_id') if isinstance(line, dict) else line
            if expense_id and int(expense_id) not in expense_ids:
                expense_ids.append(int(expense_id))
        if expense_ids and self._scoped(Expense).filter(Expense.id.in_(expense_ids)).count() != len(expense_ids):
            raise ValidationError("Visit references an unknown expense", 'expenses')
        return expense_ids

    def _employee(self, user_id: Optional[str], org_id: str) -> Optional[User]:
        if not user_id:
            return None
        employee = self.session.query(User).filter(User.id == user_id, User.org_id == org_id).first()
        if employee is None:
            raise ValidationError("Assigned employee is not a member of this organization", 'assigned_employee_id')
        return employee

    def save_visit(self, data: Dict, visit_id: int = None, email_service=None) -> Dict:
        """
        Create or update a visit with its products and expenses.

        New visits get a reminder e-mail when the organization has reminders
        enabled; a failed reminder is returned as a warning.
        """
        visit = None
        initial_status, initial_lines = None, []
        initial_assignee = None
        if visit_id:
            visit = self._get_visit(visit_id, lock=True)
            if not can_edit_visit(visit.status, bool(visit.signature_storage_path)):
                raise PermissionDeniedError("Signed visits are read-only")
            initial_status = visit.status
            initial_lines = [(p.product_id, p.quantity) for p in visit.products]
            initial_assignee = visit.assigned_employee_id

        merged = {**(visit.to_dict() if visit else {}), **data}
        if visit is None and not merged.get('assigned_employee_id'):
            merged['assigned_employee_id'] = self.user_id
        if self.is_field_service and merged.get('assigned_employee_id') != (initial_assignee or self.user_id):
            raise PermissionDeniedError("Field service employees cannot change the assigned employee")
        ensure_valid(validate_visit_payload(merged), 'visit')

        customer = self._get(Customer, merged['customer_id'], 'Customer')
        org_id = visit.org_id if visit else self._require_org()
        employee = self._employee(merged.get('assigned_employee_id'), org_id)
        status = merged.get('status') or 'planned'

        if visit is None:
            start = parse_datetime(merged['start_time'], 'start_time')
            visit = Visit(
                org_id=org_id,
                visit_number=next_number(self.session, org_id, 'visit', today=start.date()),
            )
            self.session.add(visit)

        visit.customer_id = customer.id
        visit.assigned_employee_id = employee.id if employee else None
        visit.start_time = parse_datetime(merged['start_time'], 'start_time')
        visit.end_time = parse_datetime(merged['end_time'], 'end_time')
        visit.status = status
        for key in VISIT_FIELDS:
            if key in data:
                setattr(visit, key, data[key])

        if 'products' in data:
            visit.products = [VisitProduct(**line) for line in self._clean_products(data['products'])]
        if 'expenses' in data:
            visit.expenses = [VisitExpense(expense_id=eid) for eid in self._clean_expenses(data['expenses'])]
        self.session.flush()

        final_lines = [(p.product_id, p.quantity) for p in visit.products]
        deltas = compute_stock_deltas('visit', initial_status, initial_lines, status, final_lines)
        apply_stock_deltas(self.session, org_id, deltas)

        if visit.assigned_employee_id and visit.assigned_employee_id != self.user_id \
                and visit.assigned_employee_id != initial_assignee:
            self._notify_assignee(visit)

        warnings = []
        if initial_status is None and email_service is not None:
            organization = self.session.get(Organization, org_id)
            if organization.is_visit_reminder_enabled and customer.email and customer.is_reminder_relevant:
                try:
                    self.send_reminder(visit.id, email_service)
                except ServiceError as e:
                    logger.warning(f"Visit reminder for {visit.visit_number} failed: {e.message}")
                    warnings.append(f"Visit saved, but the reminder could not be sent: {e.message}")

        logger.info(f"Saved visit {visit.visit_number} ({status})")
        return {'visit': visit.to_dict(include_lines=True), 'warnings': warnings}

    def _notify_assignee(self, visit: Visit):
        actor = self.session.get(User, self.user_id) if self.user_id else None
        NotificationService(self.session, visit.org_id).create_notification(
            user_id=visit.assigned_employee_id,
            title='newVisitAssigned',
            body=json.dumps({
                'key': 'youveBeenAssignedVisitBy',
                'params': {
                    'visitNumber': visit.visit_number,
                    'userName': (actor.full_name or actor.email) if actor else 'System',
                },
            }),
            notification_type='new_visit',
            related_entity_path=f"/visits/edit/{visit.id}",
            related_entity_id=visit.id,
        )

    def copy_visit(self, visit_id: int) -> Dict:
        """Planned copy starting tomorrow at the same time of day, with the same products and expenses."""
        source = self._get_visit(visit_id)
        duration = (source.end_time - source.start_time) if source.end_time and source.start_time \
            else timedelta(days=1)
        tomorrow = date.today() + timedelta(days=1)
        start = datetime.combine(tomorrow, source.start_time.time()) if source.start_time \
            else datetime.combine(tomorrow, datetime.now().time())

        copy = Visit(
            org_id=source.org_id,
            visit_number=next_number(self.session, source.org_id, 'visit', today=start.date()),
            customer_id=source.customer_id,
            assigned_employee_id=source.assigned_employee_id,
            start_time=start,
            end_time=start + duration,
            status='planned',
            category=source.category,
            location=source.location,
            purpose=f"(Copy) {source.purpose or ''}".strip(),
            internal_notes=source.internal_notes,
        )
        copy.products = [VisitProduct(product_id=p.product_id, quantity=p.quantity, unit_price=p.unit_price)
                         for p in source.products]
        copy.expenses = [VisitExpense(expense_id=e.expense_id) for e in source.expenses]
        self.session.add(copy)
        self.session.flush()

        lines = [(p.product_id, p.quantity) for p in copy.products]
        apply_stock_deltas(self.session, copy.org_id, compute_stock_deltas('visit', None, [], 'planned', lines))

        logger.info(f"Copied visit {source.visit_number} to {copy.visit_number}")
        return copy.to_dict(include_lines=True)

    def delete_visit(self, visit_id: int) -> bool:
        if self.is_field_service:
            raise PermissionDeniedError("Field service employees cannot delete visits")
        visit = self._get_visit(visit_id, lock=True)
        if not can_edit_visit(visit.status, bool(visit.signature_storage_path)):
            raise PermissionDeniedError("Signed visits cannot be deleted")

        lines = [(p.product_id, p.quantity) for p in visit.products]
        apply_stock_deltas(self.session, visit.org_id, compute_stock_deltas('visit', visit.status, lines, None, []))

        self.session.query(Invoice).filter(Invoice.visit_id == visit.id).update(
            {Invoice.visit_id: None}, synchronize_session=False)
        self.session.delete(visit)
        self.session.flush()
        logger.info(f"Deleted visit: {visit_id}")
        return True

    # =========================================================================
    # SIGNATURE
    # =========================================================================

    def sign_visit(self, visit_id: int, signature, storage, changes: Dict = None) -> Dict:
        """
        Store the customer's signature and complete the visit.

        Args:
            signature: PNG bytes or a data URL
            storage: LocalStorage instance
            changes: Pending edits saved together with the signature
        """
        if changes:
            self.save_visit(changes, visit_id)

        visit = self._get_visit(visit_id, lock=True)
        if not can_edit_visit(visit.status, bool(visit.signature_storage_path)):
            raise PermissionDeniedError("This visit has already been signed")

        image = signature if isinstance(signature, (bytes, bytearray)) else decode_data_url(signature)
        if not image:
            raise ValidationError("Signature image is required", 'signature')
        if not bytes(image).startswith(PNG_SIGNATURE):
            raise ValidationError("Signature must be a PNG image", 'signature')

        path = storage.save(signature_path(visit.org_id, visit.id), bytes(image))
        lines = [(p.product_id, p.quantity) for p in visit.products]
        initial_status = visit.status

        visit.signature_storage_path = path
        visit.signature_date = datetime.utcnow()
        visit.status = 'completed'
        try:
            self.session.flush()
            apply_stock_deltas(self.session, visit.org_id,
                               compute_stock_deltas('visit', initial_status, lines, 'completed', lines))
        except Exception:
            storage.delete(path)
            raise

        logger.info(f"Visit {visit.visit_number} signed and completed")
        return visit.to_dict(include_lines=True)

    def get_signature(self, visit_id: int, storage) -> bytes:
        visit = self._get_visit(visit_id)
        if not visit.signature_storage_path:
            raise ServiceError("This visit has no signature")
        return storage.read(visit.signature_storage_path)

    # =========================================================================
    # INVOICING
    # =========================================================================

    def create_invoice(self, visit_id: int) -> Dict:
        """
        Turn a visit into a draft invoice; allowed once per visit.

        Products are billed at their selling price, expenses at their amount,
        both at the default VAT rate.
        """
        visit = self._get_visit(visit_id, lock=True)
        if self._invoice_id_for(visit.id):
            raise ConflictError("An invoice has already been created for this visit")

        items = [{
            'product_id': line.product_id,
            'expense_id': None,
            'description': line.product.name if line.product else '',
            'quantity': line.quantity or 1.0,
            'unit_price': (line.product.selling_price if line.product else None) or 0.0,
            'vat_rate': DEFAULT_VAT_RATE,
        } for line in visit.products]
        items.extend({
            'product_id': None,
            'expense_id': line.expense_id,
            'description': line.expense.description if line.expense else '',
            'quantity': 1.0,
            'unit_price': (line.expense.amount if line.expense else None) or 0.0,
            'vat_rate': DEFAULT_VAT_RATE,
        } for line in visit.expenses)

        today = date.today()
        invoice_number = next_number(self.session, visit.org_id, 'invoice', today=today)
        try:
            with self.session.begin_nested():
                invoice = Invoice(
                    org_id=visit.org_id,
                    invoice_number=invoice_number,
                    customer_id=visit.customer_id,
                    user_id=self.user_id,
                    visit_id=visit.id,
                    issue_date=today,
                    due_date=today + timedelta(days=INVOICE_DUE_DAYS),
                    status='draft',
                    total_amount=document_total(items),
                    internal_notes=f"Created from Visit #{visit.visit_number}",
                )
                invoice.items = [InvoiceItem(**item) for item in items]
                self.session.add(invoice)
                self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Creating invoice from visit {visit.visit_number} failed: {e}")
            raise ServiceError(f"Could not create the invoice: {e}")

        logger.info(f"Created invoice {invoice.invoice_number} from visit {visit.visit_number}")
        return invoice.to_dict(include_items=True)

    # =========================================================================
    # E-MAIL & PDF
    # =========================================================================

    def send_reminder(self, visit_id: int, email_service, language: str = 'de') -> Dict:
        """Remind the customer of an upcoming visit."""
        visit = self._get_visit(visit_id)
        organization = self.session.get(Organization, visit.org_id)
        if not organization.is_visit_reminder_enabled:
            raise ServiceError("Visit reminders are not enabled for this organization")
        customer = visit.customer
        if not customer or not customer.email:
            raise ServiceError("Customer has no e-mail address")

        company = organization.company_name or organization.name
        subject = f"Reminder: visit on {format_european_date(visit.start_time)} - {company}"
        body = (
            f"Dear {customer.name},\n\n"
            f"this is a reminder of our visit #{visit.visit_number} on "
            f"{format_european_date(visit.start_time)} at {format_european_time(visit.start_time)}"
            f"{' at ' + visit.location if visit.location else ''}.\n\n"
            f"Kind regards\n{company}\n"
        )
        email_service.send_email(customer.email, subject, body, reply_to=organization.email, from_name=company)
        log_email(self.session, visit.org_id, 'visit_reminder', visit.id, customer.email, subject,
                  customer_id=customer.id, sent_by_user_id=self.user_id)
        visit.was_reminder_sent = True
        self.session.flush()
        return {'recipient': customer.email, 'subject': subject}

    def render_summary_pdf(self, visit_id: int, language: str = 'de', storage=None):
        """Returns (filename, pdf bytes)."""
        visit = self._get_visit(visit_id)
        organization = self.session.get(Organization, visit.org_id)
        signature = None
        if storage is not None and visit.signature_storage_path and storage.exists(visit.signature_storage_path):
            signature = storage.read(visit.signature_storage_path)

        pdf = pdf_generator.generate_visit_summary_pdf(
            visit.to_dict(include_lines=True), organization.to_dict(), visit.customer.to_dict(),
            language=language, logo_bytes=load_logo(organization, storage), signature_bytes=signature,
        )
        return f"{pdf_generator.label('visit_summary', language)}_{visit.visit_number}.pdf", pdf

    def send_summary(self, visit_id: int, email_service, language: str = 'de', storage=None) -> Dict:
        visit = self._get_visit(visit_id)
        organization = self.session.get(Organization, visit.org_id)
        recipient = ensure_customer_mail_allowed(organization, visit.customer)

        filename, pdf = self.render_summary_pdf(visit_id, language, storage)
        company = organization.company_name or organization.name
        subject = f"{pdf_generator.label('visit_summary', language)} {visit.visit_number} - {company}"
        body = (
            f"Dear {visit.customer.name},\n\n"
            f"please find attached the summary of visit #{visit.visit_number}.\n\n"
            f"Kind regards\n{company}\n"
        )
        email_service.send_email(recipient, subject, body, attachments=[(filename, pdf, 'pdf')],
                                 reply_to=organization.email, from_name=company)
        log_email(self.session, visit.org_id, 'visit_summary', visit.id, recipient, subject,
                  customer_id=visit.customer_id, sent_by_user_id=self.user_id)
        logger.info(f"Sent visit summary {visit.visit_number} to {recipient}")
        return {'recipient': recipient, 'subject': subject}
