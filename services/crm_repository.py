"""
CRM Repository - customers, their documents and activity timeline.
"""

import logging
import mimetypes
from typing import Dict, List, Optional

from sqlalchemy import or_

from database.models import (
    Appointment, Customer, CustomerDocument, EmailLog, Invoice, Organization, Quote, User, Visit
)
from services.base_repository import TenantRepository, apply_sort, paginate
from services.errors import ServiceError
from services.numbering import next_number
from app.utils.formatting import format_european_time, parse_as_local_date
from validators import ensure_valid, sanitize_string, validate_customer_payload

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ['name', 'email', 'phone', 'address', 'notes', 'is_reminder_relevant']
CUSTOMER_SORT_FIELDS = ['name', 'customer_number', 'email', 'created_at']

EMAIL_LOG_PATHS = {
    'invoice': '/invoices/edit/{id}',
    'quote': '/quotes/edit/{id}',
    'visit_reminder': '/visits/edit/{id}',
    'visit_summary': '/visits/edit/{id}',
}


class CRMRepository(TenantRepository):
    """Repository for customers and customer documents."""

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def list_customers(self, search: str = None, page: int = 1, per_page: int = 25,
                       sort_by: str = 'name', sort_order: str = 'asc') -> Dict:
        """Search by name or customer number, sorted and paginated."""
        query = self._scoped(Customer)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Customer.name.ilike(term), Customer.customer_number.ilike(term)))
        query = apply_sort(query, Customer, sort_by, sort_order, CUSTOMER_SORT_FIELDS, 'name')
        return paginate(query, page, per_page)

    def all_customers(self) -> List[Dict]:
        """Compact list for pickers."""
        return [c.to_summary() for c in self._scoped(Customer).order_by(Customer.name).all()]

    def get_customer(self, customer_id: int) -> Dict:
        return self._get(Customer, customer_id, 'Customer').to_dict()

    def create_customer(self, data: Dict) -> Dict:
        ensure_valid(validate_customer_payload(data))
        org_id = self._require_org()

        customer = Customer(
            org_id=org_id,
            customer_number=next_number(self.session, org_id, 'customer'),
            name=sanitize_string(data['name'], 255),
            email=data.get('email') or None,
            phone=data.get('phone') or None,
            address=data.get('address'),
            notes=data.get('notes'),
            is_reminder_relevant=data.get('is_reminder_relevant', True),
            created_by_user_id=self.user_id,
        )
        self.session.add(customer)
        self.session.flush()

        logger.info(f"Created customer: {customer.customer_number}")
        return customer.to_dict()

    def update_customer(self, customer_id: int, data: Dict) -> Dict:
        customer = self._get(Customer, customer_id, 'Customer')
        merged = {**customer.to_dict(), **data}
        ensure_valid(validate_customer_payload(merged))

        for key in CUSTOMER_FIELDS:
            if key in data:
                value = data[key]
                if key in ('email', 'phone') and not value:
                    value = None
                setattr(customer, key, value)
        self.session.flush()

        logger.info(f"Updated customer: {customer_id}")
        return customer.to_dict()

    def update_notes(self, customer_id: int, notes: str) -> Dict:
        customer = self._get(Customer, customer_id, 'Customer')
        customer.notes = notes
        self.session.flush()
        return customer.to_dict()

    def delete_customer(self, customer_id: int) -> bool:
        """Delete a customer that has no invoices, quotes or visits."""
        customer = self._get(Customer, customer_id, 'Customer')
        for model, label in ((Invoice, 'invoices'), (Quote, 'quotes'), (Visit, 'visits')):
            if self.session.query(model).filter(model.customer_id == customer.id).count():
                raise ServiceError(f"Customer still has {label}. Use the data privacy deletion instead.")

        self.session.query(Appointment).filter(Appointment.customer_id == customer.id).update(
            {Appointment.customer_id: None}, synchronize_session=False)
        self.session.delete(customer)
        self.session.flush()

        logger.info(f"Deleted customer: {customer_id}")
        return True

    # =========================================================================
    # TIMELINE
    # =========================================================================

    def get_timeline(self, customer_id: int, include_documents: bool = False) -> List[Dict]:
        """Visits, invoices, quotes, appointments, e-mails (and documents), newest first."""
        customer = self._get(Customer, customer_id, 'Customer')
        entries = []

        def add(entry_id, entry_type, when, title, details, path, status=None):
            parsed = parse_as_local_date(when)
            if parsed:
                entries.append({
                    'id': entry_id, 'type': entry_type, 'date': parsed.isoformat(),
                    'title': title, 'details': details, 'path': path, 'status': status,
                })

        visits = self.session.query(Visit).filter(Visit.customer_id == customer.id).all()
        for v in visits:
            employee = v.assigned_employee.full_name if v.assigned_employee else 'Unassigned'
            add(f"vis-{v.id}", 'visit', v.start_time, f"Visit #{v.visit_number}",
                f"{employee} at {v.location or 'N/A'}", f"/visits/edit/{v.id}", v.status)

        for i in self.session.query(Invoice).filter(Invoice.customer_id == customer.id).all():
            add(f"inv-{i.id}", 'invoice', i.issue_date, f"Invoice #{i.invoice_number}",
                f"Total: €{(i.total_amount or 0):.2f}", f"/invoices/edit/{i.id}", i.status)

        for q in self.session.query(Quote).filter(Quote.customer_id == customer.id).all():
            add(f"quo-{q.id}", 'quote', q.issue_date, f"Quote #{q.quote_number}",
                f"Total: €{(q.total_amount or 0):.2f}", f"/quotes/edit/{q.id}", q.status)

        for a in self.session.query(Appointment).filter(Appointment.customer_id == customer.id).all():
            add(f"apt-{a.id}", 'appointment', a.start_time, f"Appointment: {a.title}",
                f"Starts at {format_european_time(a.start_time)}", '/appointments')

        logs = self.session.query(EmailLog).filter(EmailLog.customer_id == customer.id).all()
        senders = self._user_names({log.sent_by_user_id for log in logs if log.sent_by_user_id})
        for log in logs:
            path = EMAIL_LOG_PATHS.get(log.document_type, '/').format(id=log.related_document_id)
            sender = senders.get(log.sent_by_user_id, 'System')
            add(f"email-{log.id}", 'email', log.sent_at, log.subject,
                f"Sent by: {sender} • {log.document_type.replace('_', ' ')}", path, 'Sent')

        if include_documents:
            for doc in self.session.query(CustomerDocument).filter(CustomerDocument.customer_id == customer.id).all():
                add(f"doc-{doc.id}", 'document', doc.created_at, doc.file_name,
                    f"{doc.file_size_bytes or 0} bytes", f"/customers/{customer.id}")

        entries.sort(key=lambda entry: entry['date'], reverse=True)
        return entries

    def _user_names(self, user_ids) -> Dict[str, str]:
        if not user_ids:
            return {}
        users = self.session.query(User).filter(User.id.in_(list(user_ids))).all()
        return {u.id: u.full_name or u.email for u in users}

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    def _require_document_storage(self, customer: Customer):
        organization = self.session.get(Organization, customer.org_id)
        if not organization or not organization.is_document_storage_enabled:
            raise ServiceError("Document storage is not enabled for this organization")

    def list_documents(self, customer_id: int) -> List[Dict]:
        customer = self._get(Customer, customer_id, 'Customer')
        docs = self.session.query(CustomerDocument).filter(
            CustomerDocument.customer_id == customer.id
        ).order_by(CustomerDocument.created_at.desc()).all()
        return [d.to_dict() for d in docs]

    def upload_document(self, customer_id: int, filename: str, content: bytes,
                        storage, mime_type: Optional[str] = None) -> Dict:
        """Store the file, then record it; the file is removed again if recording fails."""
        from services.storage import customer_document_path

        customer = self._get(Customer, customer_id, 'Customer')
        self._require_document_storage(customer)

        path = customer_document_path(customer.org_id, customer.id, filename)
        storage.save(path, content)
        try:
            document = CustomerDocument(
                org_id=customer.org_id,
                customer_id=customer.id,
                uploaded_by_user_id=self.user_id,
                file_name=filename,
                file_path=path,
                file_size_bytes=len(content),
                mime_type=mime_type or mimetypes.guess_type(filename)[0] or 'application/octet-stream',
            )
            self.session.add(document)
            self.session.flush()
        except Exception:
            storage.delete(path)
            raise

        logger.info(f"Uploaded document {filename} for customer {customer_id}")
        return document.to_dict()

    def _get_document(self, document_id: str) -> CustomerDocument:
        return self._get(CustomerDocument, document_id, 'Document')

    def download_document(self, document_id: str, storage):
        """Returns (CustomerDocument dict, bytes)."""
        document = self._get_document(document_id)
        return document.to_dict(), storage.read(document.file_path)

    def delete_document(self, document_id: str, storage) -> bool:
        document = self._get_document(document_id)
        storage.delete(document.file_path)
        self.session.delete(document)
        self.session.flush()
        logger.info(f"Deleted document {document_id}")
        return True
