"""
Tests for invoices and quotes: saving, stock, copies, conversion and delivery
"""
import pytest
from datetime import date, timedelta
from unittest.mock import Mock

from database.models import EmailLog, Invoice, Quote
from services.billing_repository import InvoiceRepository, QuoteRepository
from services.errors import ExternalServiceError, NotFoundError, PermissionDeniedError, ServiceError
from tests.conftest import make_org, make_user
from validators import ValidationError


@pytest.fixture
def invoices(db, org, admin):
    return InvoiceRepository(db, org.id, admin)


@pytest.fixture
def quotes(db, org, admin):
    return QuoteRepository(db, org.id, admin)


@pytest.mark.unit
class TestSaveInvoice:
    """Tests for creating and updating invoices"""

    def test_create_computes_number_total_and_due_date(self, invoices, invoice_payload):
        """Test the server-side defaults of a new invoice"""
        invoice = invoices.save_invoice(invoice_payload)['invoice']
        assert invoice['invoice_number'] == 'RE-2026-0001'
        assert invoice['total_amount'] == 226.0
        assert invoice['due_date'] == '2026-03-15'
        assert invoice['status'] == 'draft'
        assert len(invoice['items']) == 2

    def test_blank_lines_are_dropped(self, invoices, invoice_payload):
        invoice_payload['items'].append({'description': '', 'quantity': 1})
        invoice = invoices.save_invoice(invoice_payload)['invoice']
        assert len(invoice['items']) == 2

    def test_customer_required(self, invoices):
        with pytest.raises(ValidationError) as exc_info:
            invoices.save_invoice({'items': []})
        assert exc_info.value.message == 'Please select a customer'

    def test_customer_of_other_org_is_not_found(self, db, invoices, invoice_payload):
        from tests.conftest import make_customer
        other = make_org(db, name='Fremd')
        invoice_payload['customer_id'] = make_customer(db, other.id).id
        with pytest.raises(NotFoundError):
            invoices.save_invoice(invoice_payload)

    def test_unknown_product_rejected(self, invoices, invoice_payload):
        invoice_payload['items'][0]['product_id'] = 9999
        with pytest.raises(ValidationError):
            invoices.save_invoice(invoice_payload)

    def test_update_keeps_items_when_not_posted(self, invoices, invoice_payload):
        """Test that a status-only update leaves the lines alone"""
        created = invoices.save_invoice(invoice_payload)['invoice']
        updated = invoices.save_invoice({'internal_notes': 'Rückfrage'}, created['id'])['invoice']
        assert len(updated['items']) == 2
        assert updated['total_amount'] == 226.0
        assert updated['internal_notes'] == 'Rückfrage'

    def test_field_service_employee_cannot_create(self, db, org, fse, invoice_payload):
        with pytest.raises(PermissionDeniedError):
            InvoiceRepository(db, org.id, fse).save_invoice(invoice_payload)

    def test_paid_invoice_is_frozen(self, invoices, invoice_payload):
        invoice_payload['status'] = 'paid'
        created = invoices.save_invoice(invoice_payload)['invoice']
        with pytest.raises(PermissionDeniedError):
            invoices.save_invoice({'customer_notes': 'x'}, created['id'])
        with pytest.raises(PermissionDeniedError):
            invoices.delete_invoice(created['id'])

    def test_get_invoice_details(self, invoices, invoice_payload):
        created = invoices.save_invoice(invoice_payload)['invoice']
        detail = invoices.get_invoice(created['id'])
        assert detail['can_edit'] is True
        assert detail['totals']['total_vat'] == 26.0
        assert detail['customer']['name'] == 'Erika Mustermann'
        assert detail['email_history'] == []


@pytest.mark.unit
class TestInvoiceStock:
    """Tests for stock reservation through invoice status changes"""

    def test_sending_takes_stock(self, invoices, invoice_payload, product):
        created = invoices.save_invoice(invoice_payload)['invoice']
        assert product.stock_level == 10

        invoices.save_invoice({'status': 'sent'}, created['id'])
        assert product.stock_level == 8

    def test_changing_quantity_of_sent_invoice(self, invoices, invoice_payload, product):
        invoice_payload['status'] = 'sent'
        created = invoices.save_invoice(invoice_payload)['invoice']
        invoice_payload['items'][0]['quantity'] = 5
        invoices.save_invoice({'items': invoice_payload['items']}, created['id'])
        assert product.stock_level == 5

    def test_deleting_sent_invoice_returns_stock(self, db, invoices, invoice_payload, product):
        invoice_payload['status'] = 'sent'
        created = invoices.save_invoice(invoice_payload)['invoice']
        invoices.delete_invoice(created['id'])
        assert product.stock_level == 10
        assert db.get(Invoice, created['id']) is None


@pytest.mark.unit
class TestPaymentLinks:
    """Tests for automatic Stripe payment links"""

    def _enable_gateway(self, org):
        org.is_payment_gateway_enabled = True
        org.stripe_account_id = 'acct_123'

    def test_link_created_when_sent(self, db, org, admin, invoice_payload):
        self._enable_gateway(org)
        payments = Mock()
        payments.create_payment_link.return_value = {'url': 'https://pay.example/1', 'payment_intent_id': 'pi_1'}
        repo = InvoiceRepository(db, org.id, admin, payment_service=payments)

        invoice_payload['status'] = 'sent'
        result = repo.save_invoice(invoice_payload)
        assert result['warnings'] == []
        assert result['invoice']['payment_link_url'] == 'https://pay.example/1'
        assert result['invoice']['stripe_payment_intent_id'] == 'pi_1'

    def test_failed_link_is_a_warning(self, db, org, admin, invoice_payload):
        """Test that the invoice is saved even when Stripe fails"""
        self._enable_gateway(org)
        payments = Mock()
        payments.create_payment_link.side_effect = ExternalServiceError("Payment provider error: boom")
        repo = InvoiceRepository(db, org.id, admin, payment_service=payments)

        invoice_payload['status'] = 'sent'
        result = repo.save_invoice(invoice_payload)
        assert result['invoice']['status'] == 'sent'
        assert result['invoice']['payment_link_url'] is None
        assert result['warnings'] == ['Could not auto-generate payment link: Payment provider error: boom']

    def test_no_link_without_gateway(self, db, org, admin, invoice_payload):
        payments = Mock()
        repo = InvoiceRepository(db, org.id, admin, payment_service=payments)
        invoice_payload['status'] = 'sent'
        repo.save_invoice(invoice_payload)
        payments.create_payment_link.assert_not_called()

    def test_manual_link_reuses_stored_url(self, db, org, admin, invoice_payload):
        self._enable_gateway(org)
        payments = Mock()
        payments.create_payment_link.return_value = {'url': 'https://pay.example/1'}
        repo = InvoiceRepository(db, org.id, admin, payment_service=payments)
        created = repo.save_invoice(invoice_payload)['invoice']

        assert repo.create_payment_link(created['id']) == {'url': 'https://pay.example/1', 'created': True}
        assert repo.create_payment_link(created['id']) == {'url': 'https://pay.example/1', 'created': False}
        assert payments.create_payment_link.call_count == 1

    def test_manual_link_requires_gateway(self, invoices, invoice_payload):
        created = invoices.save_invoice(invoice_payload)['invoice']
        with pytest.raises(ServiceError):
            invoices.create_payment_link(created['id'])


@pytest.mark.unit
class TestInvoiceMaintenance:
    """Tests for copying and overdue detection"""

    def test_copy_is_draft_with_new_number(self, invoices, invoice_payload):
        invoice_payload['status'] = 'sent'
        invoice_payload['customer_notes'] = 'Danke!'
        source = invoices.save_invoice(invoice_payload)['invoice']
        copy = invoices.copy_invoice(source['id'])

        assert copy['status'] == 'draft'
        assert copy['invoice_number'] != source['invoice_number']
        assert copy['customer_notes'] == f"(Copy of {source['invoice_number']})\nDanke!"
        assert copy['issue_date'] == date.today().isoformat()
        assert copy['total_amount'] == source['total_amount']
        assert len(copy['items']) == 2

    def test_mark_overdue(self, invoices, invoice_payload):
        invoice_payload['status'] = 'sent'
        created = invoices.save_invoice(invoice_payload)['invoice']
        assert invoices.mark_overdue(date(2026, 3, 15)) == 0
        assert invoices.mark_overdue(date(2026, 3, 16)) == 1
        assert invoices.get_invoice(created['id'])['status'] == 'overdue'

    def test_list_filters_and_search(self, invoices, invoice_payload):
        invoices.save_invoice(invoice_payload)
        invoice_payload['status'] = 'sent'
        invoices.save_invoice(invoice_payload)

        assert invoices.list_invoices(status='sent')['total'] == 1
        assert invoices.list_invoices(search='Erika')['total'] == 2
        assert invoices.list_invoices(search='RE-2026-0002')['items'][0]['status'] == 'sent'


@pytest.mark.unit
class TestInvoiceEmail:
    """Tests for mailing an invoice PDF"""

    def test_send_by_email_logs_and_flags(self, db, org, invoices, invoice_payload):
        org.is_email_sending_enabled = True
        created = invoices.save_invoice(invoice_payload)['invoice']
        mailer = Mock()

        result = invoices.send_by_email(created['id'], mailer, language='de')

        assert result['recipient'] == 'erika@kunde.example'
        args, kwargs = mailer.send_email.call_args
        assert args[0] == 'erika@kunde.example'
        filename, pdf, subtype = kwargs['attachments'][0]
        assert pdf.startswith(b'%PDF')
        assert subtype == 'pdf'
        assert db.query(EmailLog).count() == 1
        assert invoices.get_invoice(created['id'])['was_sent_via_email'] is True

    def test_send_requires_enabled_mail(self, invoices, invoice_payload):
        created = invoices.save_invoice(invoice_payload)['invoice']
        with pytest.raises(ServiceError):
            invoices.send_by_email(created['id'], Mock())


@pytest.mark.unit
class TestQuotes:
    """Tests for quotes and conversion to invoices"""

    def test_create_quote_valid_thirty_days(self, quotes, invoice_payload):
        quote = quotes.save_quote(invoice_payload)['quote']
        assert quote['quote_number'] == 'AN-2026-0001'
        assert quote['valid_until_date'] == '2026-03-31'

    def test_accepted_quote_stock(self, quotes, invoice_payload, product):
        invoice_payload['status'] = 'accepted'
        quotes.save_quote(invoice_payload)
        assert product.stock_level == 8

    def test_declining_gives_back_fractional_quantity(self, quotes, invoice_payload, product):
        """Test that half a unit reserved by a sent quote is returned in full"""
        product.stock_level = 9
        invoice_payload['status'] = 'sent'
        invoice_payload['items'][0]['quantity'] = 0.5
        created = quotes.save_quote(invoice_payload)['quote']
        assert product.stock_level == 8.5

        quotes.save_quote({'status': 'declined'}, created['id'])
        assert product.stock_level == 9

    def test_expired_pseudo_status(self, quotes, invoice_payload):
        invoice_payload['status'] = 'sent'
        quotes.save_quote(invoice_payload)
        assert quotes.list_quotes(status='expired', today=date(2026, 3, 31))['total'] == 0
        assert quotes.list_quotes(status='expired', today=date(2026, 4, 1))['total'] == 1

    def test_field_service_employee_keeps_product_prices(self, db, org, fse, invoice_payload):
        """Test that a changed product price is refused for field service employees"""
        repo = QuoteRepository(db, org.id, fse)
        invoice_payload['items'][0]['unit_price'] = 40.0
        with pytest.raises(PermissionDeniedError):
            repo.save_quote(invoice_payload)

        invoice_payload['items'][0]['unit_price'] = 50.0
        invoice_payload['items'][1]['unit_price'] = 1.0  # free text lines stay editable
        assert repo.save_quote(invoice_payload)['quote']['total_amount'] == pytest.approx(120.07)

    def test_accepted_quote_is_admin_only(self, db, org, key_user, quotes, invoice_payload):
        invoice_payload['status'] = 'accepted'
        created = quotes.save_quote(invoice_payload)['quote']
        with pytest.raises(PermissionDeniedError):
            QuoteRepository(db, org.id, key_user).save_quote({'notes': 'x'}, created['id'])
        assert quotes.save_quote({'notes': 'x'}, created['id'])['quote']['notes'] == 'x'

    def test_convert_to_invoice(self, db, quotes, invoice_payload, product):
        """Test that conversion copies lines and accepts the quote"""
        invoice_payload['status'] = 'sent'
        quote = quotes.save_quote(invoice_payload)['quote']
        assert product.stock_level == 8

        invoice = quotes.convert_to_invoice(quote['id'])

        assert invoice['status'] == 'draft'
        assert invoice['internal_notes'] == f"Created from Quote #{quote['quote_number']}"
        assert invoice['total_amount'] == quote['total_amount']
        assert len(invoice['items']) == 2
        assert db.get(Quote, quote['id']).status == 'accepted'
        # Reservation moves with the status, not twice
        assert product.stock_level == 8

    def test_convert_twice_is_denied(self, quotes, invoice_payload):
        quote = quotes.save_quote(invoice_payload)['quote']
        quotes.convert_to_invoice(quote['id'])
        with pytest.raises(PermissionDeniedError):
            quotes.convert_to_invoice(quote['id'])

    def test_copy_quote(self, quotes, invoice_payload):
        invoice_payload['status'] = 'declined'
        source = quotes.save_quote(invoice_payload)['quote']
        copy = quotes.copy_quote(source['id'])
        assert copy['status'] == 'draft'
        assert copy['notes'].startswith(f"(Copy of {source['quote_number']})")
        assert copy['valid_until_date'] == (date.today() + timedelta(days=30)).isoformat()

    def test_delete_sent_quote_returns_stock(self, quotes, invoice_payload, product):
        invoice_payload['status'] = 'sent'
        quote = quotes.save_quote(invoice_payload)['quote']
        quotes.delete_quote(quote['id'])
        assert product.stock_level == 10

    def test_add_products_merges_lines(self, quotes, product, service_product):
        items = quotes.add_products([{'product_id': product.id, 'quantity': 1, 'unit_price': 50.0}],
                                   [product.id, service_product.id])
        assert [(i['product_id'], i['quantity']) for i in items] == [(product.id, 2), (service_product.id, 1)]

    def test_quotes_of_other_organizations_are_invisible(self, db, quotes, invoice_payload):
        quote = quotes.save_quote(invoice_payload)['quote']
        other = make_org(db, name='Fremd')
        stranger = make_user(db, other.id, 'admin', email='boss@fremd.example')
        with pytest.raises(NotFoundError):
            QuoteRepository(db, other.id, stranger).get_quote(quote['id'])
