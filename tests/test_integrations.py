"""
Tests for the SMTP and Stripe clients
"""
import smtplib
import pytest
import requests
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

from services.email_service import EmailService, email_history, ensure_customer_mail_allowed, log_email
from services.errors import ExternalServiceError, ServiceError
from services.payment_service import PaymentService

SMTP_CONFIG = {
    'SMTP_HOST': 'smtp.example',
    'SMTP_PORT': 2525,
    'SMTP_USER': 'mailer',
    'SMTP_PASSWORD': 'pw',
    'SMTP_USE_TLS': True,
    'FROM_EMAIL': 'rechnung@muster.example',
}

STRIPE_CONFIG = {
    'STRIPE_SECRET_KEY': 'sk_test_123',
    'PUBLIC_APP_URL': 'https://app.zoguone.example/',
    'CURRENCY': 'EUR',
}


def _invoice(**overrides):
    values = {
        'id': 7,
        'org_id': 'org-1',
        'invoice_number': 'RE-2026-0001',
        'total_amount': 226.0,
        'customer': SimpleNamespace(email='erika@kunde.example'),
        'stripe_payment_intent_id': None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.content = b'{}'
    response.json.return_value = payload or {}
    return response


@pytest.mark.unit
class TestEmailService:
    """Tests for SMTP delivery"""

    def test_not_configured(self):
        with pytest.raises(ServiceError) as exc_info:
            EmailService({}).send_email('a@b.example', 'Hallo', 'Text')
        assert exc_info.value.message == 'E-mail sending is not configured'

    def test_message_with_attachment(self):
        msg = EmailService(SMTP_CONFIG).build_message(
            'erika@kunde.example', 'Rechnung RE-2026-0001', 'Anbei', html='<p>Anbei</p>',
            attachments=[('RE-2026-0001.pdf', b'%PDF-1.4', 'pdf')], reply_to='info@muster.example',
            from_name='Muster Haustechnik')
        assert msg['From'] == 'Muster Haustechnik <rechnung@muster.example>'
        assert msg['Reply-To'] == 'info@muster.example'
        filenames = [part.get_filename() for part in msg.walk() if part.get_filename()]
        assert filenames == ['RE-2026-0001.pdf']

    @patch('services.email_service.smtplib.SMTP')
    def test_send_uses_tls_and_login(self, mock_smtp):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        assert EmailService(SMTP_CONFIG).send_email('erika@kunde.example', 'Hallo', 'Text') is True

        mock_smtp.assert_called_once_with('smtp.example', 2525, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('mailer', 'pw')
        server.send_message.assert_called_once()

    @patch('services.email_service.smtplib.SMTP')
    def test_smtp_failure_is_external_error(self, mock_smtp):
        mock_smtp.return_value.__enter__.return_value.send_message.side_effect = \
            smtplib.SMTPRecipientsRefused({})
        with pytest.raises(ExternalServiceError) as exc_info:
            EmailService(SMTP_CONFIG).send_email('erika@kunde.example', 'Hallo', 'Text')
        assert exc_info.value.status_code == 502

    @patch.object(EmailService, 'send_email')
    def test_invitation_text(self, mock_send):
        EmailService(SMTP_CONFIG).send_invitation('neu@firma.example', 'Muster', 'key_user',
                                                  invited_by='Anna', app_url='https://app.example')
        to, subject, body = mock_send.call_args[0]
        assert subject == 'Invitation to Muster'
        assert 'invited by Anna to join Muster' in body
        assert 'https://app.example/auth' in body

    @patch.object(EmailService, 'send_email')
    def test_reset_link_text(self, mock_send):
        url = 'https://app.example/reset-password?token=abc'
        EmailService(SMTP_CONFIG).send_password_reset_link('erika@kunde.example', url)
        to, subject, body = mock_send.call_args[0]
        assert subject == 'Reset your ZoguOne password'
        assert url in body
        assert 'password stays unchanged' in body

    def test_customer_mail_rules(self):
        customer = SimpleNamespace(email='erika@kunde.example')
        with pytest.raises(ServiceError):
            ensure_customer_mail_allowed(SimpleNamespace(is_email_sending_enabled=False), customer)
        with pytest.raises(ServiceError):
            ensure_customer_mail_allowed(SimpleNamespace(is_email_sending_enabled=True),
                                         SimpleNamespace(email=None))
        assert ensure_customer_mail_allowed(SimpleNamespace(is_email_sending_enabled=True),
                                            customer) == 'erika@kunde.example'

    def test_log_and_history(self, db, org, customer):
        log_email(db, org.id, 'invoice', 7, 'erika@kunde.example', 'Rechnung', customer_id=customer.id)
        history = email_history(db, 'invoice', 7)
        assert [entry['subject'] for entry in history] == ['Rechnung']
        assert email_history(db, 'quote', 7) == []


@pytest.mark.unit
class TestPaymentService:
    """Tests for Stripe Checkout links"""

    def test_not_configured(self):
        with pytest.raises(ServiceError):
            PaymentService({}).create_payment_link(_invoice(), SimpleNamespace(stripe_account_id='acct_1'))

    def test_requires_connected_account(self):
        with pytest.raises(ServiceError) as exc_info:
            PaymentService(STRIPE_CONFIG).create_payment_link(_invoice(), SimpleNamespace(stripe_account_id=None))
        assert exc_info.value.message == 'Organization has no connected Stripe account'

    def test_requires_amount(self):
        with pytest.raises(ServiceError):
            PaymentService(STRIPE_CONFIG).create_payment_link(_invoice(total_amount=0),
                                                              SimpleNamespace(stripe_account_id='acct_1'))

    @patch('services.payment_service.requests.request')
    def test_checkout_session(self, mock_request):
        mock_request.return_value = _response(payload={
            'id': 'cs_1', 'url': 'https://checkout.stripe.com/c/cs_1', 'payment_intent': 'pi_1'})

        link = PaymentService(STRIPE_CONFIG).create_payment_link(
            _invoice(), SimpleNamespace(stripe_account_id='acct_1'))

        assert link == {'url': 'https://checkout.stripe.com/c/cs_1', 'session_id': 'cs_1',
                        'payment_intent_id': 'pi_1'}
        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://api.stripe.com/v1/checkout/sessions')
        assert kwargs['headers'] == {'Stripe-Account': 'acct_1'}
        assert kwargs['data']['line_items[0][price_data][unit_amount]'] == 22600
        assert kwargs['data']['line_items[0][price_data][currency]'] == 'eur'
        assert kwargs['data']['customer_email'] == 'erika@kunde.example'
        assert kwargs['data']['success_url'] == 'https://app.zoguone.example/payment/success?invoice=7'

    @patch('services.payment_service.requests.request')
    def test_provider_error(self, mock_request):
        mock_request.return_value = _response(400, {'error': {'message': 'No such account'}})
        with pytest.raises(ExternalServiceError) as exc_info:
            PaymentService(STRIPE_CONFIG).create_payment_link(_invoice(), SimpleNamespace(stripe_account_id='x'))
        assert exc_info.value.message == 'Payment provider error: No such account'

    @patch('services.payment_service.requests.request')
    def test_network_error(self, mock_request):
        mock_request.side_effect = requests.ConnectionError('down')
        with pytest.raises(ExternalServiceError):
            PaymentService(STRIPE_CONFIG).create_payment_link(_invoice(), SimpleNamespace(stripe_account_id='x'))

    @patch('services.payment_service.requests.request')
    def test_receipt_url(self, mock_request):
        mock_request.return_value = _response(payload={
            'latest_charge': {'receipt_url': 'https://pay.stripe.com/receipts/1'}})
        url = PaymentService(STRIPE_CONFIG).get_receipt_url(
            _invoice(stripe_payment_intent_id='pi_1'), SimpleNamespace(stripe_account_id='acct_1'))
        assert url == 'https://pay.stripe.com/receipts/1'
        assert mock_request.call_args[1]['params'] == {'expand[]': 'latest_charge'}

    def test_no_receipt_without_payment(self):
        assert PaymentService(STRIPE_CONFIG).get_receipt_url(_invoice(), SimpleNamespace()) is None
