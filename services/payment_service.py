"""
Payment Service - Stripe Checkout payment links for invoices.

Talks to the Stripe REST API with requests, acting on the organization's
connected account (Stripe-Account header).
"""

import logging
from typing import Dict, Optional

import requests

from services.errors import ExternalServiceError, ServiceError

logger = logging.getLogger(__name__)


class PaymentService:
    """Creates and inspects Stripe payments for invoices."""

    def __init__(self, config):
        self.secret_key = config.get('STRIPE_SECRET_KEY')
        self.api_base = (config.get('STRIPE_API_BASE') or 'https://api.stripe.com/v1').rstrip('/')
        self.timeout = config.get('STRIPE_TIMEOUT', 20)
        self.public_url = (config.get('PUBLIC_APP_URL') or '').rstrip('/')
        self.currency = (config.get('CURRENCY') or 'EUR').lower()

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def _request(self, method: str, path: str, account_id: str, data: Dict = None, params: Dict = None) -> Dict:
        if not self.is_configured:
            raise ServiceError("Payment gateway is not configured")

        headers = {'Stripe-Account': account_id} if account_id else {}
        try:
            response = requests.request(
                method,
                f"{self.api_base}{path}",
                auth=(self.secret_key, ''),
                headers=headers,
                data=data,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Stripe request failed: {e}")
            raise ExternalServiceError(f"Payment provider unreachable: {e}")

        payload = response.json() if response.content else {}
        if response.status_code >= 400:
            message = (payload.get('error') or {}).get('message') or f"HTTP {response.status_code}"
            logger.error(f"Stripe error on {path}: {message}")
            raise ExternalServiceError(f"Payment provider error: {message}")
        return payload

    def create_payment_link(self, invoice, organization) -> Dict[str, Optional[str]]:
        """
        Create a Checkout Session for the invoice total.

        Returns:
            {'url': checkout URL, 'session_id': ..., 'payment_intent_id': ... or None}
        """
        if not organization.stripe_account_id:
            raise ServiceError("Organization has no connected Stripe account")

        amount_cents = int(round((invoice.total_amount or 0.0) * 100))
        if amount_cents <= 0:
            raise ServiceError("Cannot create a payment link for an invoice without amount")

        data = {
            'mode': 'payment',
            'line_items[0][quantity]': 1,
            'line_items[0][price_data][currency]': self.currency,
            'line_items[0][price_data][unit_amount]': amount_cents,
            'line_items[0][price_data][product_data][name]': f"Invoice {invoice.invoice_number}",
            'metadata[invoice_id]': invoice.id,
            'metadata[org_id]': invoice.org_id,
            'success_url': f"{self.public_url}/payment/success?invoice={invoice.id}",
            'cancel_url': f"{self.public_url}/payment/cancelled?invoice={invoice.id}",
        }
        if invoice.customer and invoice.customer.email:
            data['customer_email'] = invoice.customer.email

        session = self._request('POST', '/checkout/sessions', organization.stripe_account_id, data=data)
        logger.info(f"Created payment link for invoice {invoice.invoice_number}")
        return {
            'url': session.get('url'),
            'session_id': session.get('id'),
            'payment_intent_id': session.get('payment_intent'),
        }

    def get_receipt_url(self, invoice, organization) -> Optional[str]:
        """Receipt URL of the charge behind a paid invoice, if Stripe has one."""
        if not invoice.stripe_payment_intent_id:
            return None
        intent = self._request(
            'GET',
            f"/payment_intents/{invoice.stripe_payment_intent_id}",
            organization.stripe_account_id,
            params={'expand[]': 'latest_charge'},
        )
        charge = intent.get('latest_charge')
        if isinstance(charge, dict):
            return charge.get('receipt_url')
        return None
