"""
Tests for PDF rendering
"""
import pytest

from services.pdf_generator import (
    document_filename, footer_text, generate_business_report_pdf, generate_document_pdf, label, sepa_payload
)

ORGANIZATION = {
    'name': 'Muster',
    'company_name': 'Muster Haustechnik GmbH',
    'address': 'Hauptstr. 1\n10115 Berlin',
    'iban': 'DE89 3704 0044 0532 0130 00',
    'bic': 'COBADEFFXXX',
}

CUSTOMER = {'name': 'Erika Mustermann', 'customer_number': 'KD-00001', 'address': 'Lindenweg 5'}

INVOICE = {
    'invoice_number': 'RE-2026-0001',
    'issue_date': '2026-03-01',
    'due_date': '2026-03-15',
    'total_amount': 226.0,
    'status': 'sent',
    'items': [
        {'description': 'Thermostat', 'quantity': 2, 'unit_price': 50.0, 'vat_rate': 19},
        {'description': 'Montage <Stunde>', 'quantity': 1, 'unit_price': 100.0, 'vat_rate': 7},
    ],
}


@pytest.mark.unit
class TestPdfHelpers:

    def test_labels(self):
        assert label('invoice') == 'Rechnung'
        assert label('invoice', 'al') == 'Faturë'
        assert label('invoice', 'fr') == 'Rechnung'
        assert label('no_such_label') == 'no_such_label'

    def test_footer(self):
        assert footer_text(ORGANIZATION) == ('Muster Haustechnik GmbH | Hauptstr. 1, 10115 Berlin | '
                                             'IBAN: DE89 3704 0044 0532 0130 00 | BIC: COBADEFFXXX')

    def test_filename(self):
        assert document_filename(INVOICE, 'invoice') == 'Rechnung RE-2026-0001.pdf'
        assert document_filename({'quote_number': 'AN-2026-0001'}, 'quote', 'al') == 'Ofertë AN-2026-0001.pdf'

    def test_girocode_payload(self):
        lines = sepa_payload(ORGANIZATION, 226.0, 'RE-2026-0001').split('\n')
        assert lines[:4] == ['BCD', '002', '1', 'SCT']
        assert lines[4] == 'COBADEFFXXX'
        assert lines[6] == 'DE89370400440532013000'
        assert lines[7] == 'EUR226.00'
        assert lines[10] == 'RE-2026-0001'

    def test_girocode_needs_bank_details(self):
        assert sepa_payload({'company_name': 'X', 'iban': 'DE89'}, 10.0, 'x') is None


@pytest.mark.unit
class TestPdfDocuments:
    """Smoke tests: the renderers return PDF bytes"""

    def test_invoice(self):
        pdf = generate_document_pdf(INVOICE, 'invoice', ORGANIZATION, CUSTOMER)
        assert pdf.startswith(b'%PDF')

    def test_quote_in_albanian(self):
        quote = {**INVOICE, 'quote_number': 'AN-2026-0001', 'valid_until_date': '2026-03-31'}
        assert generate_document_pdf(quote, 'quote', ORGANIZATION, CUSTOMER, language='al').startswith(b'%PDF')

    def test_business_report(self):
        report = {
            'period': {'start_date': '2026-03-01', 'end_date': '2026-03-31'},
            'kpis': {'new_customers': 1, 'average_invoice_value': 226.0, 'quote_conversion_rate': 50.0},
            'profit_and_loss': {'revenue': 226.0, 'expenses': 30.0, 'profit': 196.0},
            'sales_by_customer': [{'customer_name': 'Erika', 'total': 226.0}],
            'tax_collected': [{'vat_rate': 19.0, 'amount': 19.0}],
            'top_products': [{'product_name': 'Thermostat', 'quantity': 2.0, 'revenue': 100.0}],
            'team_performance': [{'employee_name': 'Anna', 'completed_visits': 1, 'invoiced': 226.0}],
        }
        assert generate_business_report_pdf(report, ORGANIZATION).startswith(b'%PDF')
