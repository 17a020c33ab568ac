"""
Tests for DATEV, GDPR and list exports
"""
import json
import pytest
from datetime import date
from types import SimpleNamespace

from database.models import Customer, Invoice, Product
from services.billing_repository import InvoiceRepository
from services.datev_export import NO_DATA_MESSAGE, build_datev_csv, datev_filename, export_datev
from services.errors import NotFoundError, PermissionDeniedError, ServiceError
from services.expense_repository import ExpenseRepository
from services.exports import (
    CustomerDataRepository, ListExportRepository, escape_csv_cell, gdpr_csv, gdpr_filename, json_to_csv
)
from validators import ValidationError

DATEV_SETTINGS = {
    'debtor_account': '10000',
    'creditor_account': '70000',
    'revenue_19': '8400',
    'revenue_7': '8300',
    'revenue_0': '',
    'expense_mappings': {'Travel': '4670'},
}


def _invoice(number='RE-2026-0001', items=None):
    return SimpleNamespace(
        invoice_number=number,
        issue_date=date(2026, 3, 1),
        customer=SimpleNamespace(name='Erika Mustermann'),
        items=items or [{'quantity': 2, 'unit_price': 50.0, 'vat_rate': 19}],
    )


@pytest.mark.unit
class TestDatevCsv:
    """Tests for the Buchungsstapel layout"""

    def test_header_and_invoice_booking(self):
        csv_text = build_datev_csv([_invoice()], [], DATEV_SETTINGS, date(2026, 3, 1), date(2026, 3, 31))
        lines = csv_text.split('\r\n')
        assert lines[0].startswith('"EXTF";2;210;"Buchungsstapel"')
        assert ';20260301;20260331;' in lines[1]
        assert lines[2].startswith('"Umsatz (ohne Soll/Haben-Kz)"')
        assert lines[3].split(';')[:9] == ['"119,00"', '"S"', '"EUR"', '""', '""', '""',
                                           '"10000"', '"8400"', '"3"']
        assert '"0103"' in lines[3]

    def test_one_booking_per_vat_rate(self):
        invoice = _invoice(items=[
            {'quantity': 1, 'unit_price': 100.0, 'vat_rate': 19},
            {'quantity': 1, 'unit_price': 100.0, 'vat_rate': 7},
        ])
        lines = build_datev_csv([invoice], [], DATEV_SETTINGS, date(2026, 3, 1), date(2026, 3, 31)).split('\r\n')
        assert len(lines) == 5
        assert lines[4].startswith('"107,00";"S"')
        assert '"8300";"2"' in lines[4]

    def test_rates_without_account_are_skipped(self):
        invoice = _invoice(items=[{'quantity': 1, 'unit_price': 100.0, 'vat_rate': 0}])
        with pytest.raises(ServiceError) as exc_info:
            build_datev_csv([invoice], [], DATEV_SETTINGS, date(2026, 3, 1), date(2026, 3, 31))
        assert exc_info.value.message == NO_DATA_MESSAGE

    def test_expense_booking_uses_category_mapping(self):
        expenses = [
            SimpleNamespace(amount=30.0, category='Travel', expense_date=date(2026, 3, 10),
                            expense_number='AU-2026-0001', description='Anfahrt'),
            SimpleNamespace(amount=12.0, category='Food', expense_date=date(2026, 3, 11),
                            expense_number='AU-2026-0002', description='Kaffee'),
        ]
        lines = build_datev_csv([], expenses, DATEV_SETTINGS, date(2026, 3, 1), date(2026, 3, 31)).split('\r\n')
        assert len(lines) == 4
        assert lines[3].startswith('"30,00";"H";"EUR"')
        assert '"4670";"70000";"9";"1003"' in lines[3]

    def test_booking_text_is_truncated(self):
        invoice = _invoice()
        invoice.customer.name = 'X' * 100
        row = build_datev_csv([invoice], [], DATEV_SETTINGS, date(2026, 3, 1),
                              date(2026, 3, 31)).split('\r\n')[3]
        assert len(row.split(';')[-1].strip('"')) == 60

    def test_filename(self):
        assert datev_filename(date(2026, 4, 1)) == 'DATEV_Export_2026-04-01.csv'


@pytest.mark.unit
class TestExportDatev:
    """Tests for the database-backed DATEV export"""

    def test_requires_feature_flag(self, db, org):
        with pytest.raises(PermissionDeniedError):
            export_datev(db, org.id, date(2026, 3, 1), date(2026, 3, 31))

    def test_range_validation(self, db, org):
        with pytest.raises(ValidationError):
            export_datev(db, org.id, date(2026, 3, 31), date(2026, 3, 1))

    def test_only_booked_invoices_are_exported(self, db, org, admin, invoice_payload):
        """Test that drafts stay out while sent invoices and expenses go in"""
        org.is_datev_export_enabled = True
        org.datev_settings = DATEV_SETTINGS
        repo = InvoiceRepository(db, org.id, admin)
        repo.save_invoice(invoice_payload)
        repo.save_invoice({**invoice_payload, 'status': 'sent'})
        ExpenseRepository(db, org.id, admin).create_expense(
            {'description': 'Anfahrt', 'amount': 30, 'category': 'Travel', 'expense_date': '2026-03-10'})

        filename, csv_text = export_datev(db, org.id, date(2026, 3, 1), date(2026, 3, 31))
        body = csv_text.split('\r\n')[3:]

        assert filename.startswith('DATEV_Export_')
        assert len(body) == 3
        assert all('RE-2026-0002' in line for line in body[:2])
        assert '"AU-2026-0001 Anfahrt"' in body[2]


@pytest.mark.unit
class TestCsvHelpers:
    """Tests for the CSV writers"""

    def test_json_to_csv(self):
        rows = [{'name': 'Müller, Max', 'total': 12.5, 'notes': None}, {'name': 'B', 'total': 1}]
        assert json_to_csv(rows) == 'name,total,notes\r\n"Müller, Max",12.5,""\r\n"B",1,'

    def test_json_to_csv_empty(self):
        assert json_to_csv([]) == ''

    def test_escape_csv_cell(self):
        assert escape_csv_cell('a,b') == '"a,b"'
        assert escape_csv_cell('sagt "hallo"') == '"sagt ""hallo"""'
        assert escape_csv_cell(None) == ''
        assert escape_csv_cell(3) == '3'

    def test_gdpr_csv_flattens_lines(self):
        export = {
            'customer_details': {'id': 1, 'name': 'Erika'},
            'invoices': [{'id': 7, 'invoice_number': 'RE-2026-0001',
                          'items': [{'description': 'Montage', 'quantity': 1}]}],
            'tasks': [],
        }
        sections = gdpr_csv(export).split('\r\n\r\n')
        assert [s.split('\r\n')[0] for s in sections] == [
            'SECTION,CUSTOMER_DETAILS', 'SECTION,INVOICES', 'SECTION,INVOICE_ITEMS']
        assert sections[2].split('\r\n')[1:] == ['invoice_id,description,quantity', '7,Montage,1']

    def test_gdpr_filename(self):
        assert gdpr_filename('Erika  Mustermann', 'json', date(2026, 3, 1)) == \
            'DSGVO_Export_Erika_Mustermann_2026-03-01.json'


@pytest.mark.unit
class TestCustomerData:
    """Tests for the GDPR export and erasure of one customer"""

    def test_export_contains_linked_records(self, db, org, admin, customer, invoice_payload):
        InvoiceRepository(db, org.id, admin).save_invoice(invoice_payload)
        repo = CustomerDataRepository(db, org.id, admin)

        filename, text = repo.export_as_json(customer.id)
        data = json.loads(text)
        assert filename.startswith('DSGVO_Export_Erika_Mustermann_')
        assert data['customer_details']['name'] == 'Erika Mustermann'
        assert len(data['invoices']) == 1
        assert len(data['invoices'][0]['items']) == 2

        _, csv_text = repo.export_as_csv(customer.id)
        assert 'SECTION,INVOICE_ITEMS' in csv_text

    def test_delete_releases_stock(self, db, org, admin, customer, product, invoice_payload):
        invoice_payload['status'] = 'sent'
        InvoiceRepository(db, org.id, admin).save_invoice(invoice_payload)
        assert product.stock_level == 8

        counts = CustomerDataRepository(db, org.id, admin).delete_customer_data(customer.id)

        assert counts['invoices'] == 1
        assert db.get(Customer, customer.id) is None
        assert db.query(Invoice).count() == 0
        assert db.get(Product, product.id).stock_level == 10

    def test_unknown_customer(self, db, org, admin):
        with pytest.raises(NotFoundError):
            CustomerDataRepository(db, org.id, admin).export_customer_data(4711)


@pytest.mark.unit
class TestListExport:
    """Tests for entity list downloads"""

    def test_customers(self, db, org, admin, customer):
        filename, text = ListExportRepository(db, org.id, admin).export_list('customers', date(2026, 3, 1))
        assert filename == 'customers_2026-03-01.csv'
        assert '"Erika Mustermann"' in text.split('\r\n')[1]

    def test_unknown_entity(self, db, org, admin):
        with pytest.raises(ServiceError):
            ListExportRepository(db, org.id, admin).export_list('passwords')
