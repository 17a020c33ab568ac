"""
Tests for global search
"""
import pytest

from services.search_service import SearchService
from tests.conftest import make_customer, make_org, make_product


@pytest.fixture
def search(db, org, admin):
    return SearchService(db, org.id, admin)


@pytest.mark.unit
class TestSearch:
    """Tests for the grouped search results"""

    def test_short_terms_return_nothing(self, search, customer):
        results = search.search('Er')
        assert set(results) == {'customers', 'invoices', 'quotes', 'visits', 'appointments', 'products', 'tasks'}
        assert all(hits == [] for hits in results.values())

    def test_case_insensitive_substring(self, search, customer):
        hits = search.search('mustermann')['customers']
        assert hits == [{'id': customer.id, 'label': 'Erika Mustermann', 'sublabel': customer.customer_number,
                         'path': f"/customers/{customer.id}"}]

    def test_products_by_name(self, search, product):
        assert search.search('thermo')['products'][0]['path'] == '/inventory'

    def test_documents_found_by_customer_name(self, db, org, admin, search, invoice_payload):
        from services.billing_repository import InvoiceRepository
        InvoiceRepository(db, org.id, admin).save_invoice(invoice_payload)

        by_name = search.search('Erika')['invoices']
        by_number = search.search('RE-2026')['invoices']
        assert [hit['label'] for hit in by_name] == ['RE-2026-0001']
        assert by_name == by_number
        assert by_name[0]['sublabel'] == 'Erika Mustermann'

    def test_at_most_five_hits(self, db, org, search):
        for i in range(7):
            make_product(db, org.id, name=f"Ventil {i}")
        assert len(search.search('Ventil')['products']) == 5

    def test_other_orgs_are_invisible(self, db, search):
        other = make_org(db, name='Fremd')
        make_customer(db, other.id, name='Fremdkunde')
        assert search.search('Fremdkunde')['customers'] == []
