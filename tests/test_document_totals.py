"""
Tests for line items and document totals
"""
import pytest

from services.document_totals import (
    add_expenses_to_items,
    add_products_to_items,
    calculate_totals,
    document_total,
    is_blank_line,
    net_by_vat_rate,
)


@pytest.mark.unit
class TestTotals:
    """Tests for subtotal, VAT and grand total"""

    def test_mixed_vat_rates(self):
        """Test per-rate VAT on a 19% and a 7% line"""
        items = [
            {'quantity': 2, 'unit_price': 50.0, 'vat_rate': 19},
            {'quantity': 1, 'unit_price': 100.0, 'vat_rate': 7},
        ]
        totals = calculate_totals(items)
        assert totals['subtotal'] == 200.0
        assert totals['vat_breakdown'] == {19.0: 19.0, 7.0: 7.0}
        assert totals['total_vat'] == 26.0
        assert totals['total'] == 226.0

    def test_empty_document(self):
        assert calculate_totals([]) == {'subtotal': 0.0, 'vat_breakdown': {}, 'total_vat': 0.0, 'total': 0.0}

    def test_missing_values_count_as_zero(self):
        """Test that missing or garbage numbers do not break the sum"""
        items = [{'quantity': None, 'unit_price': 10}, {'quantity': 'x', 'unit_price': 5, 'vat_rate': ''}]
        assert document_total(items) == 0.0

    def test_rounding_to_cents(self):
        items = [{'quantity': 3, 'unit_price': 0.333, 'vat_rate': 19}]
        assert document_total(items) == 1.19

    def test_net_by_rate_keeps_first_seen_order(self):
        items = [
            {'quantity': 1, 'unit_price': 10, 'vat_rate': 7},
            {'quantity': 1, 'unit_price': 20, 'vat_rate': 19},
            {'quantity': 1, 'unit_price': 5, 'vat_rate': 7},
        ]
        assert list(net_by_vat_rate(items).items()) == [(7.0, 15.0), (19.0, 20.0)]

    def test_works_on_orm_like_rows(self):
        """Test that objects with attributes are accepted like dicts"""
        class Row:
            quantity = 2
            unit_price = 10.0
            vat_rate = 19.0
        assert document_total([Row()]) == 23.8


@pytest.mark.unit
class TestLineItemMerging:
    """Tests for adding products and expenses to a document"""

    def test_blank_line_detection(self):
        assert is_blank_line({'description': '  ', 'quantity': 1}) is True
        assert is_blank_line({'description': 'Montage'}) is False
        assert is_blank_line({'product_id': 3}) is False
        assert is_blank_line({'unit_price': 5}) is False

    def test_new_product_becomes_line(self):
        """Test a product is added at its selling price with 19% VAT"""
        items = add_products_to_items([{'description': ''}], [{'id': 4, 'name': 'Ventil', 'selling_price': 12.5}])
        assert items == [{
            'product_id': 4, 'expense_id': None, 'description': 'Ventil',
            'quantity': 1, 'unit_price': 12.5, 'vat_rate': 19.0,
        }]

    def test_existing_product_quantity_increases(self):
        items = [{'product_id': 4, 'description': 'Ventil', 'quantity': 2, 'unit_price': 12.5}]
        merged = add_products_to_items(items, [{'id': 4, 'name': 'Ventil', 'selling_price': 12.5}])
        assert len(merged) == 1
        assert merged[0]['quantity'] == 3

    def test_input_list_is_not_mutated(self):
        items = [{'product_id': 4, 'quantity': 1, 'unit_price': 1}]
        add_products_to_items(items, [{'id': 4, 'name': 'Ventil', 'selling_price': 1}])
        assert items[0]['quantity'] == 1

    def test_expense_added_once(self):
        """Test that an expense already on the document is skipped"""
        expense = {'id': 9, 'description': 'Anfahrt', 'amount': 30.0}
        merged = add_expenses_to_items([], [expense])
        merged = add_expenses_to_items(merged, [expense])
        assert len(merged) == 1
        assert merged[0]['expense_id'] == 9
        assert merged[0]['unit_price'] == 30.0
