"""
Tests for per-organization document numbering
"""
import pytest
from datetime import date

from services.numbering import format_number, next_number
from tests.conftest import make_org


@pytest.mark.unit
class TestFormatNumber:
    """Tests for number formatting"""

    def test_yearly_documents(self):
        """Test invoice, quote and visit numbers carry the year"""
        assert format_number('invoice', 1, 2026) == 'RE-2026-0001'
        assert format_number('quote', 12, 2026) == 'AN-2026-0012'
        assert format_number('visit', 345, 2025) == 'BE-2025-0345'

    def test_master_data(self):
        """Test customer and product numbers have no year"""
        assert format_number('customer', 7) == 'KD-00007'
        assert format_number('product', 123) == 'AR-00123'


@pytest.mark.unit
class TestNextNumber:
    """Tests for sequence allocation"""

    def test_numbers_are_sequential(self, db, org):
        """Test that consecutive calls never repeat a number"""
        today = date(2026, 5, 4)
        numbers = [next_number(db, org.id, 'invoice', today) for _ in range(3)]
        assert numbers == ['RE-2026-0001', 'RE-2026-0002', 'RE-2026-0003']

    def test_document_types_are_independent(self, db, org):
        """Test that each document type has its own counter"""
        today = date(2026, 5, 4)
        next_number(db, org.id, 'invoice', today)
        assert next_number(db, org.id, 'quote', today) == 'AN-2026-0001'

    def test_yearly_sequence_restarts(self, db, org):
        """Test that yearly counters restart in January"""
        next_number(db, org.id, 'invoice', date(2025, 12, 31))
        next_number(db, org.id, 'invoice', date(2025, 12, 31))
        assert next_number(db, org.id, 'invoice', date(2026, 1, 1)) == 'RE-2026-0001'

    def test_master_data_never_restarts(self, db, org):
        next_number(db, org.id, 'customer', date(2025, 12, 31))
        assert next_number(db, org.id, 'customer', date(2026, 1, 1)) == 'KD-00002'

    def test_organizations_are_independent(self, db, org):
        """Test that two tenants both start at 1"""
        other = make_org(db, name='Andere Firma')
        today = date(2026, 5, 4)
        next_number(db, org.id, 'invoice', today)
        assert next_number(db, other.id, 'invoice', today) == 'RE-2026-0001'

    def test_unknown_type_raises(self, db, org):
        with pytest.raises(ValueError):
            next_number(db, org.id, 'letter')
