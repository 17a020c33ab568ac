"""
Tests for stock reservation and low stock warnings
"""
import pytest

from database.models import Notification
from services.stock import (
    apply_stock_deltas,
    compute_stock_deltas,
    is_stock_relevant,
    refresh_stock_status,
    reserved_quantities,
)
from tests.conftest import make_product


@pytest.mark.unit
class TestReservation:
    """Tests for the reservation arithmetic"""

    @pytest.mark.parametrize('document_type,status,expected', [
        ('invoice', 'draft', False),
        ('invoice', 'sent', True),
        ('invoice', 'paid', True),
        ('quote', 'declined', False),
        ('quote', 'accepted', True),
        ('visit', 'planned', True),
        ('visit', 'cancelled', False),
    ])
    def test_stock_relevant_statuses(self, document_type, status, expected):
        assert is_stock_relevant(document_type, status) is expected

    def test_reserved_quantities_sum_per_product(self):
        """Test that lines of the same product add up and free text is ignored"""
        lines = [(1, 2), (1, 3), (None, 5), (2, 1)]
        assert reserved_quantities('invoice', 'sent', lines) == {1: 5.0, 2: 1.0}

    def test_draft_reserves_nothing(self):
        assert reserved_quantities('invoice', 'draft', [(1, 2)]) == {}

    def test_draft_to_sent_takes_stock(self):
        deltas = compute_stock_deltas('invoice', 'draft', [(1, 2)], 'sent', [(1, 2)])
        assert deltas == {1: 2.0}

    def test_quantity_change_while_sent(self):
        """Test that only the difference is applied"""
        deltas = compute_stock_deltas('invoice', 'sent', [(1, 2)], 'sent', [(1, 5), (2, 1)])
        assert deltas == {1: 3.0, 2: 1.0}

    def test_decline_gives_stock_back(self):
        deltas = compute_stock_deltas('quote', 'sent', [(1, 4)], 'declined', [(1, 4)])
        assert deltas == {1: -4.0}

    def test_paid_after_sent_changes_nothing(self):
        assert compute_stock_deltas('invoice', 'sent', [(1, 2)], 'paid', [(1, 2)]) == {}


@pytest.mark.unit
class TestStockStatus:
    """Tests for the derived stock status"""

    def _product(self, level, minimum=2, status='Available'):
        from database.models import Product
        return Product(name='Ventil', stock_level=level, minimum_stock_level=minimum, stock_status=status)

    @pytest.mark.parametrize('level,status,is_low', [
        (10, 'Available', False),
        (2, 'Low', True),
        (0, 'Not Available', True),
        (-3, 'Not Available', True),
    ])
    def test_status_follows_level(self, level, status, is_low):
        product = self._product(level)
        assert refresh_stock_status(product) is is_low
        assert product.stock_status == status

    def test_available_soon_is_kept(self):
        product = self._product(0, status='Available Soon')
        assert refresh_stock_status(product) is True
        assert product.stock_status == 'Available Soon'

    def test_untracked_product(self):
        product = self._product(None)
        assert refresh_stock_status(product) is False


@pytest.mark.unit
class TestApplyStockDeltas:
    """Tests for writing stock changes"""

    def test_goods_are_updated(self, db, org, product):
        updated = apply_stock_deltas(db, org.id, {product.id: 3})
        assert product.stock_level == 7
        assert updated[0]['id'] == product.id

    def test_fractional_reservation_is_released_exactly(self, db, org, product):
        apply_stock_deltas(db, org.id, {product.id: 0.5})
        assert product.stock_level == 9.5
        apply_stock_deltas(db, org.id, {product.id: -0.5})
        assert product.stock_level == 10

    def test_services_are_untouched(self, db, org, service_product):
        assert apply_stock_deltas(db, org.id, {service_product.id: 3}) == []
        assert service_product.stock_level is None

    def test_low_stock_notifies_admins(self, db, org, admin, fse):
        """Test that only admins get the low stock warning"""
        product = make_product(db, org.id, stock_level=3, minimum_stock_level=2)
        apply_stock_deltas(db, org.id, {product.id: 2})

        assert product.stock_status == 'Low'
        notifications = db.query(Notification).all()
        assert [n.user_id for n in notifications] == [admin['id']]
        assert notifications[0].title == 'Low Stock Warning'
        assert notifications[0].body == 'Stock for "Thermostat" is low.'

    def test_returning_stock_does_not_warn(self, db, org, admin):
        product = make_product(db, org.id, stock_level=1, minimum_stock_level=2)
        apply_stock_deltas(db, org.id, {product.id: -1})
        assert product.stock_level == 2
        assert db.query(Notification).count() == 0

    def test_other_organizations_products_are_ignored(self, db, org, product):
        from tests.conftest import make_org
        other = make_org(db, name='Fremd')
        assert apply_stock_deltas(db, other.id, {product.id: 1}) == []
        assert product.stock_level == 10
