"""
Inventory Repository - products (goods and services) and their stock.
"""

import logging
from typing import Dict, List

from sqlalchemy import or_

from database.models import Product
from services.base_repository import TenantRepository, apply_sort, paginate
from services.numbering import next_number
from services.stock import notify_low_stock, refresh_stock_status
from validators import ensure_valid, parse_date, to_number, validate_product_payload

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ['name', 'description', 'selling_price', 'type', 'unit', 'stock_level',
                  'minimum_stock_level', 'stock_status', 'restock_date']
PRODUCT_SORT_FIELDS = ['name', 'product_number', 'selling_price', 'stock_level', 'created_at']


def _int_or_none(value, field):
    number = to_number(value, field, default=None)
    return int(number) if number is not None else None


class InventoryRepository(TenantRepository):
    """Repository for product database operations."""

    def list_products(self, search: str = None, product_type: str = None, low_stock_only: bool = False,
                      page: int = 1, per_page: int = 25, sort_by: str = 'name', sort_order: str = 'asc') -> Dict:
        query = self._scoped(Product)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(term), Product.product_number.ilike(term)))
        if product_type:
            query = query.filter(Product.type == product_type)
        if low_stock_only:
            query = query.filter(Product.stock_level != None,  # noqa: E711
                                 Product.stock_level <= Product.minimum_stock_level)
        query = apply_sort(query, Product, sort_by, sort_order, PRODUCT_SORT_FIELDS, 'name')
        return paginate(query, page, per_page)

    def all_products(self) -> List[Dict]:
        return [p.to_dict() for p in self._scoped(Product).order_by(Product.name).all()]

    def get_product(self, product_id: int) -> Dict:
        return self._get(Product, product_id, 'Product').to_dict()

    def get_products(self, product_ids: List[int]) -> List[Product]:
        if not product_ids:
            return []
        return self._scoped(Product).filter(Product.id.in_(product_ids)).all()

    def _apply(self, product: Product, data: Dict):
        for key in PRODUCT_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key == 'selling_price':
                value = to_number(value, key)
            elif key in ('stock_level', 'minimum_stock_level'):
                value = _int_or_none(value, key)
            elif key == 'restock_date':
                value = parse_date(value, key)
            setattr(product, key, value)

    def create_product(self, data: Dict) -> Dict:
        ensure_valid(validate_product_payload(data))
        org_id = self._require_org()

        product = Product(
            org_id=org_id,
            product_number=next_number(self.session, org_id, 'product'),
            type=data.get('type', 'good'),
            minimum_stock_level=0,
            stock_status='Available',
        )
        self._apply(product, data)
        if 'stock_status' not in data:
            refresh_stock_status(product)
        self.session.add(product)
        self.session.flush()

        logger.info(f"Created product: {product.product_number}")
        return product.to_dict()

    def update_product(self, product_id: int, data: Dict) -> Dict:
        product = self._get(Product, product_id, 'Product')
        ensure_valid(validate_product_payload({**product.to_dict(), **data}))

        self._apply(product, data)
        if 'stock_status' not in data and ('stock_level' in data or 'minimum_stock_level' in data):
            refresh_stock_status(product)
        self.session.flush()

        logger.info(f"Updated product: {product_id}")
        return product.to_dict()

    def adjust_stock(self, product_id: int, delta: int) -> Dict:
        """Manual stock correction (incoming goods, inventory count)."""
        product = self._get(Product, product_id, 'Product', lock=True)
        product.stock_level = (product.stock_level or 0) + int(delta)
        if refresh_stock_status(product) and delta < 0:
            notify_low_stock(self.session, product.org_id, product)
        self.session.flush()
        logger.info(f"Adjusted stock of product {product_id} by {delta}")
        return product.to_dict()

    def copy_product(self, product_id: int) -> Dict:
        source = self._get(Product, product_id, 'Product')
        copy = Product(
            org_id=source.org_id,
            product_number=next_number(self.session, source.org_id, 'product'),
            name=f"(Copy) {source.name}",
            description=source.description,
            selling_price=source.selling_price,
            type=source.type,
            unit=source.unit,
            stock_level=source.stock_level,
            minimum_stock_level=source.minimum_stock_level,
            stock_status=source.stock_status,
            restock_date=source.restock_date,
        )
        self.session.add(copy)
        self.session.flush()
        logger.info(f"Copied product {product_id} to {copy.product_number}")
        return copy.to_dict()

    def delete_product(self, product_id: int) -> bool:
        product = self._get(Product, product_id, 'Product')
        self.session.delete(product)
        self.session.flush()
        logger.info(f"Deleted product: {product_id}")
        return True
