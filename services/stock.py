"""
Stock reservation for documents that consume products.

A document reserves the quantities of its product lines while it is in a
stock-relevant status. Saving computes the difference between what was
reserved before and after, and applies it to the product stock levels.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from database.models import Product, User

logger = logging.getLogger(__name__)

STOCK_RELEVANT_STATUSES = {
    'invoice': {'sent', 'overdue', 'paid'},
    'quote': {'sent', 'accepted'},
    'visit': {'planned', 'completed'},
}

# (product_id, quantity) pairs
ProductLines = Iterable[Tuple[Optional[int], float]]


def is_stock_relevant(document_type: str, status: Optional[str]) -> bool:
    return status in STOCK_RELEVANT_STATUSES.get(document_type, set())


def reserved_quantities(document_type: str, status: Optional[str], lines: ProductLines) -> Dict[int, float]:
    """Quantity reserved per product for a document in the given status."""
    reserved: Dict[int, float] = {}
    if not is_stock_relevant(document_type, status):
        return reserved
    for product_id, quantity in lines:
        if not product_id:
            continue
        reserved[product_id] = reserved.get(product_id, 0.0) + float(quantity or 0)
    return reserved


def compute_stock_deltas(document_type: str,
                         initial_status: Optional[str], initial_lines: ProductLines,
                         final_status: Optional[str], final_lines: ProductLines) -> Dict[int, float]:
    """
    Per-product change in reservation: reserved_final - reserved_initial.

    Positive values take stock out, negative values give it back.
    """
    initial = reserved_quantities(document_type, initial_status, initial_lines)
    final = reserved_quantities(document_type, final_status, final_lines)

    deltas = {}
    for product_id in set(initial) | set(final):
        delta = final.get(product_id, 0.0) - initial.get(product_id, 0.0)
        if delta:
            deltas[product_id] = delta
    return deltas


def refresh_stock_status(product: Product) -> bool:
    """
    Derive stock_status from the level. 'Available Soon' is set by hand and kept.

    Returns True when the product is now at or below its minimum.
    """
    if product.stock_level is None:
        return False

    is_low = product.stock_level <= (product.minimum_stock_level or 0)
    if product.stock_status == 'Available Soon':
        return is_low

    if product.stock_level <= 0:
        product.stock_status = 'Not Available'
    elif is_low:
        product.stock_status = 'Low'
    else:
        product.stock_status = 'Available'
    return is_low


def apply_stock_deltas(session: Session, org_id: str, deltas: Dict[int, float]) -> List[Dict]:
    """
    Subtract reserved quantities from tracked goods and warn admins about low stock.

    Returns the updated products as dicts.
    """
    if not deltas:
        return []

    products = session.query(Product).filter(
        Product.org_id == org_id,
        Product.id.in_(list(deltas.keys()))
    ).with_for_update().all()

    updated = []
    low_stock = []
    for product in products:
        if product.type != 'good' or product.stock_level is None:
            continue
        delta = deltas[product.id]
        product.stock_level = product.stock_level - delta
        if refresh_stock_status(product) and delta > 0:
            low_stock.append(product)
        updated.append(product)

    session.flush()

    for product in low_stock:
        notify_low_stock(session, org_id, product)

    if updated:
        logger.info(f"Applied stock changes to {len(updated)} products in org {org_id}")
    return [p.to_dict() for p in updated]


def notify_low_stock(session: Session, org_id: str, product: Product):
    """Send the low stock warning to every admin of the organization."""
    from services.notification_service import NotificationService

    admins = session.query(User).filter(
        User.org_id == org_id,
        User.role == 'admin',
        User.is_active == True  # noqa: E712
    ).all()

    service = NotificationService(session, org_id)
    for admin in admins:
        service.create_notification(
            user_id=admin.id,
            title='Low Stock Warning',
            body=f'Stock for "{product.name}" is low.',
            notification_type='generic',
            related_entity_path='/inventory',
            related_entity_id=product.id,
        )
