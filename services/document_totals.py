"""
Line items and totals for invoices and quotes.

Items may be dicts (request payloads) or ORM rows (InvoiceItem/QuoteItem);
missing quantity, price or VAT rate count as 0.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List

DEFAULT_VAT_RATE = 19.0


def round_money(value: float) -> float:
    return round(value or 0.0, 2)


def _field(item: Any, key: str) -> float:
    value = item.get(key) if isinstance(item, dict) else getattr(item, key, None)
    try:
        return float(value) if value not in (None, '') else 0.0
    except (TypeError, ValueError):
        return 0.0


def line_net(item: Any) -> float:
    return _field(item, 'quantity') * _field(item, 'unit_price')


def net_by_vat_rate(items: Iterable[Any]) -> Dict[float, float]:
    """Net amount per VAT rate, in first-seen order."""
    totals: Dict[float, float] = OrderedDict()
    for item in items:
        rate = _field(item, 'vat_rate')
        totals[rate] = totals.get(rate, 0.0) + line_net(item)
    return totals


def calculate_totals(items: Iterable[Any]) -> Dict[str, Any]:
    """
    Subtotal, VAT per rate, total VAT and grand total.

    Returns:
        {'subtotal', 'vat_breakdown': {rate: vat}, 'total_vat', 'total'}
    """
    items = list(items)
    subtotal = sum(line_net(item) for item in items)
    vat_breakdown: Dict[float, float] = OrderedDict()
    for rate, net in net_by_vat_rate(items).items():
        vat_breakdown[rate] = net * rate / 100

    total_vat = sum(vat_breakdown.values())
    return {
        'subtotal': round_money(subtotal),
        'vat_breakdown': {rate: round_money(vat) for rate, vat in vat_breakdown.items()},
        'total_vat': round_money(total_vat),
        'total': round_money(subtotal + total_vat),
    }


def document_total(items: Iterable[Any]) -> float:
    """Grand total (net + VAT) rounded to cents."""
    return calculate_totals(items)['total']


def is_blank_line(item: Dict[str, Any]) -> bool:
    """An untouched editor line: no product, no expense, no description and no price."""
    return (
        not item.get('product_id')
        and not item.get('expense_id')
        and not (item.get('description') or '').strip()
        and not _field(item, 'unit_price')
    )


def add_products_to_items(items: List[Dict[str, Any]], products: Iterable[Any],
                          vat_rate: float = DEFAULT_VAT_RATE) -> List[Dict[str, Any]]:
    """
    Merge selected products into a line item list.

    A product already on the document gets its quantity raised by one; a new
    product becomes a line at its selling price. Blank lines are dropped.
    """
    merged = [dict(item) for item in items if not is_blank_line(item)]

    for product in products:
        product_id = product['id'] if isinstance(product, dict) else product.id
        existing = next((line for line in merged if line.get('product_id') == product_id), None)
        if existing:
            existing['quantity'] = _field(existing, 'quantity') + 1
            continue

        get = product.get if isinstance(product, dict) else (lambda key, default=None: getattr(product, key, default))
        merged.append({
            'product_id': product_id,
            'expense_id': None,
            'description': get('name') or '',
            'quantity': 1,
            'unit_price': get('selling_price') or 0.0,
            'vat_rate': vat_rate,
        })

    return merged


def add_expenses_to_items(items: List[Dict[str, Any]], expenses: Iterable[Any],
                          vat_rate: float = DEFAULT_VAT_RATE) -> List[Dict[str, Any]]:
    """Merge selected expenses into a line item list; each expense appears at most once."""
    merged = [dict(item) for item in items if not is_blank_line(item)]

    for expense in expenses:
        expense_id = expense['id'] if isinstance(expense, dict) else expense.id
        if any(line.get('expense_id') == expense_id for line in merged):
            continue

        get = expense.get if isinstance(expense, dict) else (lambda key, default=None: getattr(expense, key, default))
        merged.append({
            'product_id': None,
            'expense_id': expense_id,
            'description': get('description') or '',
            'quantity': 1,
            'unit_price': get('amount') or 0.0,
            'vat_rate': vat_rate,
        })

    return merged
