"""
Date, number and placeholder formatting shared by PDFs, e-mails, text blocks and exports.
"""

import re
from datetime import date, datetime
from typing import Any, Optional, Union

DateLike = Union[date, datetime, str, None]

PLACEHOLDER_PATTERN = re.compile(r'\{([^}]+)\}|\[([^\]]+)\]')
DATE_SUFFIXES = ('.date', '_date', '_time')


def parse_as_local_date(value: DateLike) -> Optional[datetime]:
    """
    Parse a date or timestamp without shifting date-only values across midnight.

    '2024-10-15' becomes local midnight of that day; full ISO timestamps keep their time.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        try:
            if 'T' in text:
                return datetime.fromisoformat(text.replace('Z', '+00:00'))
            return datetime.fromisoformat(text[:10] + 'T00:00:00')
        except ValueError:
            return None
    return None


def format_european_date(value: DateLike) -> str:
    """dd.MM.yyyy, or '' when the value is not a date."""
    parsed = parse_as_local_date(value)
    return parsed.strftime('%d.%m.%Y') if parsed else ''


def format_european_time(value: DateLike) -> str:
    """HH:mm (24h), or '' when the value is not a date."""
    parsed = parse_as_local_date(value)
    return parsed.strftime('%H:%M') if parsed else ''


def format_currency(amount: Optional[float], symbol: str = '€') -> str:
    return f"{symbol}{(amount or 0.0):.2f}"


def format_decimal_comma(amount: float) -> str:
    """Two decimals with a comma separator, e.g. 119.0 -> '119,00'."""
    return f"{amount:.2f}".replace('.', ',')


def _nested_value(context: Any, path: str) -> Any:
    value = context
    for part in path.split('.'):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def resolve_placeholders(content: str, context: Any) -> str:
    """
    Replace {path.to.value} and [path.to.value] placeholders from a nested context.

    Keys ending in .date, _date or _time are rendered dd.MM.yyyy; numeric .total
    values are rendered as €x.xx. Placeholders without a value stay untouched.
    """
    def replace(match):
        key = (match.group(1) or match.group(2) or '').strip()
        if not key:
            return match.group(0)

        value = _nested_value(context, key)

        if key.endswith(DATE_SUFFIXES) and value:
            value = format_european_date(value)

        if key.endswith('.total') and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = format_currency(value)

        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(replace, content or '')
