"""
Migration center: CSV import of customers and products.

The header must match the template exactly. Rows with the wrong number of
columns or invalid values are reported and skipped; every other row is
imported with a freshly generated number.
"""

import csv
import io
import logging
from typing import Dict, List

from services.crm_repository import CRMRepository
from services.errors import ServiceError
from services.inventory_repository import InventoryRepository
from validators import ValidationError

logger = logging.getLogger(__name__)

IMPORT_HEADERS = {
    'customer': ['name', 'email', 'phone', 'address'],
    'product': ['name', 'description', 'selling_price', 'stock_level'],
}


def template_csv(import_type: str) -> str:
    if import_type not in IMPORT_HEADERS:
        raise ServiceError(f"Unknown import type: {import_type}")
    return ','.join(IMPORT_HEADERS[import_type])


def template_filename(import_type: str) -> str:
    return f"{import_type}_template.csv"


def _float_or_zero(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _int_or_none(value: str):
    if not value:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_import_csv(content: str, import_type: str) -> List[List[str]]:
    """
    Split the file into data rows after checking the header.

    Raises:
        ServiceError: For a missing data row or a header that does not match
    """
    expected = IMPORT_HEADERS.get(import_type)
    if expected is None:
        raise ServiceError(f"Unknown import type: {import_type}")

    lines = [line for line in content.lstrip('\ufeff').splitlines() if line.strip()]
    if len(lines) < 2:
        raise ServiceError('CSV file must have a header and at least one data row.')

    rows = list(csv.reader(io.StringIO('\n'.join(lines))))
    header = [h.strip() for h in rows[0]]
    if header != expected:
        raise ServiceError(f"Invalid headers. Expected: {', '.join(expected)}")
    return rows[1:]


class ImportService:
    """Imports CSV data into one organization."""

    def __init__(self, session, organization_id: str, user: Dict = None):
        self.session = session
        self.organization_id = organization_id
        self.user = user or {}

    def _record(self, import_type: str, values: Dict[str, str]) -> Dict:
        if import_type == 'customer':
            return {
                'name': values['name'],
                'email': values['email'] or None,
                'phone': values['phone'] or None,
                'address': values['address'] or None,
            }
        return {
            'name': values['name'],
            'description': values['description'] or None,
            'selling_price': _float_or_zero(values['selling_price']),
            'stock_level': _int_or_none(values['stock_level']),
        }

    def import_csv(self, content: str, import_type: str) -> Dict:
        """
        Returns:
            {'successCount', 'errorCount', 'errors'}; a file-level problem is
            reported as a single error.
        """
        if not self.organization_id:
            raise ServiceError("An organization is required for this operation")
        try:
            rows = parse_import_csv(content, import_type)
        except ServiceError as e:
            return {'successCount': 0, 'errorCount': 1, 'errors': [e.message]}

        header = IMPORT_HEADERS[import_type]
        if import_type == 'customer':
            create = CRMRepository(self.session, self.organization_id, self.user).create_customer
        else:
            create = InventoryRepository(self.session, self.organization_id, self.user).create_product

        success_count = 0
        errors = []
        for index, row in enumerate(rows):
            # Row numbers count the header as row 1
            row_number = index + 2
            if len(row) != len(header):
                errors.append(f"Row {row_number}: Incorrect number of columns.")
                continue
            values = {h: value.strip() for h, value in zip(header, row)}
            try:
                with self.session.begin_nested():
                    create(self._record(import_type, values))
                success_count += 1
            except (ValidationError, ServiceError) as e:
                errors.append(f"Row {row_number}: {e.message}")

        if errors:
            logger.warning(f"CSV import of {import_type}s had {len(errors)} errors: {errors}")
        logger.info(f"Imported {success_count} {import_type}s into org {self.organization_id}")
        return {'successCount': success_count, 'errorCount': len(errors), 'errors': errors}
