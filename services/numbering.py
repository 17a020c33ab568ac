"""
Document Numbering - per-organization sequential numbers.

Yearly documents:  <PREFIX>-<YYYY>-<NNNN>  (restart at 1 every calendar year)
Master data:       <PREFIX>-<NNNNN>
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import NumberSequence

logger = logging.getLogger(__name__)

# document_type -> (prefix, resets yearly)
NUMBER_FORMATS = {
    'invoice': ('RE', True),
    'quote': ('AN', True),
    'visit': ('BE', True),
    'expense': ('AU', True),
    'appointment': ('TE', True),
    'customer': ('KD', False),
    'product': ('AR', False),
}


def format_number(document_type: str, value: int, year: Optional[int] = None) -> str:
    prefix, yearly = NUMBER_FORMATS[document_type]
    if yearly:
        return f"{prefix}-{year}-{value:04d}"
    return f"{prefix}-{value:05d}"


def _locked_sequence(session: Session, org_id: str, document_type: str, year: int):
    return session.query(NumberSequence).filter(
        NumberSequence.org_id == org_id,
        NumberSequence.document_type == document_type,
        NumberSequence.year == year
    ).with_for_update().first()


def next_number(session: Session, org_id: str, document_type: str, today: date = None) -> str:
    """
    Reserve and return the next number for a document type.

    The sequence row is locked for the rest of the transaction, so concurrent
    saves in the same organization are serialized and never share a number.
    """
    if document_type not in NUMBER_FORMATS:
        raise ValueError(f"Unknown document type for numbering: {document_type}")

    _, yearly = NUMBER_FORMATS[document_type]
    year = (today or date.today()).year if yearly else 0

    sequence = _locked_sequence(session, org_id, document_type, year)
    if sequence is None:
        try:
            with session.begin_nested():
                sequence = NumberSequence(org_id=org_id, document_type=document_type,
                                          year=year, last_value=0)
                session.add(sequence)
        except IntegrityError:
            # Another transaction created the row first
            sequence = _locked_sequence(session, org_id, document_type, year)

    sequence.last_value += 1
    session.flush()

    number = format_number(document_type, sequence.last_value, year)
    logger.debug(f"Issued {document_type} number {number} for org {org_id}")
    return number
