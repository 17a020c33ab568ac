"""
Help texts per page and the legal documents (AGB, Datenschutz).

Help content is cached in-process per (page, language); saving help content
clears the cache.
"""

import logging
import threading
from typing import Dict, List

from database.models import HelpContent, LegalContent
from services.errors import NotFoundError, PermissionDeniedError
from validators import ValidationError

logger = logging.getLogger(__name__)

LANGUAGES = ('de', 'al')
LEGAL_KEYS = ('agb', 'datenschutz')

HELP_NOT_AVAILABLE = 'Help content is not available for this page.'

_help_cache: Dict[str, str] = {}
_cache_lock = threading.Lock()


def invalidate_help_cache():
    with _cache_lock:
        _help_cache.clear()


def _language(language: str) -> str:
    return language if language in LANGUAGES else 'de'


def _require_super_admin(user: Dict):
    if not user or user.get('role') != 'super_admin':
        raise PermissionDeniedError("Only super admins can edit this content")


def get_help(session, page_key: str, language: str = 'de') -> str:
    """Help text in the requested language, falling back to the other one."""
    language = _language(language)
    cache_key = f"{page_key}-{language}"
    with _cache_lock:
        if cache_key in _help_cache:
            return _help_cache[cache_key]

    row = session.query(HelpContent).filter(HelpContent.page_key == page_key).first()
    if row is None:
        return HELP_NOT_AVAILABLE

    primary, fallback = ('content_de', 'content_al') if language == 'de' else ('content_al', 'content_de')
    content = getattr(row, primary) or getattr(row, fallback) or HELP_NOT_AVAILABLE
    with _cache_lock:
        _help_cache[cache_key] = content
    return content


def list_help(session) -> List[Dict]:
    return [row.to_dict() for row in session.query(HelpContent).order_by(HelpContent.page_key).all()]


def save_help(session, entries: List[Dict], user: Dict) -> List[Dict]:
    """Upsert help texts by page_key."""
    _require_super_admin(user)
    for entry in entries or []:
        page_key = (entry.get('page_key') or '').strip()
        if not page_key:
            raise ValidationError("page_key is required", 'page_key')
        row = session.query(HelpContent).filter(HelpContent.page_key == page_key).first()
        if row is None:
            row = HelpContent(page_key=page_key)
            session.add(row)
        for column in ('content_de', 'content_al'):
            if column in entry:
                setattr(row, column, entry[column])
    session.flush()
    invalidate_help_cache()
    logger.info(f"Saved {len(entries or [])} help entries")
    return list_help(session)


def get_legal(session, key: str) -> Dict:
    if key not in LEGAL_KEYS:
        raise NotFoundError('Legal content', key)
    row = session.get(LegalContent, key)
    if row is None:
        return {'key': key, 'content_de': '', 'content_al': '', 'updated_at': None}
    return row.to_dict()


def save_legal(session, key: str, data: Dict, user: Dict) -> Dict:
    _require_super_admin(user)
    if key not in LEGAL_KEYS:
        raise NotFoundError('Legal content', key)
    row = session.get(LegalContent, key)
    if row is None:
        row = LegalContent(key=key)
        session.add(row)
    for column in ('content_de', 'content_al'):
        if column in data:
            setattr(row, column, data[column])
    session.flush()
    logger.info(f"Saved legal content {key}")
    return row.to_dict()
