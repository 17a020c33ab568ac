"""
Tests for help texts and legal documents
"""
import pytest

from services.content_service import (
    HELP_NOT_AVAILABLE, get_help, get_legal, invalidate_help_cache, list_help, save_help, save_legal
)
from services.errors import NotFoundError, PermissionDeniedError
from validators import ValidationError


@pytest.fixture(autouse=True)
def clear_cache():
    invalidate_help_cache()
    yield
    invalidate_help_cache()


@pytest.mark.unit
class TestHelpContent:
    """Tests for per-page help"""

    def test_missing_page(self, db):
        assert get_help(db, 'dashboard') == HELP_NOT_AVAILABLE

    def test_language_and_fallback(self, db, super_admin):
        save_help(db, [{'page_key': 'dashboard', 'content_de': 'Hilfe'}], super_admin)
        assert get_help(db, 'dashboard', 'de') == 'Hilfe'
        assert get_help(db, 'dashboard', 'al') == 'Hilfe'
        assert get_help(db, 'dashboard', 'fr') == 'Hilfe'

    def test_saving_clears_cache(self, db, super_admin):
        save_help(db, [{'page_key': 'visits', 'content_de': 'Alt'}], super_admin)
        assert get_help(db, 'visits') == 'Alt'
        save_help(db, [{'page_key': 'visits', 'content_de': 'Neu', 'content_al': 'Ndihmë'}], super_admin)
        assert get_help(db, 'visits') == 'Neu'
        assert get_help(db, 'visits', 'al') == 'Ndihmë'
        assert [row['page_key'] for row in list_help(db)] == ['visits']

    def test_only_super_admins_edit(self, db, admin):
        with pytest.raises(PermissionDeniedError):
            save_help(db, [{'page_key': 'x', 'content_de': 'y'}], admin)

    def test_page_key_required(self, db, super_admin):
        with pytest.raises(ValidationError):
            save_help(db, [{'content_de': 'y'}], super_admin)


@pytest.mark.unit
class TestLegalContent:
    """Tests for AGB and Datenschutz"""

    def test_empty_default(self, db):
        assert get_legal(db, 'agb') == {'key': 'agb', 'content_de': '', 'content_al': '', 'updated_at': None}

    def test_save_and_read(self, db, super_admin):
        save_legal(db, 'datenschutz', {'content_de': 'Wir speichern wenig.'}, super_admin)
        assert get_legal(db, 'datenschutz')['content_de'] == 'Wir speichern wenig.'

    def test_unknown_key(self, db, super_admin):
        with pytest.raises(NotFoundError):
            get_legal(db, 'impressum')
        with pytest.raises(NotFoundError):
            save_legal(db, 'impressum', {}, super_admin)

    def test_only_super_admins_edit(self, db, admin):
        with pytest.raises(PermissionDeniedError):
            save_legal(db, 'agb', {'content_de': 'x'}, admin)
