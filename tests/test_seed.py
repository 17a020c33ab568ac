"""
Tests for first-run seeding
"""
import pytest

from database.models import LegalContent, User
from database.seed import DEFAULT_SUPER_ADMIN_EMAIL, seed_legal_pages, seed_super_admin


@pytest.mark.unit
class TestSeed:

    def test_super_admin_from_environment(self, db, monkeypatch):
        monkeypatch.setenv('SUPER_ADMIN_EMAIL', ' Root@Example.com ')
        monkeypatch.setenv('SUPER_ADMIN_PASSWORD', 'sehr-geheim')
        admin = seed_super_admin(db)
        assert admin.email == 'root@example.com'
        assert admin.role == 'super_admin'
        assert admin.org_id is None

    def test_existing_super_admin_is_kept(self, db, super_admin):
        assert seed_super_admin(db, password='egal-egal').id == super_admin['id']
        assert db.query(User).filter_by(role='super_admin').count() == 1

    def test_password_is_required(self, db, monkeypatch):
        monkeypatch.delenv('SUPER_ADMIN_PASSWORD', raising=False)
        with pytest.raises(RuntimeError):
            seed_super_admin(db)

    def test_default_email(self, db, monkeypatch):
        monkeypatch.delenv('SUPER_ADMIN_EMAIL', raising=False)
        assert seed_super_admin(db, password='sehr-geheim').email == DEFAULT_SUPER_ADMIN_EMAIL

    def test_legal_pages_once(self, db):
        assert seed_legal_pages(db) == 2
        assert seed_legal_pages(db) == 0
        assert db.get(LegalContent, 'agb').content_de == ''
