"""
Tests for role permissions and document editing rules
"""
import pytest

from services.errors import PermissionDeniedError
from services.permissions import (
    ALL_MODULES,
    DEFAULT_PERMISSIONS,
    can_convert_quote,
    can_edit_invoice,
    can_edit_visit,
    can_save_quote,
    get_org_permissions,
    get_role_modules,
    has_module,
    set_role_modules,
)


@pytest.mark.unit
class TestRoleModules:
    """Tests for module access per role"""

    def test_admins_get_everything(self, db, org):
        assert get_role_modules(db, org.id, 'admin') == ALL_MODULES
        assert get_role_modules(db, None, 'super_admin') == ALL_MODULES

    def test_defaults_without_stored_row(self, db, org):
        """Test that an organization without settings uses the defaults"""
        assert get_role_modules(db, org.id, 'field_service_employee') == \
            DEFAULT_PERMISSIONS['field_service_employee']
        assert 'team' not in get_role_modules(db, org.id, 'key_user')

    def test_unknown_role_gets_nothing(self, db, org):
        assert get_role_modules(db, org.id, 'guest') == []

    def test_stored_modules_are_used(self, db, org):
        set_role_modules(db, org.id, 'field_service_employee', ['visits', 'tasks'], 'admin')
        assert get_role_modules(db, org.id, 'field_service_employee') == ['visits', 'tasks']

    def test_unknown_modules_are_dropped(self, db, org):
        """Test that stored lists keep the canonical order and known names only"""
        row = set_role_modules(db, org.id, 'key_user', ['tasks', 'rocket_science', 'customers'], 'admin')
        assert row['permissions'] == {'modules': ['customers', 'tasks']}

    def test_admin_cannot_configure_admins(self, db, org):
        with pytest.raises(PermissionDeniedError):
            set_role_modules(db, org.id, 'admin', ['dashboard'], 'admin')

    def test_super_admin_configures_admins(self, db, org):
        set_role_modules(db, org.id, 'admin', ['dashboard'], 'super_admin')
        # Admins keep every module regardless of the stored row
        assert get_role_modules(db, org.id, 'admin') == ALL_MODULES

    def test_org_permissions_lists_configurable_roles(self, db, org):
        assert set(get_org_permissions(db, org.id, 'admin')) == {'key_user', 'field_service_employee'}
        assert get_org_permissions(db, org.id, 'key_user') == {}

    def test_has_module(self, db, org, fse):
        assert has_module(db, fse, 'visits') is True
        assert has_module(db, fse, 'team') is False
        assert has_module(db, {'role': 'super_admin'}, 'team') is True
        assert has_module(db, None, 'visits') is False


@pytest.mark.unit
class TestDocumentRules:
    """Tests for who may change which document"""

    def test_invoice_rules(self):
        assert can_edit_invoice('admin', 'sent') is True
        assert can_edit_invoice('admin', 'paid') is False
        assert can_edit_invoice('field_service_employee', 'draft') is False

    def test_quote_rules(self):
        assert can_save_quote('field_service_employee', 'draft') is True
        assert can_save_quote('key_user', 'accepted') is False
        assert can_save_quote('admin', 'accepted') is True
        assert can_save_quote('super_admin', 'draft') is False

    def test_quote_conversion_rules(self):
        assert can_convert_quote('key_user', 'sent') is True
        assert can_convert_quote('admin', 'accepted') is False
        assert can_convert_quote('field_service_employee', 'sent') is False

    def test_signed_completed_visit_is_locked(self):
        assert can_edit_visit('completed', True) is False
        assert can_edit_visit('completed', False) is True
        assert can_edit_visit('planned', True) is True
