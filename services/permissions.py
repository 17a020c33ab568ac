"""
Role-based module permissions and document editing rules.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from database.models import RolePermission
from services.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

ROLES = ('super_admin', 'admin', 'key_user', 'field_service_employee')

ALL_MODULES = [
    'dashboard', 'customers', 'invoices', 'quotes', 'visits', 'appointments',
    'tasks', 'inventory', 'expenses', 'dispatcher', 'reports', 'text_blocks',
    'team', 'settings', 'audit_log', 'migration',
]

DEFAULT_PERMISSIONS = {
    'admin': list(ALL_MODULES),
    'key_user': [
        'dashboard', 'customers', 'invoices', 'quotes', 'visits', 'appointments',
        'tasks', 'inventory', 'expenses', 'dispatcher', 'reports', 'text_blocks',
    ],
    'field_service_employee': [
        'dashboard', 'customers', 'invoices', 'quotes', 'visits', 'appointments',
        'tasks', 'inventory', 'expenses',
    ],
}

# Which roles each role may configure
CONFIGURABLE_ROLES = {
    'super_admin': ['admin', 'key_user', 'field_service_employee'],
    'admin': ['key_user', 'field_service_employee'],
}


def configurable_roles(actor_role: str) -> List[str]:
    return list(CONFIGURABLE_ROLES.get(actor_role, []))


def get_role_modules(session: Session, org_id: Optional[str], role: str) -> List[str]:
    """
    Modules a role may open in an organization.

    Admins and super admins always get every module. Other roles use the
    organization's stored list, or the built-in defaults when none is stored.
    """
    if role in ('super_admin', 'admin'):
        return list(ALL_MODULES)

    if org_id:
        row = session.query(RolePermission).filter(
            RolePermission.org_id == org_id,
            RolePermission.role == role
        ).first()
        if row is not None:
            modules = (row.permissions or {}).get('modules')
            return list(modules) if isinstance(modules, list) else []

    return list(DEFAULT_PERMISSIONS.get(role, []))


def get_org_permissions(session: Session, org_id: str, actor_role: str) -> Dict[str, List[str]]:
    """Module lists for every role the actor may configure."""
    return {role: get_role_modules(session, org_id, role) for role in configurable_roles(actor_role)}


def set_role_modules(session: Session, org_id: str, role: str, modules: List[str], actor_role: str) -> Dict:
    """Store the module list of a role. Unknown module names are dropped."""
    if role not in configurable_roles(actor_role):
        raise PermissionDeniedError(f"You cannot configure permissions for role '{role}'")

    cleaned = [module for module in ALL_MODULES if module in set(modules or [])]

    row = session.query(RolePermission).filter(
        RolePermission.org_id == org_id,
        RolePermission.role == role
    ).first()
    if row is None:
        row = RolePermission(org_id=org_id, role=role)
        session.add(row)
    row.permissions = {'modules': cleaned}
    session.flush()

    logger.info(f"Updated permissions for role {role} in org {org_id}: {cleaned}")
    return row.to_dict()


def has_module(session: Session, user: Dict, module: str) -> bool:
    if not user:
        return False
    if user.get('role') == 'super_admin':
        return True
    return module in get_role_modules(session, user.get('org_id'), user.get('role'))


# =============================================================================
# DOCUMENT RULES
# =============================================================================

def can_edit_invoice(role: str, status: Optional[str]) -> bool:
    """Paid invoices are frozen; field service employees only view invoices."""
    if role == 'field_service_employee':
        return False
    return status != 'paid'


def can_save_quote(role: str, status: Optional[str]) -> bool:
    """Super admins never edit quotes; accepted quotes are admin-only."""
    if role == 'super_admin':
        return False
    if status == 'accepted':
        return role == 'admin'
    return role in ('admin', 'key_user', 'field_service_employee')


def can_convert_quote(role: str, status: Optional[str]) -> bool:
    if role in ('super_admin', 'field_service_employee'):
        return False
    return status != 'accepted'


def can_edit_visit(status: Optional[str], has_signature: bool) -> bool:
    return not (status == 'completed' and has_signature)
