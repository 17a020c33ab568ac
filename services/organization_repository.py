"""
Organization Repository - company settings, feature flags, logo, role
permissions and the invitation codes super admins use to onboard new
organizations.
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from database.models import Organization, OrganizationInvitation, User
from services.base_repository import TenantRepository
from services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError
from services.permissions import get_org_permissions, set_role_modules
from services.storage import logo_path
from validators import ValidationError, ensure_valid, to_number, validate_email, validate_string_length

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ['company_name', 'address', 'phone', 'email', 'iban', 'bic', 'ust_idnr']
FEATURE_FLAGS = [
    'is_payment_gateway_enabled', 'is_document_storage_enabled', 'is_datev_export_enabled',
    'is_email_sending_enabled', 'is_visit_reminder_enabled', 'is_text_blocks_enabled',
]
DATEV_ACCOUNT_FIELDS = ['debtor_account', 'creditor_account', 'revenue_19', 'revenue_7', 'revenue_0']

INVITATION_CODE_PREFIX = 'ZOGU-'
INVITATION_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_invitation_code() -> str:
    return INVITATION_CODE_PREFIX + ''.join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(8))


def clean_datev_settings(settings: Dict) -> Dict:
    """Keep the known account fields as strings and the category -> account mapping."""
    settings = settings or {}
    if not isinstance(settings, dict):
        raise ValidationError("datev_settings must be an object", 'datev_settings')
    cleaned = {key: str(settings.get(key) or '').strip() for key in DATEV_ACCOUNT_FIELDS}
    mappings = settings.get('expense_mappings') or {}
    if not isinstance(mappings, dict):
        raise ValidationError("expense_mappings must be an object", 'datev_settings')
    cleaned['expense_mappings'] = {
        str(category): str(account).strip() for category, account in mappings.items() if str(account).strip()
    }
    return cleaned


def accept_organization_invitation(session: Session, code: str, user: User) -> Organization:
    """
    Redeem an organization invitation code: the organization is created and
    the user becomes its admin.
    """
    invitation = session.query(OrganizationInvitation).filter(
        OrganizationInvitation.code == (code or '').strip().upper()
    ).with_for_update().first()
    if invitation is None:
        raise NotFoundError('Invitation code')
    if invitation.status != 'pending':
        raise ConflictError("This invitation code has already been used")

    organization = Organization(name=invitation.org_name, company_name=invitation.org_name,
                                max_users=invitation.max_users)
    session.add(organization)
    session.flush()

    user.org_id = organization.id
    user.role = 'admin'
    invitation.status = 'accepted'
    invitation.accepted_by_user_id = user.id
    invitation.accepted_at = datetime.utcnow()
    session.flush()

    logger.info(f"Organization {organization.name} created from invitation {invitation.code}")
    return organization


class OrganizationRepository(TenantRepository):
    """Repository for organization settings."""

    @property
    def is_super_admin(self) -> bool:
        return self.role == 'super_admin'

    def _target_org_id(self, org_id: Optional[str] = None) -> str:
        """Super admins may address any organization; everyone else only their own."""
        if org_id and org_id != self.organization_id:
            if not self.is_super_admin:
                raise PermissionDeniedError("You cannot manage another organization")
            return org_id
        return self._require_org()

    def _organization(self, org_id: Optional[str] = None) -> Organization:
        target = self._target_org_id(org_id)
        organization = self.session.get(Organization, target)
        if organization is None:
            raise NotFoundError('Organization', target)
        return organization

    def list_organizations(self) -> List[Dict]:
        if not self.is_super_admin:
            raise PermissionDeniedError("Only super admins can list organizations")
        return [o.to_dict() for o in self.session.query(Organization).order_by(Organization.name).all()]

    def get_organization(self, org_id: str = None) -> Dict:
        organization = self._organization(org_id)
        data = organization.to_dict()
        data['member_count'] = self.session.query(User).filter(User.org_id == organization.id).count()
        return data

    def update_settings(self, data: Dict, org_id: str = None) -> Dict:
        """
        Update company details and feature flags.

        The organization name and user limit are reserved for super admins.
        """
        organization = self._organization(org_id)

        if 'name' in data or 'max_users' in data:
            if not self.is_super_admin:
                raise PermissionDeniedError("Only super admins can change the organization name or user limit")
            if 'name' in data:
                name = (data['name'] or '').strip()
                ensure_valid(validate_string_length(name, 1, 255), 'name')
                organization.name = name
            if 'max_users' in data:
                max_users = to_number(data['max_users'], 'max_users', default=None)
                if max_users is None or max_users < 1:
                    raise ValidationError("max_users must be at least 1", 'max_users')
                organization.max_users = int(max_users)

        if data.get('email'):
            ensure_valid(validate_email(data['email']), 'email')
        for key in COMPANY_FIELDS:
            if key in data:
                setattr(organization, key, data[key])
        for key in FEATURE_FLAGS:
            if key in data:
                setattr(organization, key, bool(data[key]))
        if 'stripe_account_id' in data:
            organization.stripe_account_id = (data['stripe_account_id'] or '').strip() or None
        if 'datev_settings' in data:
            organization.datev_settings = clean_datev_settings(data['datev_settings'])

        self.session.flush()
        logger.info(f"Updated settings of organization {organization.id}")
        return organization.to_dict()

    # =========================================================================
    # LOGO
    # =========================================================================

    def upload_logo(self, filename: str, content: bytes, storage, org_id: str = None) -> Dict:
        organization = self._organization(org_id)
        if organization.logo_url and storage.exists(organization.logo_url):
            storage.delete(organization.logo_url)
        organization.logo_url = storage.save(logo_path(organization.id, filename), content)
        self.session.flush()
        logger.info(f"Uploaded logo for organization {organization.id}")
        return organization.to_dict()

    def get_logo(self, storage, org_id: str = None) -> bytes:
        organization = self._organization(org_id)
        if not organization.logo_url:
            raise NotFoundError('Logo')
        return storage.read(organization.logo_url)

    def delete_logo(self, storage, org_id: str = None) -> Dict:
        organization = self._organization(org_id)
        if organization.logo_url:
            storage.delete(organization.logo_url)
            organization.logo_url = None
            self.session.flush()
        return organization.to_dict()

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def get_permissions(self, org_id: str = None) -> Dict[str, List[str]]:
        target = self._target_org_id(org_id)
        return get_org_permissions(self.session, target, self.role)

    def update_permissions(self, permissions: Dict[str, List[str]], org_id: str = None) -> Dict[str, List[str]]:
        """Store module lists for several roles at once: {role: [modules]}."""
        if not isinstance(permissions, dict):
            raise ValidationError("permissions must be an object of role -> modules", 'permissions')
        target = self._target_org_id(org_id)
        for role, modules in permissions.items():
            set_role_modules(self.session, target, role, modules or [], self.role)
        return get_org_permissions(self.session, target, self.role)

    # =========================================================================
    # ORGANIZATION INVITATIONS (super admin)
    # =========================================================================

    def _require_super_admin(self):
        if not self.is_super_admin:
            raise PermissionDeniedError("Only super admins can manage organization invitations")

    def list_invitations(self) -> List[Dict]:
        self._require_super_admin()
        rows = self.session.query(OrganizationInvitation).order_by(
            OrganizationInvitation.created_at.desc()).all()
        return [row.to_dict() for row in rows]

    def create_invitation(self, org_name: str, max_users: int = 5) -> Dict:
        self._require_super_admin()
        org_name = (org_name or '').strip()
        if not org_name:
            raise ValidationError("Organization name is required", 'org_name')
        max_users = int(to_number(max_users, 'max_users', default=5))
        if max_users < 1:
            raise ValidationError("max_users must be at least 1", 'max_users')

        code = generate_invitation_code()
        while self.session.query(OrganizationInvitation).filter(OrganizationInvitation.code == code).first():
            code = generate_invitation_code()

        invitation = OrganizationInvitation(code=code, org_name=org_name, max_users=max_users,
                                            created_by=self.user_id, status='pending')
        self.session.add(invitation)
        self.session.flush()
        logger.info(f"Created organization invitation {code} for {org_name}")
        return invitation.to_dict()

    def delete_invitation(self, invitation_id: str) -> bool:
        self._require_super_admin()
        invitation = self.session.get(OrganizationInvitation, invitation_id)
        if invitation is None:
            raise NotFoundError('Invitation', invitation_id)
        if invitation.status != 'pending':
            raise ServiceError("Accepted invitations cannot be deleted")
        self.session.delete(invitation)
        self.session.flush()
        return True
