"""
Users Repository - Database access layer for accounts and team management.

Covers sign-in and registration, the members of an organization, e-mail
invitations bounded by the organization's user limit, self-service reset
links and admin password resets.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from database.models import Organization, User, UserInvitation
from services.base_repository import TenantRepository
from services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError
from services.organization_repository import accept_organization_invitation
from validators import USER_ROLES, ValidationError, ensure_valid, validate_choice, validate_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# Roles an admin may hand out; super_admin is never granted through the team page
ASSIGNABLE_ROLES = ['admin', 'key_user', 'field_service_employee']

RESET_TOKEN_LIFETIME = timedelta(hours=1)


def hash_password(password: str) -> str:
    return generate_password_hash(password, method='pbkdf2:sha256')


def _check_password(password: str):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 'password')


def _normalize_email(email: str) -> str:
    email = (email or '').strip().lower()
    ensure_valid(validate_email(email), 'email')
    return email


def temporary_password() -> str:
    return secrets.token_urlsafe(9)


def _reset_digest(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class UsersRepository(TenantRepository):
    """Repository for user database operations."""

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[Dict]:
        user = self.session.get(User, user_id)
        return user.to_dict() if user else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email (returns model for auth)."""
        return self.session.query(User).filter(func.lower(User.email) == (email or '').strip().lower()).first()

    def verify_password(self, user: User, password: str) -> bool:
        return check_password_hash(user.password_hash, password or '')

    def authenticate(self, email: str, password: str) -> Optional[Dict]:
        """User dict for valid credentials of an active account, otherwise None."""
        user = self.get_user_by_email(email)
        if user is None or not user.is_active or not self.verify_password(user, password):
            logger.warning(f"Failed login attempt for {email}")
            return None
        user.last_login = datetime.utcnow()
        self.session.flush()
        logger.info(f"User logged in: {user.email}")
        return user.to_dict()

    def register(self, email: str, password: str, full_name: str = None,
                 invitation_code: str = None) -> Dict:
        """
        Create an account.

        Sign-up needs either an organization invitation code (the new user
        founds that organization as its admin) or a pending e-mail invitation
        (the new user joins the inviting organization with the invited role).
        """
        email = _normalize_email(email)
        _check_password(password)
        if self.get_user_by_email(email):
            raise ConflictError("An account with this e-mail address already exists")

        invitation = None
        if not invitation_code:
            invitation = self.session.query(UserInvitation).filter(
                func.lower(UserInvitation.invited_user_email) == email,
                UserInvitation.status == 'pending'
            ).order_by(UserInvitation.created_at.desc()).first()
            if invitation is None:
                raise PermissionDeniedError("Sign-up requires an invitation")

        user = User(
            email=email,
            full_name=(full_name or '').strip() or None,
            role='field_service_employee',
            password_hash=hash_password(password),
            is_active=True,
        )
        self.session.add(user)
        self.session.flush()

        if invitation_code:
            accept_organization_invitation(self.session, invitation_code, user)
        else:
            user.org_id = invitation.org_id
            user.role = invitation.role
            invitation.status = 'accepted'
        self.session.flush()

        logger.info(f"Registered user {user.email} in org {user.org_id} as {user.role}")
        return user.to_dict()

    def change_password(self, current_password: str, new_password: str) -> bool:
        user = self._current_user()
        if not self.verify_password(user, current_password):
            raise PermissionDeniedError("Current password is incorrect")
        _check_password(new_password)
        user.password_hash = hash_password(new_password)
        self.session.flush()
        logger.info(f"Password changed for {user.email}")
        return True

    def update_profile(self, data: Dict) -> Dict:
        user = self._current_user()
        for key in ('full_name', 'phone'):
            if key in data:
                setattr(user, key, data[key])
        self.session.flush()
        return user.to_dict()

    def request_password_reset(self, email: str, email_service, app_url: str = '') -> bool:
        """
        Mail a single-use reset link. The password stays unchanged until the
        link is redeemed; unknown addresses are ignored without telling the caller.
        """
        user = self.get_user_by_email(email)
        if user is None or not user.is_active:
            logger.info(f"Password reset requested for unknown address {email}")
            return True
        token = secrets.token_urlsafe(32)
        user.password_reset_token = _reset_digest(token)
        user.password_reset_expires = datetime.utcnow() + RESET_TOKEN_LIFETIME
        self.session.flush()
        email_service.send_password_reset_link(user.email, f"{app_url.rstrip('/')}/reset-password?token={token}")
        logger.info(f"Password reset link sent to {user.email}")
        return True

    def reset_password_with_token(self, token: str, new_password: str) -> bool:
        _check_password(new_password)
        user = None
        if token:
            user = self.session.query(User).filter(
                User.password_reset_token == _reset_digest(token)).first()
        if (user is None or not user.is_active or user.password_reset_expires is None
                or user.password_reset_expires < datetime.utcnow()):
            raise ValidationError("The reset link is invalid or has expired", 'token')
        user.password_hash = hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        self.session.flush()
        logger.info(f"Password reset completed for {user.email}")
        return True

    def _current_user(self) -> User:
        user = self.session.get(User, self.user_id) if self.user_id else None
        if user is None:
            raise NotFoundError('User', self.user_id)
        return user

    # =========================================================================
    # TEAM
    # =========================================================================

    def _member(self, member_id: str) -> User:
        query = self.session.query(User).filter(User.id == member_id)
        if self.organization_id:
            query = query.filter(User.org_id == self.organization_id)
        member = query.first()
        if member is None:
            raise NotFoundError('Member', member_id)
        return member

    def list_members(self) -> List[Dict]:
        """Members of the organization; super admins without an organization see every profile."""
        query = self.session.query(User)
        if self.organization_id:
            query = query.filter(User.org_id == self.organization_id)
        members = []
        for user in query.order_by(User.full_name).all():
            data = user.to_dict()
            data['org_name'] = user.organization.name if user.organization else None
            members.append(data)
        return members

    def list_invitations(self) -> List[Dict]:
        rows = self._scoped(UserInvitation).filter(UserInvitation.status == 'pending').order_by(
            UserInvitation.created_at.desc()).all()
        return [row.to_dict() for row in rows]

    def team_overview(self) -> Dict:
        org_id = self._require_org()
        organization = self.session.get(Organization, org_id)
        members = self.list_members()
        invitations = self.list_invitations()
        max_users = organization.max_users if organization else None
        return {
            'members': members,
            'invitations': invitations,
            'max_users': max_users,
            'slots_remaining': max(max_users - len(members) - len(invitations), 0) if max_users else None,
        }

    def invite(self, email: str, role: str, email_service=None, app_url: str = '') -> Dict:
        """
        Invite an e-mail address into the organization.

        Members plus pending invitations may not exceed the organization's
        max_users. A failed invitation mail is returned as a warning.
        """
        org_id = self._require_org()
        email = _normalize_email(email)
        ensure_valid(validate_choice(role, ASSIGNABLE_ROLES, 'role'), 'role')

        organization = self.session.get(Organization, org_id)
        members = self.session.query(User).filter(User.org_id == org_id).count()
        pending = self._scoped(UserInvitation).filter(UserInvitation.status == 'pending').count()
        if organization.max_users and members + pending >= organization.max_users:
            raise ServiceError(f"Organization has reached its maximum user limit of {organization.max_users}.")

        existing = self.get_user_by_email(email)
        if existing is not None and existing.org_id == org_id:
            raise ConflictError("This user is already a member of the organization")
        if self._scoped(UserInvitation).filter(func.lower(UserInvitation.invited_user_email) == email,
                                               UserInvitation.status == 'pending').first():
            raise ConflictError("An invitation for this e-mail address is already pending")

        invitation = UserInvitation(
            org_id=org_id,
            invited_user_email=email,
            role=role,
            status='pending',
            invited_by_user_id=self.user_id,
        )
        self.session.add(invitation)
        self.session.flush()

        warnings = []
        if email_service is not None:
            inviter = self.session.get(User, self.user_id) if self.user_id else None
            try:
                email_service.send_invitation(email, organization.name, role,
                                              invited_by=(inviter.full_name or inviter.email) if inviter else None,
                                              app_url=app_url)
            except ServiceError as e:
                logger.warning(f"Invitation mail to {email} failed: {e.message}")
                warnings.append(f"Invitation saved, but the e-mail could not be sent: {e.message}")

        logger.info(f"Invited {email} as {role} into org {org_id}")
        return {'invitation': invitation.to_dict(), 'warnings': warnings}

    def cancel_invitation(self, invitation_id: str) -> bool:
        invitation = self._get(UserInvitation, invitation_id, 'Invitation')
        self.session.delete(invitation)
        self.session.flush()
        logger.info(f"Cancelled invitation: {invitation_id}")
        return True

    def my_invitations(self) -> List[Dict]:
        """Pending invitations addressed to the signed-in user's e-mail."""
        user = self._current_user()
        rows = self.session.query(UserInvitation).filter(
            func.lower(UserInvitation.invited_user_email) == user.email.lower(),
            UserInvitation.status == 'pending'
        ).all()
        return [row.to_dict() for row in rows]

    def respond_to_invitation(self, invitation_id: str, accept: bool = True) -> Dict:
        """Accept (join the organization with the invited role) or decline an invitation."""
        user = self._current_user()
        invitation = self.session.get(UserInvitation, invitation_id)
        if invitation is None or invitation.invited_user_email.lower() != user.email.lower():
            raise NotFoundError('Invitation', invitation_id)
        if invitation.status != 'pending':
            raise ConflictError("This invitation is no longer pending")

        if accept:
            user.org_id = invitation.org_id
            user.role = invitation.role
            invitation.status = 'accepted'
        else:
            invitation.status = 'declined'
        self.session.flush()

        logger.info(f"{user.email} {invitation.status} invitation {invitation_id}")
        return {'user': user.to_dict(), 'invitation': invitation.to_dict()}

    def update_member(self, member_id: str, data: Dict) -> Dict:
        member = self._member(member_id)
        if member.role == 'super_admin' and self.role != 'super_admin':
            raise PermissionDeniedError("Super admins cannot be edited")
        if 'role' in data and data['role'] != member.role:
            if data['role'] == 'super_admin' or data['role'] not in USER_ROLES:
                raise PermissionDeniedError("This role cannot be assigned")
            member.role = data['role']
        for key in ('full_name', 'phone'):
            if key in data:
                setattr(member, key, data[key])
        self.session.flush()
        logger.info(f"Updated member: {member_id}")
        return member.to_dict()

    def remove_member(self, member_id: str) -> bool:
        """Detach a member from the organization; the account itself stays."""
        if member_id == self.user_id:
            raise PermissionDeniedError("You cannot remove yourself from the organization")
        member = self._member(member_id)
        if member.role == 'super_admin':
            raise PermissionDeniedError("Super admins cannot be removed")
        member.org_id = None
        self.session.flush()
        logger.info(f"Removed member {member_id} from org {self.organization_id}")
        return True

    def reset_member_password(self, member_id: str, email_service) -> Dict:
        """Set a temporary password and mail it to the member."""
        member = self._member(member_id)
        password = temporary_password()
        member.password_hash = hash_password(password)
        self.session.flush()
        email_service.send_password_reset(member.email, password)
        logger.info(f"Password of {member.email} reset by {self.user_id}")
        return {'message': f"Password reset email sent to {member.email}."}
