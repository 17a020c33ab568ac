"""
Organization API Blueprint

Company settings, feature flags, DATEV account mapping, logo, role
permissions and (for super admins) organizations and their invitation codes.
Super admins address another organization with ?org_id=.
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, login_required, module_required, roles_required, super_admin_required
from app.utils.helpers import API_ERRORS, file_response, get_storage, json_body, repository, server_error
from database.connection import get_db_session
from services.organization_repository import OrganizationRepository
from validators import ValidationError, validate_image_upload

logger = logging.getLogger(__name__)

organization_bp = Blueprint('organization_bp', __name__)


def _target_org():
    return request.args.get('org_id') or None


# ============================================================================
# SETTINGS
# ============================================================================

@organization_bp.route('/api/organization', methods=['GET'])
@login_required
def get_organization():
    try:
        with get_db_session() as db:
            organization = repository(OrganizationRepository, db, get_current_user()).get_organization(_target_org())
        return jsonify({'success': True, 'organization': organization})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading organization", e)


@organization_bp.route('/api/organization', methods=['PUT'])
@module_required('settings')
def update_organization():
    """Company details, feature flags, stripe account and DATEV settings"""
    try:
        with get_db_session() as db:
            organization = repository(OrganizationRepository, db, get_current_user()).update_settings(
                json_body(), _target_org())
        return jsonify({'success': True, 'organization': organization})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("updating organization settings", e)


# ============================================================================
# LOGO
# ============================================================================

@organization_bp.route('/api/organization/logo', methods=['GET'])
@login_required
def get_organization_logo():
    try:
        with get_db_session() as db:
            repo = repository(OrganizationRepository, db, get_current_user())
            organization = repo.get_organization(_target_org())
            content = repo.get_logo(get_storage(), _target_org())
        filename = organization['logo_url'].rsplit('/', 1)[-1]
        mimetype = 'image/png' if filename.lower().endswith('.png') else 'image/jpeg'
        return file_response(content, filename, mimetype, as_attachment=False)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading organization logo", e)


@organization_bp.route('/api/organization/logo', methods=['POST', 'DELETE'])
@module_required('settings')
def handle_organization_logo():
    """Upload (multipart field 'logo') or remove the company logo"""
    try:
        with get_db_session() as db:
            repo = repository(OrganizationRepository, db, get_current_user())
            if request.method == 'DELETE':
                organization = repo.delete_logo(get_storage(), _target_org())
                return jsonify({'success': True, 'organization': organization})

            upload = request.files.get('logo')
            is_valid, error, filename = validate_image_upload(upload)
            if not is_valid:
                raise ValidationError(error, 'logo')
            organization = repo.upload_logo(filename, upload.read(), get_storage(), _target_org())
            return jsonify({'success': True, 'organization': organization})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling organization logo", e)


# ============================================================================
# PERMISSIONS
# ============================================================================

@organization_bp.route('/api/organization/permissions', methods=['GET', 'PUT'])
@roles_required('admin', 'super_admin')
def handle_permissions():
    """Module lists per configurable role: {"key_user": [...], "field_service_employee": [...]}"""
    try:
        with get_db_session() as db:
            repo = repository(OrganizationRepository, db, get_current_user())
            if request.method == 'GET':
                permissions = repo.get_permissions(_target_org())
            else:
                permissions = repo.update_permissions(json_body().get('permissions'), _target_org())
        return jsonify({'success': True, 'permissions': permissions})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling role permissions", e)


# ============================================================================
# SUPER ADMIN
# ============================================================================

@organization_bp.route('/api/organizations', methods=['GET'])
@super_admin_required
def list_organizations():
    try:
        with get_db_session() as db:
            organizations = repository(OrganizationRepository, db, get_current_user()).list_organizations()
        return jsonify({'success': True, 'organizations': organizations})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing organizations", e)


@organization_bp.route('/api/organization-invitations', methods=['GET', 'POST'])
@super_admin_required
def handle_organization_invitations():
    """Invitation codes that let a new customer found an organization"""
    try:
        with get_db_session() as db:
            repo = repository(OrganizationRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'invitations': repo.list_invitations()})

            data = json_body()
            invitation = repo.create_invitation(data.get('org_name'), data.get('max_users', 5))
            return jsonify({'success': True, 'invitation': invitation}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling organization invitations", e)


@organization_bp.route('/api/organization-invitations/<invitation_id>', methods=['DELETE'])
@super_admin_required
def delete_organization_invitation(invitation_id):
    try:
        with get_db_session() as db:
            repository(OrganizationRepository, db, get_current_user()).delete_invitation(invitation_id)
        return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"deleting organization invitation {invitation_id}", e)
