"""
Data Exchange API Blueprint

- /api/exports/datev - DATEV Buchungsstapel CSV for a date range
- /api/exports/<entity> - CSV of a whole list (customers, invoices, ...)
- /api/gdpr/customers/<id> - GDPR export (JSON or CSV) and full deletion
- /api/migration/import, /api/migration/templates/<type> - CSV import
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from auth import get_current_user, login_required, module_required, user_has_module
from app.utils.helpers import (
    API_ERRORS, arg_date, file_response, get_storage, org_scope, repository, server_error
)
from database.connection import get_db_session
from services.datev_export import export_datev
from services.errors import PermissionDeniedError, ServiceError
from services.exports import CustomerDataRepository, ListExportRepository
from services.import_service import ImportService, template_csv, template_filename
from validators import ValidationError, validate_import_upload

logger = logging.getLogger(__name__)

data_exchange_bp = Blueprint('data_exchange_bp', __name__)

CSV_MIMETYPE = 'text/csv; charset=utf-8'

# Exported list -> module needed to see it
EXPORT_MODULES = {
    'customers': 'customers',
    'products': 'inventory',
    'expenses': 'expenses',
    'invoices': 'invoices',
    'quotes': 'quotes',
    'visits': 'visits',
    'appointments': 'appointments',
}


# ============================================================================
# EXPORTS
# ============================================================================

@data_exchange_bp.route('/api/exports/datev', methods=['GET'])
@module_required('settings')
def download_datev_export():
    """?start_date=YYYY-MM-DD&end_date=YYYY-MM-DD"""
    try:
        user = get_current_user()
        org_id = org_scope(user)
        if not org_id:
            raise ServiceError("An organization is required for this operation")
        with get_db_session() as db:
            filename, content = export_datev(
                db, org_id, arg_date('start_date'), arg_date('end_date'),
                source=current_app.config.get('DATEV_EXPORT_SOURCE', 'ZoguOne Export'),
            )
        return file_response(content, filename, CSV_MIMETYPE)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("building DATEV export", e)


@data_exchange_bp.route('/api/exports/<entity>', methods=['GET'])
@login_required
def download_list_export(entity):
    try:
        user = get_current_user()
        module = EXPORT_MODULES.get(entity)
        if module is None:
            raise ServiceError(f"Unknown export: {entity}")
        if not user_has_module(user, module):
            raise PermissionDeniedError(f"Module '{module}' is required for this export")
        with get_db_session() as db:
            filename, content = repository(ListExportRepository, db, user).export_list(entity)
        return file_response(content, filename, CSV_MIMETYPE)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"exporting {entity}", e)


# ============================================================================
# GDPR
# ============================================================================

@data_exchange_bp.route('/api/gdpr/customers/<int:customer_id>/export', methods=['GET'])
@module_required('settings')
def export_customer_data(customer_id):
    """Everything stored about one customer; ?format=csv (default) or json"""
    try:
        export_format = (request.args.get('format') or 'csv').lower()
        if export_format not in ('csv', 'json'):
            raise ValidationError("format must be csv or json", 'format')
        with get_db_session() as db:
            repo = repository(CustomerDataRepository, db, get_current_user())
            if export_format == 'json':
                filename, content = repo.export_as_json(customer_id)
            else:
                filename, content = repo.export_as_csv(customer_id)
        mimetype = 'application/json' if export_format == 'json' else CSV_MIMETYPE
        return file_response(content, filename, mimetype)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"exporting data of customer {customer_id}", e)


@data_exchange_bp.route('/api/gdpr/customers/<int:customer_id>', methods=['DELETE'])
@module_required('settings')
def delete_customer_data(customer_id):
    """Irreversibly erase a customer with all linked records and files"""
    try:
        with get_db_session() as db:
            deleted = repository(CustomerDataRepository, db, get_current_user()).delete_customer_data(
                customer_id, get_storage())
        return jsonify({'success': True, 'deleted': deleted})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"deleting data of customer {customer_id}", e)


# ============================================================================
# MIGRATION CENTER
# ============================================================================

@data_exchange_bp.route('/api/migration/templates/<import_type>', methods=['GET'])
@module_required('migration')
def download_import_template(import_type):
    try:
        return file_response(template_csv(import_type), template_filename(import_type), CSV_MIMETYPE)
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"building {import_type} template", e)


@data_exchange_bp.route('/api/migration/import', methods=['POST'])
@module_required('migration')
def import_csv():
    """Multipart: 'file' (CSV) and 'type' (customer|product)"""
    try:
        import_type = request.form.get('type') or request.args.get('type')
        upload = request.files.get('file')
        is_valid, error, _ = validate_import_upload(upload)
        if not is_valid:
            raise ValidationError(error, 'file')
        content = upload.read().decode('utf-8-sig', errors='replace')

        user = get_current_user()
        with get_db_session() as db:
            result = ImportService(db, org_scope(user), user).import_csv(content, import_type)
        return jsonify({'success': True, **result})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("importing CSV", e)
