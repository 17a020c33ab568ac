"""
Dashboard & Reports API Blueprint

- /api/dashboard - admin overview, or the own agenda for field service employees
- /api/dashboard/plan-usage - documents created this month against the plan limit
- /api/reports/business - business report for a date range (JSON or PDF)
"""

import logging
from datetime import date
from flask import Blueprint, jsonify

from auth import get_current_user, login_required, module_required
from app.utils.helpers import (
    API_ERRORS, arg_date, file_response, language_arg, org_scope, repository, server_error
)
from database.connection import get_db_session
from database.models import Organization
from services import pdf_generator
from services.dashboard_service import DashboardService
from validators import ValidationError

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard_bp', __name__)


# ============================================================================
# DASHBOARD
# ============================================================================

@dashboard_bp.route('/api/dashboard', methods=['GET'])
@module_required('dashboard')
def get_dashboard():
    """Role-dependent dashboard data"""
    try:
        user = get_current_user()
        with get_db_session() as db:
            service = repository(DashboardService, db, user)
            if user.get('role') == 'field_service_employee':
                data = service.field_service_dashboard(arg_date('start_date'), arg_date('end_date'))
                kind = 'field_service'
            else:
                data = service.admin_dashboard()
                kind = 'admin'
        return jsonify({'success': True, 'type': kind, **data})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading dashboard", e)


@dashboard_bp.route('/api/dashboard/plan-usage', methods=['GET'])
@login_required
def get_plan_usage():
    try:
        with get_db_session() as db:
            usage = repository(DashboardService, db, get_current_user()).plan_usage()
        return jsonify({'success': True, **usage})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("loading plan usage", e)


# ============================================================================
# REPORTS
# ============================================================================

def _report_range():
    start = arg_date('start_date')
    end = arg_date('end_date') or date.today()
    if start is None:
        start = date(end.year, 1, 1)
    if end < start:
        raise ValidationError("end_date must not be before start_date", 'end_date')
    return start, end


@dashboard_bp.route('/api/reports/business', methods=['GET'])
@module_required('reports')
def get_business_report():
    """?start_date=&end_date= (default: this year up to today)"""
    try:
        start, end = _report_range()
        with get_db_session() as db:
            report = repository(DashboardService, db, get_current_user()).business_report(start, end)
        return jsonify({'success': True, 'report': report})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("building business report", e)


@dashboard_bp.route('/api/reports/business/pdf', methods=['GET'])
@module_required('reports')
def download_business_report():
    try:
        start, end = _report_range()
        user = get_current_user()
        with get_db_session() as db:
            report = repository(DashboardService, db, user).business_report(start, end)
            org_id = org_scope(user)
            organization = db.get(Organization, org_id) if org_id else None
            org_data = organization.to_dict() if organization else {}
        pdf = pdf_generator.generate_business_report_pdf(report, org_data, language_arg())
        return file_response(pdf, f"Business_Report_{start.isoformat()}_{end.isoformat()}.pdf", 'application/pdf')
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("rendering business report", e)
