"""
Scheduling API Blueprint

- /api/appointments - appointments and absences
- /api/tasks - to-dos with completion toggle
- /api/dispatcher - employee board and drag-to-reassign
"""

import logging
from flask import Blueprint, request, jsonify

from auth import get_current_user, module_required
from app.utils.helpers import (
    API_ERRORS, arg_bool, arg_date, arg_int, json_body, list_args, repository, server_error
)
from database.connection import get_db_session
from services.scheduling_repository import SchedulingRepository

logger = logging.getLogger(__name__)

scheduling_bp = Blueprint('scheduling_bp', __name__)


# ============================================================================
# APPOINTMENTS
# ============================================================================

@scheduling_bp.route('/api/appointments', methods=['GET', 'POST'])
@module_required('appointments')
def handle_appointments():
    try:
        with get_db_session() as db:
            repo = repository(SchedulingRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_appointments(
                    search=request.args.get('search'),
                    status=request.args.get('status'),
                    appointment_type=request.args.get('type'),
                    user_id=request.args.get('user_id'),
                    start_date=arg_date('start_date'),
                    end_date=arg_date('end_date'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            appointment = repo.save_appointment(json_body())
            return jsonify({'success': True, 'appointment': appointment}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling appointments", e)


@scheduling_bp.route('/api/appointments/<int:appointment_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('appointments')
def handle_appointment(appointment_id):
    """Only draft appointments can be deleted"""
    try:
        with get_db_session() as db:
            repo = repository(SchedulingRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'appointment': repo.get_appointment(appointment_id)})
            if request.method == 'PUT':
                appointment = repo.save_appointment(json_body(), appointment_id)
                return jsonify({'success': True, 'appointment': appointment})

            repo.delete_appointment(appointment_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling appointment {appointment_id}", e)


@scheduling_bp.route('/api/appointments/<int:appointment_id>/copy', methods=['POST'])
@module_required('appointments')
def copy_appointment(appointment_id):
    try:
        with get_db_session() as db:
            appointment = repository(SchedulingRepository, db, get_current_user()).copy_appointment(appointment_id)
        return jsonify({'success': True, 'appointment': appointment}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying appointment {appointment_id}", e)


# ============================================================================
# TASKS
# ============================================================================

@scheduling_bp.route('/api/tasks', methods=['GET', 'POST'])
@module_required('tasks')
def handle_tasks():
    try:
        with get_db_session() as db:
            repo = repository(SchedulingRepository, db, get_current_user())
            if request.method == 'GET':
                result = repo.list_tasks(
                    search=request.args.get('search'),
                    user_id=request.args.get('user_id'),
                    is_complete=arg_bool('is_complete'),
                    customer_id=arg_int('customer_id'),
                    **list_args()
                )
                return jsonify({'success': True, **result})

            task = repo.save_task(json_body())
            return jsonify({'success': True, 'task': task}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("handling tasks", e)


@scheduling_bp.route('/api/tasks/<task_id>', methods=['GET', 'PUT', 'DELETE'])
@module_required('tasks')
def handle_task(task_id):
    try:
        with get_db_session() as db:
            repo = repository(SchedulingRepository, db, get_current_user())
            if request.method == 'GET':
                return jsonify({'success': True, 'task': repo.get_task(task_id)})
            if request.method == 'PUT':
                return jsonify({'success': True, 'task': repo.save_task(json_body(), task_id)})

            repo.delete_task(task_id)
            return jsonify({'success': True})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"handling task {task_id}", e)


@scheduling_bp.route('/api/tasks/<task_id>/toggle', methods=['POST'])
@module_required('tasks')
def toggle_task(task_id):
    try:
        with get_db_session() as db:
            task = repository(SchedulingRepository, db, get_current_user()).toggle_task(task_id)
        return jsonify({'success': True, 'task': task})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"toggling task {task_id}", e)


@scheduling_bp.route('/api/tasks/<task_id>/copy', methods=['POST'])
@module_required('tasks')
def copy_task(task_id):
    try:
        with get_db_session() as db:
            task = repository(SchedulingRepository, db, get_current_user()).copy_task(task_id)
        return jsonify({'success': True, 'task': task}), 201
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error(f"copying task {task_id}", e)


# ============================================================================
# DISPATCHER
# ============================================================================

@scheduling_bp.route('/api/dispatcher/employees', methods=['GET'])
@module_required('dispatcher')
def list_dispatch_employees():
    try:
        with get_db_session() as db:
            employees = repository(SchedulingRepository, db, get_current_user()).employees()
        return jsonify({'success': True, 'employees': employees})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("listing dispatcher employees", e)


@scheduling_bp.route('/api/dispatcher/board', methods=['GET'])
@module_required('dispatcher')
def get_dispatch_board():
    """
    ?start_date=&end_date=&employee_ids=all|id1,id2

    An empty employee selection shows every employee.
    """
    try:
        with get_db_session() as db:
            board = repository(SchedulingRepository, db, get_current_user()).board(
                request.args.get('start_date'),
                request.args.get('end_date'),
                request.args.get('employee_ids', 'all'),
            )
        return jsonify({'success': True, **board})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("building dispatcher board", e)


@scheduling_bp.route('/api/dispatcher/reassign', methods=['POST'])
@module_required('dispatcher')
def reassign_activity():
    """{"activity_type": "visit|task|appointment", "activity_id", "new_assignee_id", "new_date"}"""
    try:
        data = json_body()
        with get_db_session() as db:
            activity = repository(SchedulingRepository, db, get_current_user()).reassign(
                data.get('activity_type'),
                data.get('activity_id'),
                data.get('new_assignee_id'),
                data.get('new_date'),
            )
        return jsonify({'success': True, 'activity': activity})
    except API_ERRORS:
        raise
    except Exception as e:
        return server_error("reassigning activity", e)
