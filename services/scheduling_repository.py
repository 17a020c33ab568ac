"""
Scheduling Repository - appointments, tasks and the dispatcher board.

The dispatcher board collects visits, tasks and appointments of the field
team in a date range; reassigning moves an activity to another employee and
day while keeping its time of day and duration.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import or_

from database.models import Appointment, Customer, Task, User, Visit
from services.base_repository import TenantRepository, apply_sort, paginate
from services.errors import PermissionDeniedError, ServiceError
from services.notification_service import NotificationService
from services.numbering import next_number
from validators import (
    ValidationError, ensure_valid, parse_date, parse_datetime,
    validate_appointment_payload, validate_task_payload
)

logger = logging.getLogger(__name__)

APPOINTMENT_SORT_FIELDS = ['start_time', 'appointment_number', 'title', 'status', 'created_at']
TASK_SORT_FIELDS = ['start_time', 'title', 'is_complete', 'created_at']

DISPATCH_ROLES = ('admin', 'key_user', 'field_service_employee')
ACTIVITY_TYPES = ('visit', 'task', 'appointment')


def _day_bounds(start: date, end: date):
    """[start 00:00, end+1 00:00) as datetimes."""
    return (datetime.combine(start, datetime.min.time()),
            datetime.combine(end + timedelta(days=1), datetime.min.time()))


def _employee_filter(employee_ids: Union[str, List[str], None]) -> Optional[List[str]]:
    """None means every employee; 'all' and an empty selection both mean every employee."""
    if not employee_ids or employee_ids == 'all':
        return None
    if isinstance(employee_ids, str):
        employee_ids = [e for e in employee_ids.split(',') if e]
    ids = [str(e) for e in employee_ids if e and e != 'all']
    return ids or None


class SchedulingRepository(TenantRepository):
    """Repository for appointments, tasks and dispatching."""

    def _actor_name(self) -> str:
        actor = self.session.get(User, self.user_id) if self.user_id else None
        if actor is None:
            return 'System'
        return actor.full_name or actor.email

    def _notify(self, org_id: str, user_id: str, title: str, key: str, params: Dict,
                notification_type: str, path: str, entity_id):
        NotificationService(self.session, org_id).create_notification(
            user_id=user_id,
            title=title,
            body=json.dumps({'key': key, 'params': params}),
            notification_type=notification_type,
            related_entity_path=path,
            related_entity_id=entity_id,
        )

    def _member(self, user_id: Optional[str], org_id: str, field: str = 'user_id') -> Optional[User]:
        if not user_id:
            return None
        member = self.session.query(User).filter(User.id == user_id, User.org_id == org_id).first()
        if member is None:
            raise ValidationError("Assigned user is not a member of this organization", field)
        return member

    def _customer_id(self, value) -> Optional[int]:
        if value in (None, '', 0):
            return None
        return self._get(Customer, value, 'Customer').id

    # =========================================================================
    # APPOINTMENTS
    # =========================================================================

    def list_appointments(self, search: str = None, status: str = None, appointment_type: str = None,
                          user_id: str = None, start_date: date = None, end_date: date = None,
                          page: int = 1, per_page: int = 25,
                          sort_by: str = 'start_time', sort_order: str = 'asc') -> Dict:
        query = self._scoped(Appointment).outerjoin(Customer, Appointment.customer_id == Customer.id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Appointment.title.ilike(term), Appointment.appointment_number.ilike(term),
                                     Customer.name.ilike(term)))
        if status:
            query = query.filter(Appointment.status == status)
        if appointment_type:
            query = query.filter(Appointment.type == appointment_type)
        if user_id:
            query = query.filter(Appointment.user_id == user_id)
        if start_date:
            query = query.filter(Appointment.end_time >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(Appointment.start_time < _day_bounds(end_date, end_date)[1])
        query = apply_sort(query, Appointment, sort_by, sort_order, APPOINTMENT_SORT_FIELDS, 'start_time')
        return paginate(query, page, per_page)

    def get_appointment(self, appointment_id: int) -> Dict:
        appointment = self._get(Appointment, appointment_id, 'Appointment')
        data = appointment.to_dict()
        data['customer'] = appointment.customer.to_dict() if appointment.customer else None
        return data

    def save_appointment(self, data: Dict, appointment_id: int = None) -> Dict:
        """Create or update an appointment; a new assignee other than the caller is notified."""
        appointment = None
        initial_assignee = None
        if appointment_id:
            appointment = self._get(Appointment, appointment_id, 'Appointment', lock=True)
            initial_assignee = appointment.user_id

        merged = {**(appointment.to_dict() if appointment else {}), **data}
        ensure_valid(validate_appointment_payload(merged), 'appointment')

        org_id = appointment.org_id if appointment else self._require_org()
        appointment_type = merged.get('type') or 'standard'
        assignee = self._member(merged.get('user_id') or self.user_id, org_id)
        start = parse_datetime(merged['start_time'], 'start_time')

        if appointment is None:
            appointment = Appointment(
                org_id=org_id,
                appointment_number=next_number(self.session, org_id, 'appointment', today=start.date()),
            )
            self.session.add(appointment)

        appointment.title = merged['title']
        appointment.start_time = start
        appointment.end_time = parse_datetime(merged['end_time'], 'end_time')
        appointment.status = merged.get('status') or 'draft'
        appointment.type = appointment_type
        appointment.is_all_day = bool(merged.get('is_all_day'))
        appointment.user_id = assignee.id if assignee else None
        # Absences block an employee's time and never belong to a customer
        appointment.customer_id = None if appointment_type == 'absence' else self._customer_id(merged.get('customer_id'))
        if 'notes' in data:
            appointment.notes = data['notes']
        self.session.flush()

        if appointment.user_id and appointment.user_id != self.user_id and appointment.user_id != initial_assignee:
            self._notify(org_id, appointment.user_id, 'newAppointmentAssigned', 'appointmentWasAssignedToYouBy',
                         {'appointmentTitle': appointment.title, 'userName': self._actor_name()},
                         'new_appointment', f"/appointments/edit/{appointment.id}", appointment.id)

        logger.info(f"Saved appointment {appointment.appointment_number}")
        return appointment.to_dict()

    def copy_appointment(self, appointment_id: int) -> Dict:
        source = self._get(Appointment, appointment_id, 'Appointment')
        copy = Appointment(
            org_id=source.org_id,
            appointment_number=next_number(self.session, source.org_id, 'appointment',
                                           today=source.start_time.date()),
            title=f"COPY OF {source.title}",
            customer_id=source.customer_id,
            user_id=self.user_id or source.user_id,
            start_time=source.start_time,
            end_time=source.end_time,
            status='draft',
            type=source.type,
            is_all_day=source.is_all_day,
            notes=source.notes,
        )
        self.session.add(copy)
        self.session.flush()
        logger.info(f"Copied appointment {source.appointment_number} to {copy.appointment_number}")
        return copy.to_dict()

    def delete_appointment(self, appointment_id: int) -> bool:
        appointment = self._get(Appointment, appointment_id, 'Appointment')
        if appointment.status != 'draft':
            raise PermissionDeniedError("Only draft appointments can be deleted")
        self.session.delete(appointment)
        self.session.flush()
        logger.info(f"Deleted appointment: {appointment_id}")
        return True

    # =========================================================================
    # TASKS
    # =========================================================================

    def list_tasks(self, search: str = None, user_id: str = None, is_complete: bool = None,
                   customer_id: int = None, page: int = 1, per_page: int = 25,
                   sort_by: str = 'created_at', sort_order: str = 'desc') -> Dict:
        query = self._scoped(Task).outerjoin(Customer, Task.customer_id == Customer.id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Task.title.ilike(term), Customer.name.ilike(term)))
        if user_id:
            query = query.filter(Task.user_id == user_id)
        if is_complete is not None:
            query = query.filter(Task.is_complete == is_complete)
        if customer_id:
            query = query.filter(Task.customer_id == customer_id)
        query = apply_sort(query, Task, sort_by, sort_order, TASK_SORT_FIELDS, 'created_at')
        return paginate(query, page, per_page)

    def get_task(self, task_id: str) -> Dict:
        return self._get(Task, task_id, 'Task').to_dict()

    def save_task(self, data: Dict, task_id: str = None) -> Dict:
        """
        Create or update a task.

        The assignee defaults to the caller. Assigning someone else notifies
        them of the new task; updating a task assigned to someone else notifies
        them of the change.
        """
        task = self._get(Task, task_id, 'Task', lock=True) if task_id else None
        is_new = task is None

        merged = {**(task.to_dict() if task else {}), **data}
        ensure_valid(validate_task_payload(merged), 'task')

        org_id = task.org_id if task else self._require_org()
        assignee = self._member(merged.get('user_id') or self.user_id, org_id)

        if is_new:
            task = Task(org_id=org_id, created_by_user_id=self.user_id, is_complete=False)
            self.session.add(task)

        task.title = merged['title']
        task.description = merged.get('description')
        task.customer_id = self._customer_id(merged.get('customer_id'))
        task.user_id = assignee.id if assignee else None
        task.start_time = parse_datetime(merged.get('start_time'), 'start_time')
        task.end_time = parse_datetime(merged.get('end_time'), 'end_time')
        if 'is_complete' in data:
            task.is_complete = bool(data['is_complete'])
        self.session.flush()

        if task.user_id and task.user_id != self.user_id:
            title, key = ('newTaskAssigned', 'taskWasAssignedToYouBy') if is_new \
                else ('taskUpdated', 'taskWasUpdatedBy')
            self._notify(org_id, task.user_id, title, key,
                         {'taskTitle': task.title, 'userName': self._actor_name()},
                         'new_task', '/tasks', task.id)

        logger.info(f"{'Created' if is_new else 'Updated'} task: {task.id}")
        return task.to_dict()

    def toggle_task(self, task_id: str) -> Dict:
        task = self._get(Task, task_id, 'Task')
        task.is_complete = not task.is_complete
        self.session.flush()
        return task.to_dict()

    def copy_task(self, task_id: str) -> Dict:
        source = self._get(Task, task_id, 'Task')
        copy = Task(
            org_id=source.org_id,
            title=f"(Copy) {source.title}",
            description=source.description,
            customer_id=source.customer_id,
            user_id=source.user_id,
            created_by_user_id=self.user_id,
            start_time=source.start_time,
            end_time=source.end_time,
            is_complete=False,
        )
        self.session.add(copy)
        self.session.flush()
        logger.info(f"Copied task {task_id} to {copy.id}")
        return copy.to_dict()

    def delete_task(self, task_id: str) -> bool:
        task = self._get(Task, task_id, 'Task')
        self.session.delete(task)
        self.session.flush()
        logger.info(f"Deleted task: {task_id}")
        return True

    # =========================================================================
    # DISPATCHER
    # =========================================================================

    def employees(self) -> List[Dict]:
        query = self.session.query(User).filter(User.role.in_(DISPATCH_ROLES))
        if self.organization_id:
            query = query.filter(User.org_id == self.organization_id)
        return [
            {'id': u.id, 'full_name': u.full_name, 'email': u.email, 'role': u.role}
            for u in query.order_by(User.full_name).all()
        ]

    def board(self, start_date, end_date, employee_ids: Union[str, List[str], None] = 'all') -> Dict:
        """
        Employees and their activities between start_date and end_date (inclusive).

        Visits and tasks are matched by start time; appointments by overlap
        with the range.
        """
        start = parse_date(start_date, 'start_date')
        end = parse_date(end_date, 'end_date') or start
        if start is None:
            raise ValidationError("start_date is required", 'start_date')
        if end < start:
            raise ValidationError("end_date must not be before start_date", 'end_date')
        lower, upper = _day_bounds(start, end)
        selected = _employee_filter(employee_ids)

        visits = self._scoped(Visit).filter(Visit.start_time >= lower, Visit.start_time < upper)
        tasks = self._scoped(Task).filter(Task.start_time >= lower, Task.start_time < upper)
        appointments = self._scoped(Appointment).filter(Appointment.start_time < upper,
                                                         Appointment.end_time >= lower)
        if selected:
            visits = visits.filter(Visit.assigned_employee_id.in_(selected))
            tasks = tasks.filter(Task.user_id.in_(selected))
            appointments = appointments.filter(Appointment.user_id.in_(selected))

        activities = []
        for visit in visits.order_by(Visit.start_time).all():
            activities.append({**visit.to_dict(), 'activity_type': 'visit',
                               'assignee_id': visit.assigned_employee_id})
        for task in tasks.order_by(Task.start_time).all():
            activities.append({**task.to_dict(), 'activity_type': 'task', 'assignee_id': task.user_id})
        for appointment in appointments.order_by(Appointment.start_time).all():
            activities.append({**appointment.to_dict(), 'activity_type': 'appointment',
                               'assignee_id': appointment.user_id})

        employees = self.employees()
        if selected:
            employees = [e for e in employees if e['id'] in selected]

        return {
            'start_date': start.isoformat(),
            'end_date': end.isoformat(),
            'employees': employees,
            'activities': activities,
        }

    def reassign(self, activity_type: str, activity_id, new_assignee_id: str, new_date) -> Dict:
        """Move an activity to another employee and day, keeping time of day and duration."""
        models = {'visit': (Visit, 'Visit', 'assigned_employee_id'),
                  'task': (Task, 'Task', 'user_id'),
                  'appointment': (Appointment, 'Appointment', 'user_id')}
        if activity_type not in models:
            raise ServiceError(f"Unknown activity type: {activity_type}")
        model, label, assignee_field = models[activity_type]

        activity = self._get(model, activity_id, label, lock=True)
        target_day = parse_date(new_date, 'new_date')
        if target_day is None:
            raise ValidationError("new_date is required", 'new_date')
        if new_assignee_id:
            self._member(new_assignee_id, activity.org_id, 'new_assignee_id')

        if activity.start_time is not None:
            duration = (activity.end_time - activity.start_time) if activity.end_time else timedelta(0)
            activity.start_time = datetime.combine(target_day, activity.start_time.time())
            activity.end_time = activity.start_time + duration
        setattr(activity, assignee_field, new_assignee_id or None)
        self.session.flush()

        logger.info(f"Reassigned {activity_type} {activity_id} to {new_assignee_id} on {target_day}")
        return {**activity.to_dict(), 'activity_type': activity_type}
