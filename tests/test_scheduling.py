"""
Tests for appointments, tasks and the dispatcher board
"""
import pytest
from datetime import date

from database.models import Notification
from services.errors import NotFoundError, PermissionDeniedError, ServiceError
from services.scheduling_repository import SchedulingRepository
from services.visit_repository import VisitRepository
from validators import ValidationError


@pytest.fixture
def scheduling(db, org, admin):
    return SchedulingRepository(db, org.id, admin)


def appointment_payload(**overrides):
    payload = {
        'title': 'Aufmaß Bad',
        'start_time': '2026-03-04T10:00:00',
        'end_time': '2026-03-04T11:30:00',
    }
    payload.update(overrides)
    return payload


@pytest.mark.unit
class TestAppointments:
    """Tests for appointments"""

    def test_create_defaults(self, scheduling, admin, customer):
        appointment = scheduling.save_appointment(appointment_payload(customer_id=customer.id))
        assert appointment['appointment_number'] == 'TE-2026-0001'
        assert appointment['status'] == 'draft'
        assert appointment['type'] == 'standard'
        assert appointment['user_id'] == admin['id']
        assert appointment['customer_id'] == customer.id

    def test_absence_has_no_customer(self, scheduling, customer):
        appointment = scheduling.save_appointment(
            appointment_payload(title='Urlaub', type='absence', customer_id=customer.id))
        assert appointment['customer_id'] is None

    def test_assignee_is_notified(self, db, scheduling, fse):
        appointment = scheduling.save_appointment(appointment_payload(user_id=fse['id']))
        notification = db.query(Notification).filter(Notification.user_id == fse['id']).one()
        assert notification.title == 'newAppointmentAssigned'
        assert notification.related_entity_path == f"/appointments/edit/{appointment['id']}"

    def test_copy_is_draft(self, scheduling):
        source = scheduling.save_appointment(appointment_payload(status='open'))
        copy = scheduling.copy_appointment(source['id'])
        assert copy['title'] == 'COPY OF Aufmaß Bad'
        assert copy['status'] == 'draft'
        assert copy['start_time'] == source['start_time']

    def test_only_drafts_can_be_deleted(self, scheduling):
        open_one = scheduling.save_appointment(appointment_payload(status='open'))
        draft = scheduling.save_appointment(appointment_payload())
        with pytest.raises(PermissionDeniedError):
            scheduling.delete_appointment(open_one['id'])
        assert scheduling.delete_appointment(draft['id']) is True
        with pytest.raises(NotFoundError):
            scheduling.get_appointment(draft['id'])

    def test_list_by_overlap(self, scheduling):
        scheduling.save_appointment(appointment_payload(end_time='2026-03-06T09:00:00'))
        assert scheduling.list_appointments(start_date=date(2026, 3, 5), end_date=date(2026, 3, 5))['total'] == 1
        assert scheduling.list_appointments(start_date=date(2026, 3, 7))['total'] == 0


@pytest.mark.unit
class TestTasks:
    """Tests for tasks"""

    def test_new_task_for_someone_else_notifies(self, db, scheduling, fse):
        task = scheduling.save_task({'title': 'Ersatzteil bestellen', 'user_id': fse['id']})
        notification = db.query(Notification).one()
        assert notification.title == 'newTaskAssigned'
        assert notification.user_id == fse['id']
        assert task['is_complete'] is False

    def test_updating_notifies_assignee_of_change(self, db, scheduling, fse):
        task = scheduling.save_task({'title': 'Ersatzteil bestellen', 'user_id': fse['id']})
        scheduling.save_task({'description': 'Dringend'}, task['id'])
        titles = [n.title for n in db.query(Notification).order_by(Notification.created_at).all()]
        assert sorted(titles) == ['newTaskAssigned', 'taskUpdated']

    def test_own_task_is_silent(self, db, scheduling):
        scheduling.save_task({'title': 'Notiz'})
        assert db.query(Notification).count() == 0

    def test_toggle_copy_and_delete(self, scheduling):
        task = scheduling.save_task({'title': 'Rückruf'})
        assert scheduling.toggle_task(task['id'])['is_complete'] is True
        copy = scheduling.copy_task(task['id'])
        assert copy['title'] == '(Copy) Rückruf'
        assert copy['is_complete'] is False
        assert scheduling.delete_task(task['id']) is True
        assert scheduling.list_tasks()['total'] == 1

    def test_task_title_required(self, scheduling):
        with pytest.raises(ValidationError):
            scheduling.save_task({'description': 'ohne Titel'})


@pytest.mark.unit
class TestDispatcher:
    """Tests for the dispatcher board and drag-and-drop reassignment"""

    def _fill_board(self, db, org, admin, fse, scheduling, visit_payload):
        visit = VisitRepository(db, org.id, admin).save_visit(
            dict(visit_payload, assigned_employee_id=fse['id']))['visit']
        task = scheduling.save_task({'title': 'Material holen', 'start_time': '2026-03-02T14:00:00',
                                     'end_time': '2026-03-02T15:00:00'})
        appointment = scheduling.save_appointment(appointment_payload(
            start_time='2026-03-01T08:00:00', end_time='2026-03-03T17:00:00', type='absence'))
        return visit, task, appointment

    def test_board_collects_all_activity_types(self, db, org, admin, fse, scheduling, visit_payload):
        self._fill_board(db, org, admin, fse, scheduling, visit_payload)
        board = scheduling.board('2026-03-02', '2026-03-02')

        assert board['start_date'] == '2026-03-02'
        assert sorted(a['activity_type'] for a in board['activities']) == ['appointment', 'task', 'visit']
        assert {e['id'] for e in board['employees']} == {admin['id'], fse['id']}

    def test_board_filters_employees(self, db, org, admin, fse, scheduling, visit_payload):
        self._fill_board(db, org, admin, fse, scheduling, visit_payload)
        board = scheduling.board('2026-03-02', '2026-03-02', employee_ids=fse['id'])
        assert [a['activity_type'] for a in board['activities']] == ['visit']
        assert [e['id'] for e in board['employees']] == [fse['id']]

    @pytest.mark.parametrize('selection', [[], ['all'], ''])
    def test_empty_selection_means_everybody(self, db, org, admin, fse, scheduling, visit_payload, selection):
        self._fill_board(db, org, admin, fse, scheduling, visit_payload)
        board = scheduling.board('2026-03-02', '2026-03-02', employee_ids=selection)
        assert sorted(a['activity_type'] for a in board['activities']) == ['appointment', 'task', 'visit']
        assert {e['id'] for e in board['employees']} == {admin['id'], fse['id']}

    def test_board_validates_range(self, scheduling):
        with pytest.raises(ValidationError):
            scheduling.board(None, '2026-03-02')
        with pytest.raises(ValidationError):
            scheduling.board('2026-03-05', '2026-03-02')

    def test_reassign_keeps_time_and_duration(self, db, org, admin, fse, scheduling, visit_payload):
        visit, _, _ = self._fill_board(db, org, admin, fse, scheduling, visit_payload)
        moved = scheduling.reassign('visit', visit['id'], admin['id'], '2026-03-09')
        assert moved['start_time'] == '2026-03-09T09:00:00'
        assert moved['end_time'] == '2026-03-09T11:00:00'
        assert moved['assigned_employee_id'] == admin['id']

    def test_reassign_task_without_time_changes_assignee_only(self, scheduling, fse):
        task = scheduling.save_task({'title': 'Irgendwann'})
        moved = scheduling.reassign('task', task['id'], fse['id'], '2026-03-09')
        assert moved['user_id'] == fse['id']
        assert moved['start_time'] is None

    def test_reassign_unknown_type(self, scheduling):
        with pytest.raises(ServiceError):
            scheduling.reassign('meeting', 1, None, '2026-03-09')
