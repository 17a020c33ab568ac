"""
Notification Service - in-app notifications for users.

This service handles:
- Creating notifications (assignments, low stock warnings)
- Listing and counting unread notifications
- Marking notifications as read
- Translating stored notification texts for display
"""

import json
import logging
import re
from typing import Dict, List, Optional

from database.models import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ('new_task', 'new_visit', 'new_appointment', 'generic')

TRANSLATIONS = {
    'de': {
        'lowStockWarning': 'Warnung: Niedriger Lagerbestand',
        'stockForIsLow': 'Der Bestand für "{productName}" ist niedrig.',
        'newVisitAssigned': 'Neuer Besuch zugewiesen',
        'youveBeenAssignedVisitBy': 'Ihnen wurde der Besuch #{visitNumber} von {userName} zugewiesen.',
        'newTaskAssigned': 'Neue Aufgabe zugewiesen',
        'taskWasAssignedToYouBy': 'Die Aufgabe "{taskTitle}" wurde Ihnen von {userName} zugewiesen.',
        'taskUpdated': 'Aufgabe aktualisiert',
        'taskWasUpdatedBy': 'Die Aufgabe "{taskTitle}" wurde von {userName} aktualisiert.',
        'newAppointmentAssigned': 'Neuer Termin zugewiesen',
        'appointmentWasAssignedToYouBy': 'Der Termin "{appointmentTitle}" wurde Ihnen von {userName} zugewiesen.',
    },
    'al': {
        'lowStockWarning': 'Paralajmërim: Stok i ulët',
        'stockForIsLow': 'Stoku për "{productName}" është i ulët.',
        'newVisitAssigned': 'Vizitë e re e caktuar',
        'youveBeenAssignedVisitBy': 'Ju është caktuar vizita #{visitNumber} nga {userName}.',
        'newTaskAssigned': 'Detyrë e re e caktuar',
        'taskWasAssignedToYouBy': 'Detyra "{taskTitle}" ju është caktuar nga {userName}.',
        'taskUpdated': 'Detyra u përditësua',
        'taskWasUpdatedBy': 'Detyra "{taskTitle}" u përditësua nga {userName}.',
        'newAppointmentAssigned': 'Takim i ri i caktuar',
        'appointmentWasAssignedToYouBy': 'Takimi "{appointmentTitle}" ju është caktuar nga {userName}.',
    },
}

# (stored title, title key, body pattern, body key, placeholder names)
LEGACY_RULES = [
    ('Low Stock Warning', 'lowStockWarning', re.compile(r'Stock for "(.*)" is low\.'),
     'stockForIsLow', ('productName',)),
    ('New Visit Assigned', 'newVisitAssigned', re.compile(r"You've been assigned visit #(.+) by (.+)\."),
     'youveBeenAssignedVisitBy', ('visitNumber', 'userName')),
    ('New Task Assigned', 'newTaskAssigned', re.compile(r'Task "(.*)" was assigned to you by (.+)\.'),
     'taskWasAssignedToYouBy', ('taskTitle', 'userName')),
    ('Task Updated', 'taskUpdated', re.compile(r'Task "(.*)" was updated by (.+)\.'),
     'taskWasUpdatedBy', ('taskTitle', 'userName')),
    ('New Appointment Assigned', 'newAppointmentAssigned', re.compile(r'Appointment "(.*)" was assigned to you by (.+)\.'),
     'appointmentWasAssignedToYouBy', ('appointmentTitle', 'userName')),
]


def _t(key: str, language: str) -> str:
    table = TRANSLATIONS.get(language) or TRANSLATIONS['de']
    return table.get(key, key)


def translate_notification(title: str, body: str, language: str = 'de') -> Dict[str, str]:
    """
    Translate a stored notification for display.

    Bodies stored as JSON {"key": ..., "params": {...}} are translated by key;
    plain English texts written by older code are matched against known
    patterns. Anything else is returned unchanged.
    """
    try:
        payload = json.loads(body or '')
    except (TypeError, ValueError):
        payload = None

    if isinstance(payload, dict) and payload.get('key'):
        translated = _t(payload['key'], language)
        for name, value in (payload.get('params') or {}).items():
            translated = translated.replace('{' + name + '}', str(value))
        return {'title': _t(title, language), 'body': translated}

    for stored_title, title_key, pattern, body_key, names in LEGACY_RULES:
        if title != stored_title:
            continue
        match = pattern.search(body or '')
        if match and all(match.groups()):
            translated = _t(body_key, language)
            for name, value in zip(names, match.groups()):
                translated = translated.replace('{' + name + '}', value)
        else:
            translated = body
        return {'title': _t(title_key, language), 'body': translated}

    return {'title': title, 'body': body}


class NotificationService:
    """Service for managing notifications."""

    def __init__(self, session, organization_id: Optional[str]):
        self.session = session
        self.organization_id = organization_id

    def create_notification(self, user_id: str, title: str, body: str = '',
                            notification_type: str = 'generic',
                            related_entity_path: str = None,
                            related_entity_id=None) -> Dict:
        """
        Create a notification for one user.

        Args:
            user_id: Recipient
            title: Notification title
            body: Text, or JSON {"key", "params"} for translatable bodies
            notification_type: new_task, new_visit, new_appointment or generic
            related_entity_path: Client route to open, e.g. /visits/edit/12
            related_entity_id: Id of the related record
        """
        if notification_type not in NOTIFICATION_TYPES:
            notification_type = 'generic'

        notification = Notification(
            org_id=self.organization_id,
            user_id=user_id,
            title=title,
            body=body,
            type=notification_type,
            related_entity_path=related_entity_path,
            related_entity_id=str(related_entity_id) if related_entity_id is not None else None,
            is_read=False,
        )
        self.session.add(notification)
        self.session.flush()

        logger.info(f"Created notification '{title}' for user {user_id}")
        return notification.to_dict()

    def get_notifications(self, user_id: str, unread_only: bool = False,
                          limit: int = 50, language: str = None) -> List[Dict]:
        """Newest notifications of a user, optionally translated."""
        query = self.session.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712

        notifications = query.order_by(Notification.created_at.desc()).limit(limit).all()

        results = []
        for notification in notifications:
            data = notification.to_dict()
            if language:
                data.update(translate_notification(notification.title, notification.body, language))
            results.append(data)
        return results

    def unread_count(self, user_id: str) -> int:
        return self.session.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).count()

    def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        notification = self.session.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            return False
        notification.is_read = True
        self.session.flush()
        return True

    def mark_all_as_read(self, user_id: str) -> int:
        count = self.session.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).update({Notification.is_read: True}, synchronize_session=False)
        self.session.flush()
        logger.info(f"Marked {count} notifications as read for user {user_id}")
        return count


def get_notification_service(session, organization_id: str) -> NotificationService:
    """Factory function to create a NotificationService instance."""
    return NotificationService(session, organization_id)
