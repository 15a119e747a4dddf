import logging
from typing import Any, Dict, Optional

from gig_server.exception.NegotiationError import NotFound
from gig_server.notification.models import Notification, parse_notification_type
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.notification_repository import NotificationRepository
from gig_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class NotificationService:
    """Read side of notifications: listing and recipient-only acknowledgement."""

    def __init__(self, notifications: Optional[NotificationRepository] = None):
        self.notifications = notifications or NotificationRepository()

    def list_notifications(self, user_id, unread_only=False, notification_type=None, limit=50, skip=0) -> Dict[str, Any]:
        if notification_type:
            notification_type = parse_notification_type(notification_type).value
        with storage_deadline():
            docs = self.notifications.list_for(user_id, unread_only, notification_type, limit=limit, skip=skip)
            total = self.notifications.count_for(user_id, unread_only, notification_type)
            unread = self.notifications.count_for(user_id, unread_only=True)
        return {
            'notifications': [Notification.from_doc(d).to_dict() for d in docs],
            'total': total,
            'unreadCount': unread,
            'limit': limit,
            'skip': skip,
        }

    def unread_count(self, user_id) -> int:
        with storage_deadline():
            return self.notifications.count_for(user_id, unread_only=True)

    def mark_read(self, user_id, notification_id) -> Dict[str, Any]:
        with storage_deadline():
            doc = self.notifications.get_for(notification_id, user_id)
        if not doc:
            raise NotFound('Notification not found')
        if not doc.get('read'):
            with storage_deadline():
                self.notifications.mark_read(notification_id, user_id)
            EventEmitter.update_notification_count(user_id, self.unread_count(user_id))
        with storage_deadline():
            doc = self.notifications.get_for(notification_id, user_id)
        return Notification.from_doc(doc).to_dict()

    def mark_all_read(self, user_id) -> int:
        with storage_deadline():
            count = self.notifications.mark_all_read(user_id)
        logger.info("Marked %d notification(s) read for %s", count, user_id)
        if count:
            EventEmitter.update_notification_count(user_id, 0)
        return count

    def delete(self, user_id, notification_id) -> None:
        with storage_deadline():
            deleted = self.notifications.delete_for(notification_id, user_id)
        if not deleted:
            raise NotFound('Notification not found')


_service = None


def get_notification_service() -> NotificationService:
    global _service
    if _service is None:
        _service = NotificationService()
    return _service


def reset_notification_service():
    global _service
    _service = None
