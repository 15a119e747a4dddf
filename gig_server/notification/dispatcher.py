"""Turns domain events into persisted notifications.

``plan(event)`` is a pure mapping from one domain event to the notifications
it fans out to. ``dispatch(events)`` writes them one by one; a failed write
is wrapped in DispatchFailure, logged, and skipped so the remaining
recipients still get theirs. Nothing here raises to the command that
produced the events: the state change it made stands either way.
"""
import logging
from typing import Iterable, List, Optional

from config import config
from gig_server.exception.NegotiationError import DispatchFailure
from gig_server.messaging.models import MessageKind
from gig_server.notification.events import (
    EngagementDecided, EventCancelled, EventCompleted, EventUpdated, MessageSent, Notice,
    ProfessionalJoined, ProfessionalLeft, RequestAccepted, RequestRejected,
)
from gig_server.notification.models import Notification, NotificationType, PREVIEW_LENGTH
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.notification_repository import NotificationRepository
from gig_server.utils.threading_util.pool import submit_task
from gig_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)

_SENT_TYPES = {
    MessageKind.PLAIN: NotificationType.MESSAGE_RECEIVED,
    MessageKind.SERVICE_REQUEST: NotificationType.SERVICE_REQUEST,
    MessageKind.SERVICE_OFFER: NotificationType.SERVICE_REQUEST,
    MessageKind.HIRE_REQUEST: NotificationType.HIRE_REQUEST,
}
_ACCEPTED_TYPES = {
    MessageKind.SERVICE_REQUEST: NotificationType.SERVICE_ACCEPTED,
    MessageKind.SERVICE_OFFER: NotificationType.SERVICE_ACCEPTED,
    MessageKind.HIRE_REQUEST: NotificationType.HIRE_ACCEPTED,
}
_REJECTED_TYPES = {
    MessageKind.SERVICE_REQUEST: NotificationType.SERVICE_REJECTED,
    MessageKind.SERVICE_OFFER: NotificationType.SERVICE_REJECTED,
    MessageKind.HIRE_REQUEST: NotificationType.HIRE_REJECTED,
}


def _message_metadata(message, event):
    metadata = {
        'event_title': (event or {}).get('title'),
        'services': message.services,
        'price': message.price,
    }
    if message.kind != MessageKind.HIRE_REQUEST:
        metadata['kind'] = message.kind.value
    return metadata


def _fan_out(event, actor_id):
    """Every engaged professional plus the organizer, without the actor, each once."""
    recipients = []
    for user_id in list(event.get('professional_ids', [])) + [event.get('organizer_id')]:
        if user_id and user_id != actor_id and user_id not in recipients:
            recipients.append(user_id)
    return recipients


class NotificationDispatcher:

    def __init__(self, notifications: Optional[NotificationRepository] = None, push_enabled: Optional[bool] = None):
        self.notifications = notifications or NotificationRepository()
        self.push_enabled = config.NOTIFICATION_PUSH_ENABLED if push_enabled is None else push_enabled

    def plan(self, event) -> List[Notification]:
        if isinstance(event, MessageSent):
            message = event.message
            if message.kind == MessageKind.PLAIN:
                metadata = {'preview': message.content[:PREVIEW_LENGTH]}
            else:
                metadata = _message_metadata(message, event.event)
            return [Notification.create(
                message.receiver_id, _SENT_TYPES[message.kind], metadata,
                sender_id=message.sender_id,
                related_event_id=message.related_event_id,
                related_message_id=message.message_id,
            )]

        if isinstance(event, (RequestAccepted, RequestRejected)):
            message = event.message
            table = _ACCEPTED_TYPES if isinstance(event, RequestAccepted) else _REJECTED_TYPES
            metadata = _message_metadata(message, event.event)
            if isinstance(event, RequestAccepted):
                metadata['listing_id'] = event.listing_id
            return [Notification.create(
                message.sender_id, table[message.kind], metadata,
                sender_id=message.receiver_id,
                related_event_id=message.related_event_id,
                related_message_id=message.message_id,
            )]

        if isinstance(event, (ProfessionalJoined, ProfessionalLeft)):
            organizer_id = event.event.get('organizer_id')
            if not organizer_id or organizer_id == event.professional_id:
                return []
            if isinstance(event, ProfessionalJoined):
                notification_type = NotificationType.PROFESSIONAL_JOINED
                metadata = {'services': event.services, 'status': event.status}
            else:
                notification_type = NotificationType.PROFESSIONAL_LEFT
                metadata = {}
            metadata.update({'event_title': event.event.get('title'), 'professional_id': event.professional_id})
            return [Notification.create(
                organizer_id, notification_type, metadata,
                sender_id=event.professional_id,
                related_event_id=event.event.get('event_id'),
            )]

        if isinstance(event, EngagementDecided):
            accepted = event.status == 'accepted'
            return [Notification.create(
                event.professional_id,
                NotificationType.HIRE_ACCEPTED if accepted else NotificationType.HIRE_REJECTED,
                {'event_title': event.event.get('title')},
                sender_id=event.actor_id,
                related_event_id=event.event.get('event_id'),
            )]

        if isinstance(event, (EventUpdated, EventCancelled, EventCompleted)):
            if isinstance(event, EventUpdated):
                notification_type = NotificationType.EVENT_UPDATED
            elif isinstance(event, EventCancelled):
                notification_type = NotificationType.EVENT_CANCELLED
            else:
                notification_type = NotificationType.EVENT_COMPLETED
            metadata = {'event_title': event.event.get('title')}
            if isinstance(event, EventUpdated):
                metadata['changes'] = event.changes
            return [
                Notification.create(
                    recipient, notification_type, metadata,
                    sender_id=event.actor_id,
                    related_event_id=event.event.get('event_id'),
                )
                for recipient in _fan_out(event.event, event.actor_id)
            ]

        if isinstance(event, Notice):
            return [Notification.create(
                event.recipient_id, event.notification_type, event.metadata,
                sender_id=event.actor_id,
                related_event_id=event.related_event_id,
                related_message_id=event.related_message_id,
            )]

        logger.warning("No notification mapping for domain event %r", event)
        return []

    def dispatch(self, events: Iterable) -> List[str]:
        """Persist notifications for ``events``; returns the ids that were written."""
        created = []
        for event in events or []:
            try:
                planned = self.plan(event)
            except Exception as exc:
                failure = DispatchFailure(f'Could not map {event!r}: {exc}')
                logger.exception("DISPATCH: %s", failure.message)
                continue
            for notification in planned:
                try:
                    self._deliver(notification)
                except DispatchFailure as failure:
                    logger.error("DISPATCH: %s", failure.message)
                    continue
                created.append(notification.notification_id)
        if created:
            logger.info("DISPATCH: created %d notification(s)", len(created))
        return created

    def dispatch_async(self, events: Iterable):
        """Dispatch on the shared worker pool; returns the Future."""
        events = list(events or [])
        if not events:
            return None
        return submit_task(self.dispatch, events)

    def publish(self, events: Iterable):
        """Dispatch inline or on the pool, per notification.async_dispatch."""
        if config.NOTIFICATION_ASYNC_DISPATCH:
            return self.dispatch_async(events)
        return self.dispatch(events)

    def _deliver(self, notification: Notification):
        try:
            with storage_deadline():
                self.notifications.create(notification.to_db_doc())
        except Exception as exc:
            raise DispatchFailure(
                f'Failed to store {notification.type.value} notification for {notification.recipient_id}: {exc}'
            ) from exc
        if self.push_enabled:
            EventEmitter.notify_user(notification.recipient_id, notification.to_dict())


_dispatcher = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher


def reset_notification_dispatcher():
    global _dispatcher
    _dispatcher = None
