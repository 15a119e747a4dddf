"""Domain events produced by state-changing commands.

Commands never notify anyone themselves: they return these objects and the
NotificationDispatcher turns them into Notification records. Events hold
plain snapshots (ids, titles, recipient lists) taken while the command ran,
so dispatching later, on another thread, needs no further reads.
"""
from typing import Any, Dict, List, Optional

from gig_server.utils.time_utils import utc_now


def event_snapshot(event_doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """The parts of an Event record that notifications need."""
    if not event_doc:
        return {}
    return {
        'event_id': str(event_doc.get('_id')),
        'title': event_doc.get('title') or '',
        'organizer_id': event_doc.get('organizer'),
        'professional_ids': [
            p.get('professional') for p in (event_doc.get('professionals') or []) if p.get('professional')
        ],
    }


class DomainEvent:
    name = 'domain_event'

    def __init__(self, actor_id: Optional[str] = None):
        self.actor_id = actor_id
        self.occurred_at = utc_now()

    def __repr__(self):
        return f'<{self.__class__.__name__} actor={self.actor_id}>'


class MessageSent(DomainEvent):
    name = 'message_sent'

    def __init__(self, message, event: Optional[Dict[str, Any]] = None):
        super().__init__(actor_id=message.sender_id)
        self.message = message
        self.event = event or {}


class RequestAccepted(DomainEvent):
    name = 'request_accepted'

    def __init__(self, message, event: Optional[Dict[str, Any]] = None, listing_id: Optional[str] = None):
        super().__init__(actor_id=message.receiver_id)
        self.message = message
        self.event = event or {}
        self.listing_id = listing_id


class RequestRejected(DomainEvent):
    name = 'request_rejected'

    def __init__(self, message, event: Optional[Dict[str, Any]] = None):
        super().__init__(actor_id=message.receiver_id)
        self.message = message
        self.event = event or {}


class ProfessionalJoined(DomainEvent):
    name = 'professional_joined'

    def __init__(self, event: Dict[str, Any], professional_id: str, services: List[str], status: str,
                 source_message_id: Optional[str] = None):
        super().__init__(actor_id=professional_id)
        self.event = event
        self.professional_id = professional_id
        self.services = list(services or [])
        self.status = status
        self.source_message_id = source_message_id


class ProfessionalLeft(DomainEvent):
    name = 'professional_left'

    def __init__(self, event: Dict[str, Any], professional_id: str):
        super().__init__(actor_id=professional_id)
        self.event = event
        self.professional_id = professional_id


class EngagementDecided(DomainEvent):
    """The organizer accepted or rejected a professional who joined directly."""
    name = 'engagement_decided'

    def __init__(self, event: Dict[str, Any], professional_id: str, status: str, actor_id: str):
        super().__init__(actor_id=actor_id)
        self.event = event
        self.professional_id = professional_id
        self.status = status


class EventUpdated(DomainEvent):
    name = 'event_updated'

    def __init__(self, event: Dict[str, Any], actor_id: str, changes: Optional[List[str]] = None):
        super().__init__(actor_id=actor_id)
        self.event = event
        self.changes = list(changes or [])


class EventCancelled(DomainEvent):
    name = 'event_cancelled'

    def __init__(self, event: Dict[str, Any], actor_id: str):
        super().__init__(actor_id=actor_id)
        self.event = event


class EventCompleted(DomainEvent):
    name = 'event_completed'

    def __init__(self, event: Dict[str, Any], actor_id: str):
        super().__init__(actor_id=actor_id)
        self.event = event


class Notice(DomainEvent):
    """A single notification of any type, raised by collaborators (payments, reviews, system)."""
    name = 'notice'

    def __init__(self, recipient_id: str, notification_type: str, metadata: Optional[Dict[str, Any]] = None,
                 sender_id: Optional[str] = None, related_event_id: Optional[str] = None,
                 related_message_id: Optional[str] = None):
        super().__init__(actor_id=sender_id)
        self.recipient_id = recipient_id
        self.notification_type = notification_type
        self.metadata = metadata or {}
        self.related_event_id = related_event_id
        self.related_message_id = related_message_id
