from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId

from gig_server.exception.NegotiationError import ValidationError
from gig_server.utils.time_utils import utc_now, isoformat


class NotificationType(str, Enum):
    EVENT_CREATED = 'event_created'
    EVENT_UPDATED = 'event_updated'
    EVENT_CANCELLED = 'event_cancelled'
    EVENT_COMPLETED = 'event_completed'
    SERVICE_REQUEST = 'service_request'
    SERVICE_ACCEPTED = 'service_accepted'
    SERVICE_REJECTED = 'service_rejected'
    HIRE_REQUEST = 'hire_request'
    HIRE_ACCEPTED = 'hire_accepted'
    HIRE_REJECTED = 'hire_rejected'
    PROFESSIONAL_JOINED = 'professional_joined'
    PROFESSIONAL_LEFT = 'professional_left'
    PROFESSIONAL_REVIEWED = 'professional_reviewed'
    MESSAGE_RECEIVED = 'message_received'
    MESSAGE_REQUEST = 'message_request'
    PAYMENT_RECEIVED = 'payment_received'
    PAYMENT_SENT = 'payment_sent'
    PAYMENT_FAILED = 'payment_failed'
    REVIEW_RECEIVED = 'review_received'
    SYSTEM_UPDATE = 'system_update'
    ACCOUNT_UPDATE = 'account_update'


def parse_notification_type(value) -> NotificationType:
    try:
        return NotificationType(str(value))
    except ValueError:
        raise ValidationError(f"Invalid notification type '{value}'")


# type -> (title, message template). Templates read from the metadata bag.
TEMPLATES = {
    NotificationType.EVENT_CREATED: ('New Event Created', 'A new event "{event_title}" has been created'),
    NotificationType.EVENT_UPDATED: ('Event Updated', 'Event "{event_title}" has been updated'),
    NotificationType.EVENT_CANCELLED: ('Event Cancelled', 'Event "{event_title}" has been cancelled'),
    NotificationType.EVENT_COMPLETED: ('Event Completed', 'Event "{event_title}" has been marked as completed'),
    NotificationType.SERVICE_REQUEST: ('New Service Request', 'You have received a new {services} request for "{event_title}"'),
    NotificationType.SERVICE_ACCEPTED: ('Service Request Accepted', 'Your {services} request for "{event_title}" has been accepted'),
    NotificationType.SERVICE_REJECTED: ('Service Request Rejected', 'Your {services} request for "{event_title}" has been declined'),
    NotificationType.HIRE_REQUEST: ('New Hire Request', 'You have received a hire request for "{event_title}"'),
    NotificationType.HIRE_ACCEPTED: ('Hire Request Accepted', 'Your hire request for "{event_title}" has been accepted'),
    NotificationType.HIRE_REJECTED: ('Hire Request Rejected', 'Your hire request for "{event_title}" has been declined'),
    NotificationType.PROFESSIONAL_JOINED: ('Professional Joined', 'A {services} has joined your event "{event_title}"'),
    NotificationType.PROFESSIONAL_LEFT: ('Professional Left', 'A professional has left your event "{event_title}"'),
    NotificationType.PROFESSIONAL_REVIEWED: ('New Review', 'You have received a {rating}-star review'),
    NotificationType.MESSAGE_RECEIVED: ('New Message', '{preview}'),
    NotificationType.MESSAGE_REQUEST: ('New Message Request', 'You have a new message request'),
    NotificationType.PAYMENT_RECEIVED: ('Payment Received', 'You have received a payment of {amount}'),
    NotificationType.PAYMENT_SENT: ('Payment Sent', 'Your payment of {amount} has been sent'),
    NotificationType.PAYMENT_FAILED: ('Payment Failed', 'Your payment of {amount} could not be processed'),
    NotificationType.REVIEW_RECEIVED: ('New Review', 'You have received a {rating}-star review'),
    NotificationType.SYSTEM_UPDATE: ('System Update', '{text}'),
    NotificationType.ACCOUNT_UPDATE: ('Account Update', '{text}'),
}

# Keys each type's metadata bag carries.
METADATA_KEYS = {
    NotificationType.EVENT_CREATED: ('event_title',),
    NotificationType.EVENT_UPDATED: ('event_title', 'changes'),
    NotificationType.EVENT_CANCELLED: ('event_title',),
    NotificationType.EVENT_COMPLETED: ('event_title',),
    NotificationType.SERVICE_REQUEST: ('event_title', 'services', 'kind', 'price'),
    NotificationType.SERVICE_ACCEPTED: ('event_title', 'services', 'kind', 'listing_id'),
    NotificationType.SERVICE_REJECTED: ('event_title', 'services', 'kind'),
    NotificationType.HIRE_REQUEST: ('event_title', 'services', 'price'),
    NotificationType.HIRE_ACCEPTED: ('event_title', 'services', 'listing_id'),
    NotificationType.HIRE_REJECTED: ('event_title', 'services'),
    NotificationType.PROFESSIONAL_JOINED: ('event_title', 'services', 'professional_id', 'status'),
    NotificationType.PROFESSIONAL_LEFT: ('event_title', 'professional_id'),
    NotificationType.PROFESSIONAL_REVIEWED: ('rating',),
    NotificationType.MESSAGE_RECEIVED: ('preview',),
    NotificationType.MESSAGE_REQUEST: (),
    NotificationType.PAYMENT_RECEIVED: ('amount',),
    NotificationType.PAYMENT_SENT: ('amount',),
    NotificationType.PAYMENT_FAILED: ('amount',),
    NotificationType.REVIEW_RECEIVED: ('rating',),
    NotificationType.SYSTEM_UPDATE: ('text',),
    NotificationType.ACCOUNT_UPDATE: ('text',),
}

PREVIEW_LENGTH = 100


class _Blank(dict):
    def __missing__(self, key):
        return ''


def _display(value):
    if isinstance(value, (list, tuple)):
        return ', '.join(str(v) for v in value)
    return value


def render(notification_type: NotificationType, metadata: Optional[Dict[str, Any]] = None):
    """Return (title, message) for a type, tolerating missing metadata keys."""
    title, template = TEMPLATES[NotificationType(notification_type)]
    values = _Blank({k: _display(v) for k, v in (metadata or {}).items()})
    return title, template.format_map(values).strip()


def shape_metadata(notification_type: NotificationType, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only the keys declared for the type."""
    keys = METADATA_KEYS[NotificationType(notification_type)]
    metadata = metadata or {}
    return {k: metadata[k] for k in keys if k in metadata and metadata[k] is not None}


class Notification:

    def __init__(self, recipient_id: str, notification_type: NotificationType, title: str, message: str,
                 sender_id: Optional[str] = None, related_event_id: Optional[str] = None,
                 related_message_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                 read: bool = False, read_at=None, created_at=None, notification_id: Optional[ObjectId] = None):
        self._id = notification_id or ObjectId()
        self.recipient_id = recipient_id
        self.type = NotificationType(notification_type)
        self.title = title
        self.message = message
        self.sender_id = sender_id
        self.related_event_id = related_event_id
        self.related_message_id = related_message_id
        self.metadata = metadata or {}
        self.read = read
        self.read_at = read_at
        self.created_at = created_at or utc_now()

    @classmethod
    def create(cls, recipient_id, notification_type, metadata=None, sender_id=None,
               related_event_id=None, related_message_id=None) -> 'Notification':
        notification_type = NotificationType(notification_type)
        metadata = shape_metadata(notification_type, metadata)
        title, message = render(notification_type, metadata)
        return cls(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            sender_id=sender_id,
            related_event_id=related_event_id,
            related_message_id=related_message_id,
            metadata=metadata,
        )

    @property
    def notification_id(self) -> str:
        return str(self._id)

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self._id,
            'recipient_id': self.recipient_id,
            'sender_id': self.sender_id,
            'type': self.type.value,
            'title': self.title,
            'message': self.message,
            'related_event_id': self.related_event_id,
            'related_message_id': self.related_message_id,
            'metadata': self.metadata,
            'read': self.read,
            'read_at': self.read_at,
            'created_at': self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.notification_id,
            'recipientId': self.recipient_id,
            'senderId': self.sender_id,
            'type': self.type.value,
            'title': self.title,
            'message': self.message,
            'relatedEventId': self.related_event_id,
            'relatedMessageId': self.related_message_id,
            'metadata': self.metadata,
            'read': self.read,
            'readAt': isoformat(self.read_at),
            'createdAt': isoformat(self.created_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Notification':
        return cls(
            recipient_id=doc.get('recipient_id'),
            notification_type=doc.get('type'),
            title=doc.get('title', ''),
            message=doc.get('message', ''),
            sender_id=doc.get('sender_id'),
            related_event_id=doc.get('related_event_id'),
            related_message_id=doc.get('related_message_id'),
            metadata=doc.get('metadata') or {},
            read=doc.get('read', False),
            read_at=doc.get('read_at'),
            created_at=doc.get('created_at'),
            notification_id=doc.get('_id'),
        )
