"""Message models for negotiation and conversation.

A Message is a common envelope (participants, status, timestamps, edit and
delete history) plus a kind-specific payload. ``plain`` messages carry only
content; the negotiable kinds (``service_request``, ``hire_request``,
``service_offer``) also carry RequestDetails: the event the negotiation is
about, the requested service tags and an optional price. The payload is
validated when the message is built, so a stored message is always
well-formed for its kind.

Storage documents use snake_case keys; API dictionaries use camelCase.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from bson import ObjectId

from gig_server.exception.NegotiationError import InvalidStateTransition, ValidationError
from gig_server.utils.time_utils import utc_now, isoformat
from gig_server.utils.versioning import VERSION_FIELD


class MessageKind(str, Enum):
    PLAIN = 'plain'
    SERVICE_REQUEST = 'service_request'
    HIRE_REQUEST = 'hire_request'
    SERVICE_OFFER = 'service_offer'

    @property
    def is_negotiable(self) -> bool:
        return self != MessageKind.PLAIN

    @property
    def creates_engagement(self) -> bool:
        """Accepting these kinds engages the receiver on the event."""
        return self in (MessageKind.SERVICE_REQUEST, MessageKind.HIRE_REQUEST)


class MessageStatus(str, Enum):
    UNREAD = 'unread'
    READ = 'read'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.ACCEPTED, MessageStatus.REJECTED)


class ServiceTag(str, Enum):
    PHOTOGRAPHER = 'photographer'
    VIDEOGRAPHER = 'videographer'
    CATERER = 'caterer'
    MUSICIAN = 'musician'
    DECORATOR = 'decorator'
    PLANNER = 'planner'
    SECURITY = 'security'
    MC = 'mc'


REQUEST_KINDS = (MessageKind.SERVICE_REQUEST, MessageKind.HIRE_REQUEST, MessageKind.SERVICE_OFFER)
CONVERSATION_KINDS = (MessageKind.PLAIN, MessageKind.HIRE_REQUEST)

# unread -> read is only an acknowledgement; it does not close a negotiation
NEGOTIABLE_TRANSITIONS = {
    MessageStatus.UNREAD: (MessageStatus.READ, MessageStatus.ACCEPTED, MessageStatus.REJECTED),
    MessageStatus.READ: (MessageStatus.ACCEPTED, MessageStatus.REJECTED),
}
PLAIN_TRANSITIONS = {
    MessageStatus.UNREAD: (MessageStatus.READ,),
}

DELETED_PLACEHOLDER = ''


def parse_kind(value) -> MessageKind:
    if value is None or value == '' or value == 'message':
        return MessageKind.PLAIN
    try:
        return MessageKind(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(k.value for k in MessageKind)
        raise ValidationError(f"Invalid message type '{value}'. Expected one of: {allowed}")


def parse_status(value) -> MessageStatus:
    try:
        return MessageStatus(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(s.value for s in MessageStatus)
        raise ValidationError(f"Invalid status '{value}'. Expected one of: {allowed}")


def normalize_services(service=None, services=None) -> List[str]:
    """Merge the singular ``service`` and plural ``services`` inputs into one ordered tag list."""
    raw = []
    if service:
        raw.extend(service if isinstance(service, (list, tuple)) else [service])
    if services:
        raw.extend(services if isinstance(services, (list, tuple)) else [services])

    tags = []
    for item in raw:
        tag = str(item).strip().lower()
        if not tag:
            continue
        try:
            ServiceTag(tag)
        except ValueError:
            allowed = ', '.join(t.value for t in ServiceTag)
            raise ValidationError(f"Invalid service '{item}'. Expected one of: {allowed}")
        if tag not in tags:
            tags.append(tag)
    return tags


def parse_price(value) -> Optional[float]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError('price must be a number')
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError('price must be a number')
    if not math.isfinite(price):
        raise ValidationError('price must be a finite number')
    if price < 0:
        raise ValidationError('price must be >= 0')
    return price


class MessageVersion:
    """One prior content of a message, recorded on edit or delete."""

    def __init__(self, content: str, edited_at: datetime, edited_by: str):
        self.content = content
        self.edited_at = edited_at
        self.edited_by = edited_by

    def to_db_doc(self) -> Dict[str, Any]:
        return {'content': self.content, 'edited_at': self.edited_at, 'edited_by': self.edited_by}

    def to_dict(self) -> Dict[str, Any]:
        return {'content': self.content, 'editedAt': isoformat(self.edited_at), 'editedBy': self.edited_by}

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'MessageVersion':
        return cls(doc.get('content', ''), doc.get('edited_at'), doc.get('edited_by'))


class RequestDetails:
    """Payload of a negotiable message."""

    def __init__(self, related_event_id: str, services: List[str], price: Optional[float] = None):
        self.related_event_id = related_event_id
        self.services = list(services)
        self.price = price

    def validate(self, kind: MessageKind):
        if not self.related_event_id:
            raise ValidationError(f'{kind.value} requires a related event')
        if not self.services:
            raise ValidationError(f'{kind.value} requires at least one service')
        if self.price is not None and self.price < 0:
            raise ValidationError('price must be >= 0')

    @classmethod
    def from_attrs(cls, attrs: Dict[str, Any]) -> 'RequestDetails':
        event_id = attrs.get('related_event_id') or attrs.get('relatedEvent') or attrs.get('relatedEventId') or attrs.get('eventId')
        return cls(
            related_event_id=str(event_id) if event_id else None,
            services=normalize_services(attrs.get('service'), attrs.get('services')),
            price=parse_price(attrs.get('price')),
        )


class Message:
    """A unit of communication or negotiation between two users."""

    def __init__(
        self,
        sender_id: str,
        receiver_id: str,
        kind: MessageKind = MessageKind.PLAIN,
        content: str = '',
        status: MessageStatus = MessageStatus.UNREAD,
        request: Optional[RequestDetails] = None,
        parent_message_id: Optional[str] = None,
        is_response: bool = False,
        versions: Optional[List[MessageVersion]] = None,
        is_edited: bool = False,
        is_deleted: bool = False,
        deleted_at: Optional[datetime] = None,
        deleted_by: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        message_id: Optional[ObjectId] = None,
        version: int = 1,
    ):
        self._id = message_id or ObjectId()
        self.sender_id = sender_id
        self.receiver_id = receiver_id
        self.kind = MessageKind(kind)
        self.content = content
        self.status = MessageStatus(status)
        self.request = request
        self.parent_message_id = parent_message_id
        self.is_response = is_response
        self.versions = versions or []
        self.is_edited = is_edited
        self.is_deleted = is_deleted
        self.deleted_at = deleted_at
        self.deleted_by = deleted_by
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at
        self.version = version

    @classmethod
    def build(cls, sender_id, receiver_id, kind, content, attrs: Optional[Dict[str, Any]] = None) -> 'Message':
        """Create a new unread message, validating the payload for its kind."""
        attrs = attrs or {}
        kind = parse_kind(kind)
        content = content.strip() if isinstance(content, str) else ''
        if not content:
            raise ValidationError('Message content cannot be empty')
        if not receiver_id:
            raise ValidationError('Receiver is required')
        if str(receiver_id) == str(sender_id):
            raise ValidationError('Cannot send a message to yourself')

        request = None
        if kind.is_negotiable:
            request = RequestDetails.from_attrs(attrs)
            request.validate(kind)

        parent = attrs.get('parent_message_id') or attrs.get('parentMessage')
        return cls(
            sender_id=str(sender_id),
            receiver_id=str(receiver_id),
            kind=kind,
            content=content,
            request=request,
            parent_message_id=str(parent) if parent else None,
        )

    @property
    def message_id(self) -> str:
        return str(self._id)

    @property
    def object_id(self) -> ObjectId:
        return self._id

    @property
    def related_event_id(self) -> Optional[str]:
        return self.request.related_event_id if self.request else None

    @property
    def services(self) -> List[str]:
        return self.request.services if self.request else []

    @property
    def price(self) -> Optional[float]:
        return self.request.price if self.request else None

    def counterpart_of(self, user_id: str) -> str:
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def allowed_targets(self):
        table = NEGOTIABLE_TRANSITIONS if self.kind.is_negotiable else PLAIN_TRANSITIONS
        return table.get(self.status, ())

    def check_transition(self, target: MessageStatus) -> bool:
        """Raise InvalidStateTransition unless ``target`` is reachable.

        Returns True when the transition is a no-op (read on a read message).
        """
        target = MessageStatus(target)
        if self.is_deleted:
            raise InvalidStateTransition('Deleted messages cannot change status')
        if self.status.is_terminal:
            raise InvalidStateTransition(f'Message is already {self.status.value}; the negotiation is closed')
        if target == MessageStatus.READ and self.status == MessageStatus.READ:
            return True
        if target not in self.allowed_targets():
            raise InvalidStateTransition(
                f'A {self.kind.value} message cannot move from {self.status.value} to {target.value}'
            )
        return False

    def build_response(self, accepted: bool, event_title: Optional[str] = None) -> 'Message':
        """The automatic plain reply the receiver posts when deciding on a request."""
        services = ', '.join(self.services) or 'service'
        if accepted:
            content = f'Request accepted for {services}.'
            if event_title:
                content += f' You can now start messaging about the event: {event_title}'
        else:
            content = f'Request rejected for {services}'
        return Message(
            sender_id=self.receiver_id,
            receiver_id=self.sender_id,
            kind=MessageKind.PLAIN,
            content=content,
            parent_message_id=self.message_id,
            is_response=True,
        )

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self._id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'kind': self.kind.value,
            'content': self.content,
            'status': self.status.value,
            'related_event_id': self.related_event_id,
            'services': self.services,
            'price': self.price,
            'parent_message_id': self.parent_message_id,
            'is_response': self.is_response,
            'versions': [v.to_db_doc() for v in self.versions],
            'is_edited': self.is_edited,
            'is_deleted': self.is_deleted,
            'deleted_at': self.deleted_at,
            'deleted_by': self.deleted_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            VERSION_FIELD: self.version,
        }

    def to_dict(self, include_history: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.message_id,
            'senderId': self.sender_id,
            'receiverId': self.receiver_id,
            'type': self.kind.value,
            'content': self.content,
            'status': self.status.value,
            'relatedEventId': self.related_event_id,
            'services': self.services,
            'price': self.price,
            'parentMessageId': self.parent_message_id,
            'isResponse': self.is_response,
            'isEdited': self.is_edited,
            'isDeleted': self.is_deleted,
            'deletedAt': isoformat(self.deleted_at),
            'deletedBy': self.deleted_by,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_history:
            data['versions'] = [v.to_dict() for v in self.versions]
        return data

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        kind = MessageKind(doc.get('kind', MessageKind.PLAIN.value))
        request = None
        if kind.is_negotiable:
            request = RequestDetails(doc.get('related_event_id'), doc.get('services') or [], doc.get('price'))
        return cls(
            sender_id=doc.get('sender_id'),
            receiver_id=doc.get('receiver_id'),
            kind=kind,
            content=doc.get('content', ''),
            status=doc.get('status', MessageStatus.UNREAD.value),
            request=request,
            parent_message_id=doc.get('parent_message_id'),
            is_response=doc.get('is_response', False),
            versions=[MessageVersion.from_doc(v) for v in doc.get('versions', [])],
            is_edited=doc.get('is_edited', False),
            is_deleted=doc.get('is_deleted', False),
            deleted_at=doc.get('deleted_at'),
            deleted_by=doc.get('deleted_by'),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
            message_id=doc.get('_id'),
            version=doc.get(VERSION_FIELD, 1),
        )


class CommandResult:
    """Outcome of a state-changing command: the affected message plus the domain events it produced."""

    def __init__(self, message: Optional[Message] = None, events: Optional[list] = None, **extra):
        self.message = message
        self.events = events or []
        self.extra = extra

    def get(self, key, default=None):
        return self.extra.get(key, default)
