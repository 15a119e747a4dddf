from enum import Enum
from typing import Any, Dict, List, Optional

from bson import ObjectId

from gig_server.utils.time_utils import utc_now, isoformat, parse_datetime


class EngagementStatus(str, Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'

    @property
    def is_terminal(self) -> bool:
        return self != EngagementStatus.PENDING


class ListingStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class EventStatus(str, Enum):
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


class EngagementOutcome(str, Enum):
    """What AcceptRequest did to the (event, professional) engagement."""
    CREATED = 'created'
    PROMOTED = 'promoted'
    EXISTING = 'existing'


class Engagement:
    """A professional's assignment to an event, as embedded in the event document."""

    def __init__(self, event_id: str, professional_id: str, services: List[str],
                 status: EngagementStatus = EngagementStatus.PENDING, source_message_id: Optional[str] = None):
        self.event_id = event_id
        self.professional_id = professional_id
        self.services = list(services or [])
        self.status = EngagementStatus(status)
        self.source_message_id = source_message_id

    @classmethod
    def from_entry(cls, event_id, entry: Dict[str, Any]) -> 'Engagement':
        return cls(
            event_id=str(event_id),
            professional_id=entry.get('professional'),
            services=entry.get('services') or ([entry['service']] if entry.get('service') else []),
            status=entry.get('status', EngagementStatus.PENDING.value),
            source_message_id=entry.get('source_message_id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'eventId': self.event_id,
            'professionalId': self.professional_id,
            'services': self.services,
            'status': self.status.value,
            'sourceMessageId': self.source_message_id,
        }


class Listing:
    """A priced unit of work derived from an accepted request."""

    def __init__(self, professional_id: str, event_id: str, services: List[str], title: str,
                 price: Optional[float], source_message_id: str, start_date=None, end_date=None,
                 description: str = '', status: ListingStatus = ListingStatus.ACTIVE,
                 created_at=None, listing_id: Optional[ObjectId] = None):
        self._id = listing_id or ObjectId()
        self.professional_id = professional_id
        self.event_id = event_id
        self.services = list(services)
        self.title = title
        self.price = price
        self.source_message_id = source_message_id
        self.start_date = start_date
        self.end_date = end_date
        self.description = description
        self.status = ListingStatus(status)
        self.created_at = created_at or utc_now()

    @classmethod
    def from_accepted_request(cls, message, event: Dict[str, Any]) -> 'Listing':
        """Price falls back to the event budget; dates come from the event schedule."""
        services = message.services
        event_title = event.get('title') or 'event'
        price = message.price if message.price is not None else event.get('budget')
        start = parse_datetime(event.get('start_date') or event.get('datetime'))
        end = parse_datetime(event.get('end_date')) or start
        return cls(
            professional_id=message.receiver_id,
            event_id=str(event['_id']),
            services=services,
            title=f"{', '.join(services).title()} for {event_title}",
            price=price,
            source_message_id=message.message_id,
            start_date=start,
            end_date=end,
            description=message.content,
        )

    @property
    def listing_id(self) -> str:
        return str(self._id)

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self._id,
            'professional_id': self.professional_id,
            'event_id': self.event_id,
            'services': self.services,
            'title': self.title,
            'description': self.description,
            'price': self.price,
            'status': self.status.value,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'source_message_id': self.source_message_id,
            'created_at': self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.listing_id,
            'professionalId': self.professional_id,
            'eventId': self.event_id,
            'services': self.services,
            'title': self.title,
            'description': self.description,
            'price': self.price,
            'status': self.status.value,
            'startDate': isoformat(self.start_date),
            'endDate': isoformat(self.end_date),
            'sourceMessageId': self.source_message_id,
            'createdAt': isoformat(self.created_at),
        }
