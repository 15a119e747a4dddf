"""Direct engagement actions and organizer-side event changes.

Professionals join an event as ``pending`` or leave it; the organizer
decides pending engagements and updates, cancels or completes the event.
Every method returns a CommandResult carrying the domain events to
dispatch.
"""
import logging
from typing import Any, Dict, Optional

from gig_server.engagement.models import Engagement, EngagementStatus, EventStatus
from gig_server.exception.NegotiationError import Forbidden, InvalidStateTransition, NotFound, ValidationError
from gig_server.messaging.models import CommandResult, normalize_services, parse_price
from gig_server.notification.events import (
    EngagementDecided, EventCancelled, EventCompleted, EventUpdated, ProfessionalJoined, ProfessionalLeft,
    event_snapshot,
)
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.event_repository import EventRepository, find_engagement
from gig_server.utils.helpers import normalize_doc
from gig_server.utils.time_utils import parse_datetime

logger = logging.getLogger(__name__)

UPDATABLE_EVENT_FIELDS = ('title', 'location', 'start_date', 'end_date', 'budget')


class EngagementService:

    def __init__(self, events: Optional[EventRepository] = None):
        self.events = events or EventRepository()

    def _load_event(self, event_id) -> Dict[str, Any]:
        with storage_deadline():
            event_doc = self.events.get(event_id)
        if not event_doc:
            raise NotFound('Event not found')
        return event_doc

    def _require_organizer(self, event_doc, actor_id):
        if event_doc.get('organizer') != actor_id:
            raise Forbidden('Only the event organizer can do this')

    def list_engagements(self, event_id):
        event_doc = self._load_event(event_id)
        return [Engagement.from_entry(event_id, entry).to_dict() for entry in event_doc.get('professionals') or []]

    def join_event(self, professional_id, event_id, service=None, services=None) -> CommandResult:
        tags = normalize_services(service, services)
        if not tags:
            raise ValidationError('At least one service is required to join an event')
        event_doc = self._load_event(event_id)
        if event_doc.get('status', EventStatus.ACTIVE.value) != EventStatus.ACTIVE.value:
            raise InvalidStateTransition('Only active events can be joined')
        if event_doc.get('organizer') == professional_id:
            raise ValidationError('Organizers cannot join their own event')
        with storage_deadline():
            inserted = self.events.add_professional(event_id, professional_id, tags, EngagementStatus.PENDING.value)
        if not inserted:
            raise ValidationError('You have already joined this event')
        logger.info("Professional %s joined event %s as pending (%s)", professional_id, event_id, tags)
        engagement = Engagement(str(event_doc['_id']), professional_id, tags, EngagementStatus.PENDING)
        event = ProfessionalJoined(event_snapshot(event_doc), professional_id, tags, EngagementStatus.PENDING.value)
        return CommandResult(events=[event], engagement=engagement)

    def leave_event(self, professional_id, event_id) -> CommandResult:
        event_doc = self._load_event(event_id)
        with storage_deadline():
            removed = self.events.remove_professional(event_id, professional_id)
        if not removed:
            raise NotFound('You are not engaged on this event')
        logger.info("Professional %s left event %s", professional_id, event_id)
        return CommandResult(events=[ProfessionalLeft(event_snapshot(event_doc), professional_id)])

    def set_engagement_status(self, organizer_id, event_id, professional_id, status) -> CommandResult:
        try:
            status = EngagementStatus(str(status).lower())
        except ValueError:
            raise ValidationError(f"Invalid engagement status '{status}'")
        if status == EngagementStatus.PENDING:
            raise InvalidStateTransition('Engagements cannot be moved back to pending')
        event_doc = self._load_event(event_id)
        self._require_organizer(event_doc, organizer_id)
        entry = find_engagement(event_doc, professional_id)
        if entry is None:
            raise NotFound('Professional is not engaged on this event')
        current = EngagementStatus(entry.get('status', EngagementStatus.PENDING.value))
        if current.is_terminal:
            raise InvalidStateTransition(f'Engagement is already {current.value}')
        with storage_deadline():
            self.events.set_professional(event_id, professional_id, status.value)
        logger.info("Engagement %s/%s set to %s by %s", event_id, professional_id, status.value, organizer_id)
        engagement = Engagement.from_entry(event_id, {**entry, 'status': status.value})
        event = EngagementDecided(event_snapshot(event_doc), professional_id, status.value, organizer_id)
        return CommandResult(events=[event], engagement=engagement)

    def update_event(self, organizer_id, event_id, fields: Dict[str, Any]) -> CommandResult:
        event_doc = self._load_event(event_id)
        self._require_organizer(event_doc, organizer_id)
        if event_doc.get('status', EventStatus.ACTIVE.value) != EventStatus.ACTIVE.value:
            raise InvalidStateTransition('Only active events can be updated')

        changes = {}
        for key in UPDATABLE_EVENT_FIELDS:
            if key not in fields:
                continue
            value = fields[key]
            if key in ('start_date', 'end_date'):
                value = parse_datetime(value)
                if value is None:
                    raise ValidationError(f'{key} must be an ISO date')
            elif key == 'budget':
                value = parse_price(value)
            elif key == 'title' and not str(value or '').strip():
                raise ValidationError('title cannot be empty')
            changes[key] = value
        if not changes:
            raise ValidationError(f"Nothing to update; allowed fields: {', '.join(UPDATABLE_EVENT_FIELDS)}")

        with storage_deadline():
            self.events.update_fields(event_id, changes)
            updated = self.events.get(event_id)
        logger.info("Event %s updated by %s: %s", event_id, organizer_id, sorted(changes))
        event = EventUpdated(event_snapshot(updated), organizer_id, sorted(changes))
        return CommandResult(events=[event], event=normalize_doc(updated))

    def _close_event(self, organizer_id, event_id, target: EventStatus, event_cls) -> CommandResult:
        event_doc = self._load_event(event_id)
        self._require_organizer(event_doc, organizer_id)
        with storage_deadline():
            changed = self.events.change_status(event_id, EventStatus.ACTIVE.value, target.value)
        if not changed:
            raise InvalidStateTransition(f"Event is already {event_doc.get('status')}")
        logger.info("Event %s %s by %s", event_id, target.value, organizer_id)
        return CommandResult(events=[event_cls(event_snapshot(event_doc), organizer_id)], status=target.value)

    def cancel_event(self, organizer_id, event_id) -> CommandResult:
        return self._close_event(organizer_id, event_id, EventStatus.CANCELLED, EventCancelled)

    def complete_event(self, organizer_id, event_id) -> CommandResult:
        return self._close_event(organizer_id, event_id, EventStatus.COMPLETED, EventCompleted)


_service = None


def get_engagement_service() -> EngagementService:
    global _service
    if _service is None:
        _service = EngagementService()
    return _service


def reset_engagement_service():
    global _service
    _service = None
