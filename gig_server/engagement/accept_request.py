"""AcceptRequest: accepting a hire/service request as one unit.

Accepting a request touches three collections: the message status, the
event's engagement entry for the receiver, and a new Listing. The command
checks everything it can without writing (message, actor, state, event),
then applies the writes inside a UnitOfWork so either all of them commit or
none do. The receiver's engagement is inserted with a conditional update, so
a retried or concurrent acceptance never duplicates it.

Usage:
    result = AcceptRequest(message_id, actor_id).execute()
    result.message            # the accepted Message
    result.get('listing')     # the created Listing
    result.events             # RequestAccepted (+ ProfessionalJoined)
"""
import logging
from typing import Optional

from config import config
from gig_server.engagement.models import EngagementOutcome, EngagementStatus, EventStatus, Listing
from gig_server.exception.NegotiationError import Forbidden, InvalidStateTransition, NotFound
from gig_server.messaging.models import CommandResult, Message, MessageStatus
from gig_server.notification.events import ProfessionalJoined, RequestAccepted, event_snapshot
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.event_repository import EventRepository, find_engagement
from gig_server.repository.listing_repository import ListingRepository
from gig_server.repository.message_repository import MessageRepository
from gig_server.repository.unit_of_work import UnitOfWork
from gig_server.utils.keyed_lock import KeyedLock
from gig_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class AcceptRequest:

    def __init__(self, message_id, actor_id,
                 messages: Optional[MessageRepository] = None,
                 events: Optional[EventRepository] = None,
                 listings: Optional[ListingRepository] = None,
                 locks: Optional[KeyedLock] = None,
                 client=None,
                 response_messages: Optional[bool] = None):
        self.message_id = str(message_id)
        self.actor_id = actor_id
        self.messages = messages or MessageRepository()
        self.events = events or EventRepository()
        self.listings = listings or ListingRepository()
        self.locks = locks or KeyedLock()
        self.client = client if client is not None else self.messages.collection.database.client
        if response_messages is None:
            response_messages = config.RESPONSE_MESSAGES_ENABLED
        self.response_messages = response_messages

    def execute(self) -> CommandResult:
        with self.locks.hold(self.message_id):
            with storage_deadline():
                doc = self.messages.get(self.message_id)
            if not doc:
                raise NotFound('Message not found')
            return self.apply(Message.from_doc(doc))

    def apply(self, message: Message) -> CommandResult:
        """Run the command against an already-loaded message. Caller holds the message lock."""
        self._check(message)
        with storage_deadline():
            event_doc = self.events.get(message.related_event_id)
        if not event_doc:
            raise NotFound('Event not found')
        if event_doc.get('status', EventStatus.ACTIVE.value) != EventStatus.ACTIVE.value:
            raise InvalidStateTransition(f"Requests for a {event_doc.get('status')} event cannot be accepted")

        with UnitOfWork(self.client) as uow:
            with storage_deadline():
                self._accept_message(uow, message)
                outcome = self._engage(uow, message, event_doc)
                listing = self._create_listing(uow, message, event_doc)
                response = self._post_response(uow, message, event_doc)

        logger.info(
            "Accepted %s %s: professional %s on event %s (%s), listing %s",
            message.kind.value, message.message_id, message.receiver_id,
            message.related_event_id, outcome.value, listing.listing_id,
        )
        snapshot = event_snapshot(event_doc)
        domain_events = [RequestAccepted(message, snapshot, listing.listing_id)]
        if outcome != EngagementOutcome.EXISTING:
            domain_events.append(ProfessionalJoined(
                snapshot, message.receiver_id, message.services,
                EngagementStatus.ACCEPTED.value, source_message_id=message.message_id,
            ))
        return CommandResult(message, domain_events, listing=listing, engagement=outcome, response=response)

    def _check(self, message: Message):
        if message.receiver_id != self.actor_id:
            raise Forbidden('Only the receiver can accept this request')
        message.check_transition(MessageStatus.ACCEPTED)
        if not message.kind.creates_engagement:
            raise InvalidStateTransition(f'A {message.kind.value} message does not create an engagement')

    def _accept_message(self, uow: UnitOfWork, message: Message):
        previous_status, previous_updated_at = message.status, message.updated_at
        result = self.messages.set_status(
            message.message_id, message.version, MessageStatus.ACCEPTED.value, session=uow.session
        )
        if result.get('version_mismatch'):
            raise InvalidStateTransition('Message was changed by another request; the negotiation may be closed')
        uow.on_rollback(self.messages.restore_status, message.message_id, previous_status.value, previous_updated_at)
        message.status = MessageStatus.ACCEPTED
        message.version += 1
        message.updated_at = utc_now()

    def _engage(self, uow: UnitOfWork, message: Message, event_doc) -> EngagementOutcome:
        event_id = str(event_doc['_id'])
        professional_id = message.receiver_id
        existing = find_engagement(event_doc, professional_id)

        if existing is None:
            inserted = self.events.add_professional(
                event_id, professional_id, message.services, EngagementStatus.ACCEPTED.value,
                source_message_id=message.message_id, session=uow.session,
            )
            if inserted:
                uow.on_rollback(self.events.remove_professional, event_id, professional_id)
                return EngagementOutcome.CREATED
            # Another writer engaged the professional between our read and the insert
            existing = find_engagement(self.events.get(event_id, session=uow.session), professional_id)
            if existing is None:
                return EngagementOutcome.EXISTING

        if existing.get('status') == EngagementStatus.ACCEPTED.value:
            return EngagementOutcome.EXISTING

        previous_services = list(existing.get('services') or [])
        merged = previous_services + [s for s in message.services if s not in previous_services]
        self.events.set_professional(
            event_id, professional_id, EngagementStatus.ACCEPTED.value, merged, session=uow.session
        )
        uow.on_rollback(
            self.events.set_professional, event_id, professional_id,
            existing.get('status', EngagementStatus.PENDING.value), previous_services,
        )
        return EngagementOutcome.PROMOTED

    def _create_listing(self, uow: UnitOfWork, message: Message, event_doc) -> Listing:
        listing = Listing.from_accepted_request(message, event_doc)
        self.listings.insert(listing.to_db_doc(), session=uow.session)
        uow.on_rollback(self.listings.remove, listing.listing_id)
        return listing

    def _post_response(self, uow: UnitOfWork, message: Message, event_doc) -> Optional[Message]:
        if not self.response_messages:
            return None
        response = message.build_response(accepted=True, event_title=event_doc.get('title'))
        self.messages.insert(response.to_db_doc(), session=uow.session)
        uow.on_rollback(self.messages.remove, response.message_id)
        return response
