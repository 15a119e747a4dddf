"""Message Store operations and the negotiation state machine.

Mutations of one message (edit, delete, status changes) are serialized by a
per-message lock inside this process and by the ``_v`` version filter
across processes. Every state-changing method returns a CommandResult whose
``events`` the caller hands to the NotificationDispatcher.
"""
import logging
from typing import Any, Dict, Optional

from config import config
from gig_server.engagement.accept_request import AcceptRequest
from gig_server.exception.NegotiationError import Forbidden, InvalidStateTransition, NotFound, ValidationError
from gig_server.messaging.models import (
    CommandResult, Message, MessageKind, MessageStatus, MessageVersion, DELETED_PLACEHOLDER, parse_status,
)
from gig_server.notification.events import MessageSent, RequestAccepted, RequestRejected, event_snapshot
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.event_repository import EventRepository
from gig_server.repository.listing_repository import ListingRepository
from gig_server.repository.message_repository import MessageRepository
from gig_server.repository.unit_of_work import UnitOfWork
from gig_server.repository.user_repository import UserRepository
from gig_server.utils.keyed_lock import KeyedLock
from gig_server.utils.time_utils import utc_now, isoformat

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class MessageService:

    def __init__(self, messages: Optional[MessageRepository] = None,
                 events: Optional[EventRepository] = None,
                 listings: Optional[ListingRepository] = None,
                 users: Optional[UserRepository] = None,
                 locks: Optional[KeyedLock] = None,
                 client=None,
                 response_messages: Optional[bool] = None):
        self.messages = messages or MessageRepository()
        self.events = events or EventRepository()
        self.listings = listings or ListingRepository()
        self.users = users or UserRepository()
        self.locks = locks or KeyedLock()
        self.client = client if client is not None else self.messages.collection.database.client
        if response_messages is None:
            response_messages = config.RESPONSE_MESSAGES_ENABLED
        self.response_messages = response_messages

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_message(self, message_id) -> Message:
        with storage_deadline():
            doc = self.messages.get(message_id)
        if not doc:
            raise NotFound('Message not found')
        return Message.from_doc(doc)

    def get_history(self, message_id, actor_id) -> Dict[str, Any]:
        message = self.get_message(message_id)
        if not message.is_participant(actor_id):
            raise Forbidden('Only the sender or receiver can view message history')
        return {
            'messageId': message.message_id,
            'currentContent': message.content,
            'isEdited': message.is_edited,
            'isDeleted': message.is_deleted,
            'versions': [v.to_dict() for v in message.versions],
        }

    def get_thread(self, user_id, partner_id) -> Dict[str, Any]:
        with storage_deadline():
            docs = self.messages.find_between(user_id, partner_id)
            partner = self.users.get_by_user_id(partner_id) or {}
        return {
            'messages': [Message.from_doc(d).to_dict() for d in docs],
            'partner': {
                'id': partner_id,
                'name': partner.get('name'),
                'avatar': partner.get('avatar'),
                'isOnline': bool(partner.get('is_online', False)),
                'lastSeen': isoformat(partner.get('last_seen')),
            },
        }

    def check_request(self, sender_id, professional_id, event_id) -> Dict[str, Any]:
        with storage_deadline():
            doc = self.messages.find_request(sender_id, professional_id, event_id)
        if not doc:
            return {'exists': False, 'status': None, 'messageId': None}
        return {'exists': True, 'status': doc.get('status'), 'messageId': str(doc['_id']), 'type': doc.get('kind')}

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, sender_id, receiver_id, kind, content, attrs: Optional[Dict[str, Any]] = None) -> CommandResult:
        message = Message.build(sender_id, receiver_id, kind, content, attrs)
        if message.parent_message_id:
            with storage_deadline():
                parent = self.messages.get(message.parent_message_id)
            if not parent:
                raise NotFound('Parent message not found')
            if message.sender_id not in (parent.get('sender_id'), parent.get('receiver_id')):
                raise Forbidden('Only a participant can thread under this message')
        event_doc = None
        if message.kind.is_negotiable:
            with storage_deadline():
                event_doc = self.events.get(message.related_event_id)
            if not event_doc:
                raise NotFound('Related event not found')
        with storage_deadline():
            self.messages.insert(message.to_db_doc())
        logger.info("Message %s (%s) sent %s -> %s", message.message_id, message.kind.value, sender_id, receiver_id)
        return CommandResult(message, [MessageSent(message, event_snapshot(event_doc))])

    def reply(self, user_id, message_id, content) -> CommandResult:
        original = self.get_message(message_id)
        if not original.is_participant(user_id):
            raise Forbidden('Only the sender or receiver can reply to this message')
        return self.send(
            user_id, original.counterpart_of(user_id), MessageKind.PLAIN, content,
            {'parent_message_id': original.message_id},
        )

    # ------------------------------------------------------------------
    # Content mutations (sender only)
    # ------------------------------------------------------------------

    def edit(self, message_id, editor_id, content) -> CommandResult:
        content = content.strip() if isinstance(content, str) else ''
        if not content:
            raise ValidationError('Message content cannot be empty')

        def build_update(message: Message):
            if message.sender_id != editor_id:
                raise Forbidden('Only the sender can edit this message')
            if message.is_deleted:
                raise Forbidden('Deleted messages cannot be edited')
            now = utc_now()
            return {
                '$set': {'content': content, 'is_edited': True, 'updated_at': now},
                '$push': {'versions': MessageVersion(message.content, now, editor_id).to_db_doc()},
            }

        message = self._write_with_retry(message_id, build_update)
        logger.info("Message %s edited by %s (%d versions)", message_id, editor_id, len(message.versions))
        return CommandResult(message)

    def soft_delete(self, message_id, actor_id) -> CommandResult:
        def build_update(message: Message):
            if message.sender_id != actor_id:
                raise Forbidden('Only the sender can delete this message')
            if message.is_deleted:
                raise Forbidden('Message is already deleted')
            now = utc_now()
            return {
                '$set': {
                    'content': DELETED_PLACEHOLDER,
                    'is_deleted': True,
                    'deleted_at': now,
                    'deleted_by': actor_id,
                    'updated_at': now,
                },
                '$push': {'versions': MessageVersion(message.content, now, actor_id).to_db_doc()},
            }

        message = self._write_with_retry(message_id, build_update)
        logger.info("Message %s deleted by %s", message_id, actor_id)
        return CommandResult(message)

    def _write_with_retry(self, message_id, build_update) -> Message:
        with self.locks.hold(str(message_id)):
            for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
                message = self.get_message(message_id)
                update_doc = build_update(message)
                with storage_deadline():
                    result = self.messages.update_versioned(message.message_id, message.version, update_doc)
                if not result.get('version_mismatch'):
                    return self.get_message(message_id)
                logger.info("Version conflict writing message %s (attempt %d)", message_id, attempt)
        raise InvalidStateTransition('Message is being modified concurrently; try again')

    # ------------------------------------------------------------------
    # Status transitions (receiver only)
    # ------------------------------------------------------------------

    def accept_command(self, message_id, actor_id) -> AcceptRequest:
        return AcceptRequest(
            message_id, actor_id,
            messages=self.messages, events=self.events, listings=self.listings,
            locks=self.locks, client=self.client, response_messages=self.response_messages,
        )

    def transition(self, message_id, actor_id, target) -> CommandResult:
        target = parse_status(target)
        if target == MessageStatus.UNREAD:
            raise InvalidStateTransition('Messages cannot be moved back to unread')

        with self.locks.hold(str(message_id)):
            message = self.get_message(message_id)
            if message.receiver_id != actor_id:
                raise Forbidden('Only the receiver can change the status of this message')

            if target == MessageStatus.ACCEPTED and message.kind.creates_engagement:
                return self.accept_command(message_id, actor_id).apply(message)

            if message.check_transition(target):
                return CommandResult(message)

            event_doc = None
            if message.kind.is_negotiable and target != MessageStatus.READ:
                with storage_deadline():
                    event_doc = self.events.get(message.related_event_id)

            previous_status, previous_updated_at = message.status, message.updated_at
            response = None
            with UnitOfWork(self.client) as uow:
                with storage_deadline():
                    result = self.messages.set_status(
                        message.message_id, message.version, target.value, session=uow.session
                    )
                    if result.get('version_mismatch'):
                        raise InvalidStateTransition('Message was changed by another request; the negotiation may be closed')
                    uow.on_rollback(
                        self.messages.restore_status, message.message_id, previous_status.value, previous_updated_at
                    )
                    if target != MessageStatus.READ and self.response_messages:
                        response = message.build_response(
                            accepted=target == MessageStatus.ACCEPTED,
                            event_title=(event_doc or {}).get('title'),
                        )
                        self.messages.insert(response.to_db_doc(), session=uow.session)
                        uow.on_rollback(self.messages.remove, response.message_id)

            message = self.get_message(message_id)

        logger.info("Message %s moved %s -> %s by %s", message_id, previous_status.value, target.value, actor_id)
        snapshot = event_snapshot(event_doc)
        domain_events = []
        if target == MessageStatus.ACCEPTED:
            domain_events.append(RequestAccepted(message, snapshot))
        elif target == MessageStatus.REJECTED:
            domain_events.append(RequestRejected(message, snapshot))
        return CommandResult(message, domain_events, response=response)

    def mark_conversation_read(self, user_id, counterpart_id) -> int:
        if not counterpart_id or counterpart_id == user_id:
            raise ValidationError('A conversation needs a different counterpart')
        with storage_deadline():
            count = self.messages.mark_read_from(user_id, counterpart_id)
        logger.info("Marked %d message(s) from %s read for %s", count, counterpart_id, user_id)
        return count


_service = None


def get_message_service() -> MessageService:
    global _service
    if _service is None:
        _service = MessageService()
    return _service


def reset_message_service():
    global _service
    _service = None
