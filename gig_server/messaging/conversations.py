"""Conversation summaries derived from the Message Store.

Nothing here writes. A conversation is the latest plain/hire_request message
exchanged with one counterpart plus the number of those messages the user
has not read yet. Request-kind messages are listed separately as sent and
received requests.
"""
from typing import Any, Dict, List, Optional

from gig_server.messaging.models import CONVERSATION_KINDS, REQUEST_KINDS, Message, MessageStatus
from gig_server.repository.deadline import storage_deadline
from gig_server.repository.message_repository import MessageRepository


def _order_key(message: Message):
    # equal timestamps fall back to insertion order via the ObjectId
    return message.created_at, message.object_id


class ConversationAggregator:

    def __init__(self, messages: Optional[MessageRepository] = None):
        self.messages = messages or MessageRepository()

    def _load(self, user_id) -> List[Message]:
        with storage_deadline():
            docs = self.messages.find_for_user(user_id)
        return [Message.from_doc(d) for d in docs]

    def list_conversations(self, user_id, messages: Optional[List[Message]] = None) -> List[Dict[str, Any]]:
        if messages is None:
            messages = self._load(user_id)

        latest = {}
        unread = {}
        for message in messages:
            if message.kind not in CONVERSATION_KINDS:
                continue
            partner_id = message.counterpart_of(user_id)
            current = latest.get(partner_id)
            if current is None or _order_key(message) > _order_key(current):
                latest[partner_id] = message
            if message.receiver_id == user_id and message.status == MessageStatus.UNREAD:
                unread[partner_id] = unread.get(partner_id, 0) + 1

        ordered = sorted(latest.items(), key=lambda item: _order_key(item[1]), reverse=True)
        return [
            {
                'partnerId': partner_id,
                'lastMessage': message.to_dict(),
                'unreadCount': unread.get(partner_id, 0),
            }
            for partner_id, message in ordered
        ]

    def _requests(self, user_id, sent: bool, messages: Optional[List[Message]] = None) -> List[Dict[str, Any]]:
        if messages is None:
            messages = self._load(user_id)
        selected = [
            m for m in messages
            if m.kind in REQUEST_KINDS and (m.sender_id == user_id) == sent
        ]
        selected.sort(key=_order_key, reverse=True)
        return [m.to_dict() for m in selected]

    def list_sent_requests(self, user_id, messages: Optional[List[Message]] = None) -> List[Dict[str, Any]]:
        return self._requests(user_id, sent=True, messages=messages)

    def list_received_requests(self, user_id, messages: Optional[List[Message]] = None) -> List[Dict[str, Any]]:
        return self._requests(user_id, sent=False, messages=messages)

    def overview(self, user_id) -> Dict[str, Any]:
        """Conversations plus both request lists from a single read."""
        messages = self._load(user_id)
        return {
            'conversations': self.list_conversations(user_id, messages),
            'sentRequests': self.list_sent_requests(user_id, messages),
            'receivedRequests': self.list_received_requests(user_id, messages),
        }


_aggregator = None


def get_conversation_aggregator() -> ConversationAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = ConversationAggregator()
    return _aggregator


def reset_conversation_aggregator():
    global _aggregator
    _aggregator = None
