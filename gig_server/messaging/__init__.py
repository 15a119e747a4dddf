"""Messaging: negotiable messages and conversations.

This package provides:
- Message model with kind-specific request payloads
- Message Store operations and the negotiation state machine (service)
- Conversation summaries with unread counts (conversations)
"""

from gig_server.messaging.models import (
    Message, MessageKind, MessageStatus, MessageVersion, RequestDetails, ServiceTag, CommandResult
)

__all__ = [
    'Message', 'MessageKind', 'MessageStatus', 'MessageVersion', 'RequestDetails', 'ServiceTag',
    'CommandResult',
]
