"""Centralized event emitter for real-time WebSocket communication.

The hub installs its Socket.IO instance here at startup; everything else
(dispatcher, presence tracker) emits through EventEmitter without holding a
reference to the server.

Usage:
    from gig_server.websocket.event_emitter import EventEmitter

    # Emit to every connection of a user (the user's own room)
    EventEmitter.emit_to_user(user_id, EventEmitter.NOTIFICATION_NEW, data)

    # Broadcast to all connections
    EventEmitter.broadcast(EventEmitter.STATUS_CHANGE, data)
"""
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Will be set when the WebSocket hub initializes
_socketio = None


def set_socketio(socketio_instance):
    """Set (or clear, with None) the Socket.IO instance used for emitting."""
    global _socketio
    _socketio = socketio_instance
    logger.debug("EventEmitter initialized with Socket.IO instance: %s", socketio_instance is not None)


class EventEmitter:
    """Centralized event emitter for all real-time events."""

    # Notification Events
    NOTIFICATION_NEW = 'notification:new'
    NOTIFICATION_READ = 'notification:read'
    NOTIFICATION_READ_ALL = 'notification:read_all'
    NOTIFICATION_COUNT = 'notification:count'

    # Presence Events
    STATUS_CHANGE = 'status-change'

    # Connection Events
    ERROR = 'error'
    PONG = 'pong'

    @staticmethod
    def emit_to_user(user_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Emit event to all connected devices of a user via the user's room.

        Returns:
            True if the emit was handed to Socket.IO
        """
        if not _socketio:
            logger.debug("Socket.IO not initialized, cannot emit %s to user %s", event, user_id)
            return False
        try:
            _socketio.emit(event, data, to=user_id)
            logger.debug("Emitted '%s' to user room %s", event, user_id)
            return True
        except Exception:
            logger.exception("Error emitting %s to user %s", event, user_id)
            return False

    @staticmethod
    def broadcast(event: str, data: Dict[str, Any]) -> bool:
        """Broadcast event to all connected clients."""
        if not _socketio:
            logger.warning("Socket.IO not initialized, cannot broadcast %s", event)
            return False
        try:
            _socketio.emit(event, data)
            logger.debug("Broadcast %s to all clients", event)
            return True
        except Exception:
            logger.exception("Error broadcasting %s", event)
            return False

    @classmethod
    def notify_user(cls, user_id: str, notification: Dict[str, Any]) -> bool:
        """Push a newly created notification to its recipient."""
        return cls.emit_to_user(user_id, cls.NOTIFICATION_NEW, notification)

    @classmethod
    def update_notification_count(cls, user_id: str, unread_count: int) -> bool:
        return cls.emit_to_user(user_id, cls.NOTIFICATION_COUNT, {'unread': unread_count})

    @classmethod
    def status_change(cls, user_id: str, is_online: bool, last_seen: str) -> bool:
        return cls.broadcast(cls.STATUS_CHANGE, {'userId': user_id, 'isOnline': is_online, 'lastSeen': last_seen})
