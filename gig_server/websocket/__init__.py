"""WebSocket module for real-time communication.

This module provides:
- Socket.IO hub (connection lifecycle, own-room join/leave, notification acks)
- Presence tracking over an owned session registry
- Event Emitter used by the rest of the app to push events
"""

from gig_server.websocket.event_emitter import EventEmitter
from gig_server.websocket.hub import WebSocketHub
from gig_server.websocket.presence import PresenceTracker, SessionRegistry

__all__ = ['EventEmitter', 'WebSocketHub', 'PresenceTracker', 'SessionRegistry']
