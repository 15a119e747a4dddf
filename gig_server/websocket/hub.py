"""Socket.IO hub.

Wires Flask-SocketIO events to the PresenceTracker and the notification
service. Each connection authenticates with a bearer token (``auth.token``,
the Authorization header, or ``?token=``) and is placed in a room named
after its user id; clients may only join or leave that room.
"""
import logging
from typing import Optional

from flask import Flask, request
from flask_socketio import SocketIO, ConnectionRefusedError, emit, join_room, leave_room

from gig_server.exception.NegotiationError import NegotiationError
from gig_server.exception.UnauthorizedError import UnauthorizedError
from gig_server.notification.service import get_notification_service
from gig_server.security.authentication import extract_bearer
from gig_server.utils.time_utils import utc_now, isoformat
from gig_server.websocket.event_emitter import EventEmitter, set_socketio
from gig_server.websocket.presence import PresenceTracker, SessionRegistry

logger = logging.getLogger(__name__)


def _token_from_handshake(auth) -> Optional[str]:
    if auth and isinstance(auth, dict) and auth.get('token'):
        return auth.get('token')
    token = extract_bearer(request.headers.get('Authorization'))
    if token:
        return token
    return request.args.get('token') or None


def _room_from(data) -> Optional[str]:
    if isinstance(data, dict):
        room = data.get('room') or data.get('userId') or data.get('user_id')
    else:
        room = data
    return str(room) if room else None


class WebSocketHub:
    """Owns the session registry for the lifetime of the process."""

    def __init__(self, registry: Optional[SessionRegistry] = None, tracker: Optional[PresenceTracker] = None):
        self.registry = registry or SessionRegistry()
        self.tracker = tracker or PresenceTracker(self.registry)
        self.socketio = None
        self._initialized = False

    def init_app(self, app: Flask, socketio: SocketIO):
        self.socketio = socketio
        self.app = app
        set_socketio(socketio)
        self.registry.start()
        self._register_handlers()
        app.extensions['websocket_hub'] = self
        self._initialized = True
        logger.debug("WS_HUB: initialized (mode=%s)", getattr(socketio, 'async_mode', '?'))

    def shutdown(self):
        if not self._initialized:
            return
        self.registry.stop()
        set_socketio(None)
        self._initialized = False

    def _current_user(self) -> Optional[str]:
        return self.tracker.user_for(request.sid)

    def _register_handlers(self):
        socketio = self.socketio

        @socketio.on_error_default
        def default_error_handler(e):
            logger.error("WS error: %s", e)
            emit(EventEmitter.ERROR, {'code': 'SERVER_ERROR', 'message': 'Server error'})

        # =====================================================================
        # Connection Events
        # =====================================================================

        @socketio.on('connect')
        def handle_connect(auth=None):
            token = _token_from_handshake(auth)
            try:
                user_id = self.tracker.connect(request.sid, token)
            except UnauthorizedError as e:
                raise ConnectionRefusedError({'code': 'UNAUTHORIZED', 'message': str(e)})
            join_room(user_id)
            emit('connected', {'userId': user_id, 'socketId': request.sid})
            return True

        @socketio.on('disconnect')
        def handle_disconnect(*args):
            self.tracker.disconnect(request.sid)

        @socketio.on('going-offline')
        def handle_going_offline(data=None):
            self.tracker.going_offline(request.sid)

        @socketio.on('join')
        def handle_join(data=None):
            user_id = self._current_user()
            room = _room_from(data)
            if not user_id:
                emit(EventEmitter.ERROR, {'code': 'UNAUTHORIZED', 'message': 'Not authenticated'})
                return
            if room != user_id:
                logger.warning("WS join rejected: %s tried to join %s", user_id, room)
                emit(EventEmitter.ERROR, {'code': 'FORBIDDEN', 'message': 'You can only join your own room'})
                return
            join_room(room)
            emit('joined', {'room': room})

        @socketio.on('leave')
        def handle_leave(data=None):
            user_id = self._current_user()
            room = _room_from(data)
            if not user_id or room != user_id:
                emit(EventEmitter.ERROR, {'code': 'FORBIDDEN', 'message': 'You can only leave your own room'})
                return
            leave_room(room)
            emit('left', {'room': room})

        @socketio.on('ping')
        def handle_ping(data=None):
            emit(EventEmitter.PONG, {'timestamp': isoformat(utc_now())})

        # =====================================================================
        # Notification Events
        # =====================================================================

        @socketio.on('notification:mark_read')
        def handle_notification_mark_read(data=None):
            user_id = self._current_user()
            if not user_id:
                emit(EventEmitter.ERROR, {'code': 'UNAUTHORIZED'})
                return
            notification_id = (data or {}).get('notificationId') or (data or {}).get('notification_id')
            if not notification_id:
                emit(EventEmitter.ERROR, {'code': 'INVALID_DATA', 'message': 'notificationId required'})
                return
            try:
                notification = get_notification_service().mark_read(user_id, notification_id)
            except NegotiationError as e:
                emit(EventEmitter.ERROR, e.to_dict())
                return
            emit(EventEmitter.NOTIFICATION_READ, {'notificationId': notification['id']})

        @socketio.on('notification:mark_all_read')
        def handle_notification_mark_all_read(data=None):
            user_id = self._current_user()
            if not user_id:
                emit(EventEmitter.ERROR, {'code': 'UNAUTHORIZED'})
                return
            count = get_notification_service().mark_all_read(user_id)
            emit(EventEmitter.NOTIFICATION_READ_ALL, {'count': count})


_hub = None


def get_websocket_hub() -> Optional[WebSocketHub]:
    return _hub


def init_websocket_hub(app: Flask, socketio: SocketIO, hub: Optional[WebSocketHub] = None) -> WebSocketHub:
    """Create (or take) the hub, start its registry and register handlers."""
    global _hub
    if _hub is not None:
        _hub.shutdown()
    _hub = hub or WebSocketHub()
    _hub.init_app(app, socketio)
    return _hub


def shutdown_websocket_hub():
    global _hub
    if _hub is not None:
        _hub.shutdown()
        _hub = None
