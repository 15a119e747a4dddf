"""Live presence: who is connected right now.

SessionRegistry owns the in-memory session table (user id -> connection
ids). It is created and started with the application and stopped at
shutdown; nothing else holds connection state. Changes for one user are
serialized by a per-user lock and report whether they flipped the user
online or offline.

PresenceTracker drives the connection lifecycle
(connecting -> authenticated -> active -> closed) against the registry,
and, outside the registry lock, broadcasts ``status-change`` and persists the
user's ``is_online`` / ``last_seen`` flags. Announcements for one user run one
at a time and are dropped once the registry has moved on, so the last write
always matches the live sessions.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from gig_server.exception.UnauthorizedError import UnauthorizedError
from gig_server.repository.user_repository import UserRepository
from gig_server.security.authentication import AuthSecurity, resolve_user_id
from gig_server.utils.keyed_lock import KeyedLock
from gig_server.utils.time_utils import utc_now, isoformat
from gig_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = 'connecting'
    AUTHENTICATED = 'authenticated'
    ACTIVE = 'active'
    CLOSED = 'closed'


class Connection:

    def __init__(self, sid: str):
        self.sid = sid
        self.user_id = None
        self.state = ConnectionState.CONNECTING
        self.connected_at = utc_now()


class SessionRegistry:
    """Lock-guarded table of live connections."""

    def __init__(self):
        self._guard = threading.Lock()
        self._user_locks = KeyedLock()
        self._sessions: Dict[str, Dict[str, object]] = {}
        self._connections: Dict[str, Connection] = {}
        self._running = False

    def start(self):
        with self._guard:
            self._sessions.clear()
            self._connections.clear()
            self._running = True
        logger.info("Session registry started")

    def stop(self):
        with self._guard:
            open_count = len(self._connections)
            self._sessions.clear()
            self._connections.clear()
            self._running = False
        logger.info("Session registry stopped (%d connection(s) dropped)", open_count)

    @property
    def running(self) -> bool:
        return self._running

    def track(self, sid: str) -> Connection:
        if not self._running:
            raise RuntimeError('Session registry is not running')
        connection = Connection(sid)
        with self._guard:
            self._connections[sid] = connection
        return connection

    def connection(self, sid: str) -> Optional[Connection]:
        with self._guard:
            return self._connections.get(sid)

    def forget(self, sid: str) -> Optional[Connection]:
        with self._guard:
            return self._connections.pop(sid, None)

    def activate(self, user_id: str, sid: str) -> bool:
        """Add ``sid`` to the user's sessions. True when it is the user's first live connection."""
        with self._user_locks.hold(user_id):
            with self._guard:
                sessions = self._sessions.setdefault(user_id, {})
                first = not sessions
                sessions[sid] = utc_now()
                connection = self._connections.get(sid)
                if connection is not None:
                    connection.state = ConnectionState.ACTIVE
        return first

    def deactivate(self, user_id: str, sid: str) -> bool:
        """Remove ``sid`` from the user's sessions. True when it was the user's last live connection."""
        with self._user_locks.hold(user_id):
            with self._guard:
                sessions = self._sessions.get(user_id)
                if not sessions or sid not in sessions:
                    return False
                del sessions[sid]
                if sessions:
                    return False
                del self._sessions[user_id]
                return True

    def is_online(self, user_id: str) -> bool:
        with self._guard:
            return bool(self._sessions.get(user_id))

    def sessions_of(self, user_id: str) -> List[str]:
        with self._guard:
            return list(self._sessions.get(user_id, {}))

    def online_users(self) -> List[str]:
        with self._guard:
            return [user_id for user_id, sessions in self._sessions.items() if sessions]


class PresenceTracker:

    def __init__(self, registry: SessionRegistry, users: Optional[UserRepository] = None,
                 broadcast: Optional[Callable[[str, bool, str], object]] = None,
                 authenticate: Optional[Callable[[str], dict]] = None):
        self.registry = registry
        self.users = users or UserRepository()
        self.broadcast = broadcast or EventEmitter.status_change
        self.authenticate = authenticate or AuthSecurity.decode_token
        self._announce_locks = KeyedLock()

    def connect(self, sid: str, token: Optional[str]) -> str:
        """Authenticate a new connection and make it active. Returns the user id.

        Raises UnauthorizedError (and leaves the connection closed, with no
        broadcast) when the credential is missing or invalid.
        """
        connection = self.registry.track(sid)
        try:
            if not token:
                raise UnauthorizedError('Authentication token required')
            payload = self.authenticate(token)
            user_id = resolve_user_id(payload)
            if not user_id:
                raise UnauthorizedError('Token does not identify a user')
        except UnauthorizedError:
            connection.state = ConnectionState.CLOSED
            self.registry.forget(sid)
            logger.warning("PRESENCE: rejected connection %s: invalid credential", sid)
            raise

        connection.user_id = user_id
        connection.state = ConnectionState.AUTHENTICATED
        if self.registry.activate(user_id, sid):
            self._announce(user_id, True, utc_now())
        logger.info("PRESENCE: %s connected (sid=%s)", user_id, sid)
        return user_id

    def going_offline(self, sid: str) -> Optional[str]:
        """Client says it is going away; same as a leave for presence, socket stays open."""
        connection = self.registry.connection(sid)
        if connection is None or connection.user_id is None:
            return None
        self._leave(connection)
        connection.state = ConnectionState.AUTHENTICATED
        return connection.user_id

    def disconnect(self, sid: str) -> Optional[str]:
        connection = self.registry.forget(sid)
        if connection is None:
            return None
        if connection.user_id is not None:
            self._leave(connection)
        connection.state = ConnectionState.CLOSED
        logger.info("PRESENCE: %s disconnected (sid=%s)", connection.user_id, sid)
        return connection.user_id

    def user_for(self, sid: str) -> Optional[str]:
        connection = self.registry.connection(sid)
        return connection.user_id if connection else None

    def status_of(self, user_ids) -> Dict[str, dict]:
        docs = {d.get('user_id'): d for d in self.users.find_many_by_user_ids(user_ids)}
        return {
            user_id: {
                'isOnline': self.registry.is_online(user_id),
                'lastSeen': isoformat(docs.get(user_id, {}).get('last_seen')),
            }
            for user_id in user_ids
        }

    def _leave(self, connection: Connection):
        if self.registry.deactivate(connection.user_id, connection.sid):
            self._announce(connection.user_id, False, utc_now())

    def _announce(self, user_id: str, is_online: bool, when):
        with self._announce_locks.hold(user_id):
            if self.registry.is_online(user_id) != is_online:
                # a later connect or leave flipped the user again and announces itself
                logger.debug("PRESENCE: dropped stale %s announcement for %s",
                             'online' if is_online else 'offline', user_id)
                return
            try:
                self.users.set_presence(user_id, is_online, when)
            except Exception:
                logger.exception("PRESENCE: failed to persist presence for %s", user_id)
            self.broadcast(user_id, is_online, isoformat(when))
        logger.info("PRESENCE: %s is now %s", user_id, 'online' if is_online else 'offline')
