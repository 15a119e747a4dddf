import os

os.environ.pop('FLASK_ENV', None)
os.environ['APP_ENV'] = 'testing'

from datetime import datetime
from types import SimpleNamespace

import mongomock
import pytest
from bson import ObjectId

from config import Config

Config.reload()

from gig_server.engagement.service import EngagementService, reset_engagement_service
from gig_server.messaging.conversations import ConversationAggregator, reset_conversation_aggregator
from gig_server.messaging.service import MessageService, reset_message_service
from gig_server.notification.dispatcher import NotificationDispatcher, reset_notification_dispatcher
from gig_server.notification.service import NotificationService, reset_notification_service
from gig_server.repository.event_repository import EventRepository
from gig_server.repository.listing_repository import ListingRepository
from gig_server.repository.message_repository import MessageRepository
from gig_server.repository.mongo_helper import MongoRepositorySingleton
from gig_server.repository.notification_repository import NotificationRepository
from gig_server.repository.user_repository import UserRepository
from gig_server.security.authentication import AuthSecurity
from gig_server.utils.keyed_lock import KeyedLock
from gig_server.websocket.event_emitter import set_socketio
from gig_server.websocket.hub import shutdown_websocket_hub

ORGANIZER = 'org-1'
PHOTOGRAPHER = 'pro-1'
CATERER = 'pro-2'
OUTSIDER = 'user-9'


def _reset_singletons():
    reset_message_service()
    reset_conversation_aggregator()
    reset_engagement_service()
    reset_notification_service()
    reset_notification_dispatcher()
    shutdown_websocket_hub()
    set_socketio(None)


@pytest.fixture(autouse=True)
def _isolate():
    AuthSecurity.configure('test-secret')
    _reset_singletons()
    yield
    _reset_singletons()
    MongoRepositorySingleton.reset()


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client['gig_test']
    MongoRepositorySingleton.set_db(database)
    yield database
    client.drop_database('gig_test')


@pytest.fixture
def token():
    def make(user_id, role=None, **claims):
        data = {'user_id': user_id, **claims}
        if role:
            data['role'] = role
        return AuthSecurity.encode_token(data)
    return make


@pytest.fixture
def auth_headers(token):
    def make(user_id, role=None):
        return {'Authorization': f'Bearer {token(user_id, role)}'}
    return make


@pytest.fixture
def users(db):
    db.users.insert_many([
        {'user_id': ORGANIZER, 'name': 'Olivia Organizer', 'role': 'organizer'},
        {'user_id': PHOTOGRAPHER, 'name': 'Pat Photographer', 'role': 'professional', 'avatar': 'pat.png'},
        {'user_id': CATERER, 'name': 'Cam Caterer', 'role': 'professional'},
    ])
    return db.users


@pytest.fixture
def event(db, users):
    doc = {
        '_id': ObjectId(),
        'title': 'Summer Wedding',
        'organizer': ORGANIZER,
        'budget': 1500.0,
        'location': 'Lakeside Hall',
        'start_date': datetime(2026, 6, 1, 14, 0),
        'end_date': datetime(2026, 6, 1, 23, 0),
        'status': 'active',
        'professionals': [],
    }
    db.events.insert_one(doc)
    return doc


@pytest.fixture
def event_id(event):
    return str(event['_id'])


@pytest.fixture
def store(db):
    """Services wired to the in-memory database, sharing one lock table."""
    messages = MessageRepository()
    events = EventRepository()
    listings = ListingRepository()
    user_repo = UserRepository()
    notifications = NotificationRepository()
    locks = KeyedLock()
    return SimpleNamespace(
        db=db,
        locks=locks,
        message_repo=messages,
        event_repo=events,
        listing_repo=listings,
        notification_repo=notifications,
        messages=MessageService(messages, events, listings, user_repo, locks, response_messages=True),
        conversations=ConversationAggregator(messages),
        engagements=EngagementService(events),
        notifications=NotificationService(notifications),
        dispatcher=NotificationDispatcher(notifications, push_enabled=False),
    )


@pytest.fixture
def hire_request(store, event_id):
    """An unread hire request from the organizer to the photographer."""
    result = store.messages.send(
        ORGANIZER, PHOTOGRAPHER, 'hire_request', 'Can you shoot our wedding?',
        {'relatedEventId': event_id, 'services': ['photographer'], 'price': 500},
    )
    return result.message


@pytest.fixture
def app(db):
    from server import create_app
    application = create_app(db=db)
    application.config['TESTING'] = True
    yield application
    shutdown_websocket_hub()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socketio(app):
    return app.extensions['gig_socketio']


@pytest.fixture
def socket_client(app, socketio, token):
    clients = []

    def connect(user_id=None, auth=None):
        if auth is None and user_id is not None:
            auth = {'token': token(user_id)}
        c = socketio.test_client(app, auth=auth)
        clients.append(c)
        return c

    yield connect
    for c in clients:
        if c.is_connected():
            c.disconnect()


def received_named(socket, name):
    return [packet['args'][0] if packet['args'] else None for packet in socket.get_received() if packet['name'] == name]
