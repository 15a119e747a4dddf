import pytest

from conftest import CATERER, ORGANIZER, PHOTOGRAPHER, received_named
from gig_server.notification.events import Notice
from gig_server.notification.dispatcher import NotificationDispatcher
from gig_server.websocket.hub import get_websocket_hub

pytestmark = pytest.mark.integration


def test_connect_without_token_is_refused(socket_client):
    client = socket_client(auth={})
    assert not client.is_connected()
    assert get_websocket_hub().registry.online_users() == []


def test_connect_with_bad_token_is_refused(socket_client):
    client = socket_client(auth={'token': 'not-a-jwt'})
    assert not client.is_connected()


def test_connect_activates_presence_and_greets(socket_client):
    client = socket_client(PHOTOGRAPHER)
    assert client.is_connected()
    [greeting] = received_named(client, 'connected')
    assert greeting['userId'] == PHOTOGRAPHER
    assert get_websocket_hub().registry.is_online(PHOTOGRAPHER)

    client.disconnect()
    assert not get_websocket_hub().registry.is_online(PHOTOGRAPHER)


def test_other_clients_see_status_changes(socket_client):
    watcher = socket_client(ORGANIZER)
    watcher.get_received()

    pro = socket_client(PHOTOGRAPHER)
    pro.disconnect()

    changes = [c for c in received_named(watcher, 'status-change') if c['userId'] == PHOTOGRAPHER]
    assert [c['isOnline'] for c in changes] == [True, False]


def test_join_is_limited_to_own_room(socket_client):
    client = socket_client(PHOTOGRAPHER)
    client.get_received()

    client.emit('join', {'room': ORGANIZER})
    [error] = received_named(client, 'error')
    assert error['code'] == 'FORBIDDEN'

    client.emit('join', {'room': PHOTOGRAPHER})
    [joined] = received_named(client, 'joined')
    assert joined == {'room': PHOTOGRAPHER}


def test_leave_is_limited_to_own_room(socket_client):
    client = socket_client(PHOTOGRAPHER)
    client.get_received()
    client.emit('leave', {'room': CATERER})
    [error] = received_named(client, 'error')
    assert error['code'] == 'FORBIDDEN'


def test_ping_answers_pong(socket_client):
    client = socket_client(PHOTOGRAPHER)
    client.get_received()
    client.emit('ping')
    [pong] = received_named(client, 'pong')
    assert 'timestamp' in pong


def test_going_offline_keeps_socket_open(socket_client):
    client = socket_client(PHOTOGRAPHER)
    client.emit('going-offline')
    assert client.is_connected()
    assert not get_websocket_hub().registry.is_online(PHOTOGRAPHER)


def test_notifications_are_pushed_to_the_recipient_room(socket_client, db):
    recipient = socket_client(CATERER)
    bystander = socket_client(ORGANIZER)
    recipient.get_received()
    bystander.get_received()

    NotificationDispatcher(push_enabled=True).dispatch([Notice(CATERER, 'system_update', {'text': 'hello'})])

    [pushed] = received_named(recipient, 'notification:new')
    assert pushed['message'] == 'hello'
    assert received_named(bystander, 'notification:new') == []


def test_mark_read_over_the_socket(socket_client, db):
    [notification_id] = NotificationDispatcher(push_enabled=False).dispatch(
        [Notice(CATERER, 'system_update', {'text': 'hello'})]
    )
    client = socket_client(CATERER)
    client.get_received()

    client.emit('notification:mark_read', {'notificationId': notification_id})
    received = client.get_received()
    names = [p['name'] for p in received]
    assert 'notification:read' in names
    assert 'notification:count' in names

    client.emit('notification:mark_read', {'notificationId': 'missing'})
    [error] = received_named(client, 'error')
    assert error['code'] == 'NOT_FOUND'


def test_mark_all_read_over_the_socket(socket_client, db):
    NotificationDispatcher(push_enabled=False).dispatch([
        Notice(CATERER, 'system_update', {'text': 'one'}),
        Notice(CATERER, 'system_update', {'text': 'two'}),
    ])
    client = socket_client(CATERER)
    client.get_received()
    client.emit('notification:mark_all_read')
    [done] = received_named(client, 'notification:read_all')
    assert done == {'count': 2}
