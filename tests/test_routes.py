import pytest

from conftest import CATERER, ORGANIZER, OUTSIDER, PHOTOGRAPHER

pytestmark = pytest.mark.integration


def _send_hire_request(client, auth_headers, event_id):
    return client.post('/api/messages', headers=auth_headers(ORGANIZER), json={
        'receiverId': PHOTOGRAPHER,
        'type': 'hire_request',
        'content': 'Can you shoot our wedding?',
        'relatedEventId': event_id,
        'services': ['photographer'],
        'price': 500,
    })


def test_health(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'ok'


def test_requests_without_token_are_unauthorized(client):
    resp = client.get('/api/messages/conversations')
    assert resp.status_code == 401
    body = resp.get_json()
    assert body['success'] is False
    assert body['kind'] == 'unauthorized'


def test_send_validation_error_envelope(client, auth_headers):
    resp = client.post('/api/messages', headers=auth_headers(ORGANIZER), json={'receiverId': PHOTOGRAPHER, 'content': ''})
    assert resp.status_code == 400
    assert resp.get_json() == {
        'success': False, 'error': 'Message content cannot be empty', 'kind': 'validation_error',
    }


def test_non_json_body_is_rejected(client, auth_headers):
    resp = client.post('/api/messages', headers=auth_headers(ORGANIZER), data='hello')
    assert resp.status_code == 400


def test_hire_flow_over_http(client, auth_headers, event_id, db):
    sent = _send_hire_request(client, auth_headers, event_id)
    assert sent.status_code == 201
    message_id = sent.get_json()['message']['id']

    # the receiver was notified inline (async dispatch is off under test config)
    assert db.notifications.count_documents({'recipient_id': PHOTOGRAPHER, 'type': 'hire_request'}) == 1

    accepted = client.put(f'/api/messages/{message_id}/accept', headers=auth_headers(PHOTOGRAPHER))
    assert accepted.status_code == 200
    body = accepted.get_json()
    assert body['message']['status'] == 'accepted'
    assert body['listingId'] == body['listing']['id']
    assert body['engagement'] == 'created'
    assert body['responseMessage']['isResponse'] is True

    again = client.put(f'/api/messages/{message_id}/accept', headers=auth_headers(PHOTOGRAPHER))
    assert again.status_code == 409
    assert again.get_json()['kind'] == 'invalid_state_transition'
    assert db.listings.count_documents({}) == 1

    notified = db.notifications.find_one({'recipient_id': ORGANIZER, 'type': 'hire_accepted'})
    assert notified['metadata']['listing_id'] == body['listingId']
    assert db.notifications.count_documents({'recipient_id': ORGANIZER, 'type': 'professional_joined'}) == 1


def test_status_route_requires_receiver(client, auth_headers, event_id):
    message_id = _send_hire_request(client, auth_headers, event_id).get_json()['message']['id']
    resp = client.put(f'/api/messages/{message_id}/status', headers=auth_headers(ORGANIZER), json={'status': 'read'})
    assert resp.status_code == 403
    resp = client.put(f'/api/messages/{message_id}/status', headers=auth_headers(PHOTOGRAPHER), json={})
    assert resp.status_code == 400


def test_edit_delete_and_history(client, auth_headers):
    sent = client.post('/api/messages', headers=auth_headers(ORGANIZER), json={'receiverId': CATERER, 'content': 'v1'})
    message_id = sent.get_json()['message']['id']

    edited = client.put(f'/api/messages/{message_id}', headers=auth_headers(ORGANIZER), json={'content': 'v2'})
    assert edited.get_json()['message']['isEdited'] is True

    history = client.get(f'/api/messages/{message_id}/history', headers=auth_headers(CATERER)).get_json()
    assert [v['content'] for v in history['versions']] == ['v1']

    deleted = client.delete(f'/api/messages/{message_id}', headers=auth_headers(ORGANIZER)).get_json()
    assert deleted['message']['isDeleted'] is True
    assert deleted['message']['content'] == ''

    resp = client.put(f'/api/messages/{message_id}', headers=auth_headers(ORGANIZER), json={'content': 'v3'})
    assert resp.status_code == 403


def test_conversation_routes(client, auth_headers):
    for text in ('hi', 'are you free?'):
        client.post('/api/messages', headers=auth_headers(ORGANIZER), json={'receiverId': CATERER, 'content': text})

    listing = client.get('/api/messages/conversations', headers=auth_headers(CATERER)).get_json()
    assert listing['total'] == 1
    assert listing['conversations'][0]['unreadCount'] == 2

    marked = client.put(f'/api/messages/conversation/{ORGANIZER}/read', headers=auth_headers(CATERER)).get_json()
    assert marked['updated'] == 2

    thread = client.get(f'/api/messages/conversation/{ORGANIZER}', headers=auth_headers(CATERER)).get_json()
    assert [m['status'] for m in thread['messages']] == ['read', 'read']


def test_request_lists_and_check(client, auth_headers, event_id):
    message_id = _send_hire_request(client, auth_headers, event_id).get_json()['message']['id']
    sent = client.get('/api/messages/requests/sent', headers=auth_headers(ORGANIZER)).get_json()
    assert [r['id'] for r in sent['requests']] == [message_id]
    check = client.get(f'/api/messages/check-request/{PHOTOGRAPHER}/{event_id}', headers=auth_headers(ORGANIZER)).get_json()
    assert check['exists'] is True


def test_notification_routes(client, auth_headers, event_id):
    _send_hire_request(client, auth_headers, event_id)
    headers = auth_headers(PHOTOGRAPHER)

    page = client.get('/api/notifications?unread=true', headers=headers).get_json()
    assert page['unreadCount'] == 1
    notification_id = page['notifications'][0]['id']

    assert client.get('/api/notifications/unread-count', headers=headers).get_json()['count'] == 1
    assert client.put(f'/api/notifications/{notification_id}/read', headers=auth_headers(OUTSIDER)).status_code == 404
    read = client.put(f'/api/notifications/{notification_id}/read', headers=headers).get_json()
    assert read['notification']['read'] is True
    assert client.put('/api/notifications/read-all', headers=headers).get_json()['updated'] == 0
    assert client.delete(f'/api/notifications/{notification_id}', headers=headers).status_code == 200
    assert client.get('/api/notifications?limit=0', headers=headers).status_code == 400


def test_engagement_routes(client, auth_headers, event_id, db):
    forbidden = client.post(f'/api/events/{event_id}/professionals', headers=auth_headers(CATERER), json={'service': 'caterer'})
    assert forbidden.status_code == 403

    joined = client.post(
        f'/api/events/{event_id}/professionals', headers=auth_headers(CATERER, role='professional'),
        json={'service': 'caterer'},
    )
    assert joined.status_code == 201
    assert joined.get_json()['engagement']['status'] == 'pending'

    decided = client.put(
        f'/api/events/{event_id}/professionals/{CATERER}', headers=auth_headers(ORGANIZER), json={'status': 'accepted'},
    )
    assert decided.get_json()['engagement']['status'] == 'accepted'
    assert db.notifications.count_documents({'recipient_id': CATERER, 'type': 'hire_accepted'}) == 1

    patched = client.patch(f'/api/events/{event_id}', headers=auth_headers(ORGANIZER), json={'location': 'Barn'})
    assert patched.get_json()['event']['location'] == 'Barn'
    assert db.notifications.count_documents({'recipient_id': CATERER, 'type': 'event_updated'}) == 1

    cancelled = client.post(f'/api/events/{event_id}/cancel', headers=auth_headers(ORGANIZER))
    assert cancelled.get_json()['status'] == 'cancelled'
    assert client.post(f'/api/events/{event_id}/complete', headers=auth_headers(ORGANIZER)).status_code == 409


def test_presence_route(client, auth_headers):
    resp = client.get('/api/presence', headers=auth_headers(ORGANIZER))
    assert resp.status_code == 400
    body = client.get(f'/api/presence?user_ids={PHOTOGRAPHER},{CATERER}', headers=auth_headers(ORGANIZER)).get_json()
    assert body['presence'][PHOTOGRAPHER] == {'isOnline': False, 'lastSeen': None}


def test_request_timeout_header_lowers_the_deadline(app):
    from gig_server.repository.deadline import current_timeout_seconds

    with app.test_request_context('/api/messages', headers={'X-Request-Timeout': '0.5'}):
        app.preprocess_request()
        assert current_timeout_seconds() == 0.5
    with app.test_request_context('/api/messages', headers={'X-Request-Timeout': '60'}):
        app.preprocess_request()
        assert current_timeout_seconds() == 2.0
