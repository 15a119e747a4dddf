from unittest.mock import Mock, patch

import pytest
from freezegun import freeze_time
from pymongo.errors import ExecutionTimeout

from conftest import CATERER, ORGANIZER, PHOTOGRAPHER
from gig_server.exception.NegotiationError import NotFound, Timeout, ValidationError
from gig_server.notification.events import Notice
from gig_server.notification.service import NotificationService

pytestmark = pytest.mark.unit


def _seed(store, recipient=PHOTOGRAPHER, count=3):
    ids = []
    with freeze_time('2026-05-01 09:00:00') as clock:
        for i in range(count):
            ids.extend(store.dispatcher.dispatch([Notice(recipient, 'system_update', {'text': f'update {i}'})]))
            clock.tick(1)
    return ids


def test_list_is_newest_first_with_unread_count(store):
    ids = _seed(store)
    _seed(store, recipient=CATERER, count=1)

    page = store.notifications.list_notifications(PHOTOGRAPHER)
    assert [n['id'] for n in page['notifications']] == list(reversed(ids))
    assert page['total'] == 3
    assert page['unreadCount'] == 3
    assert page['notifications'][0]['message'] == 'update 2'


def test_list_filters_and_paginates(store):
    ids = _seed(store, count=4)
    store.dispatcher.dispatch([Notice(PHOTOGRAPHER, 'payment_received', {'amount': '$10'})])

    page = store.notifications.list_notifications(PHOTOGRAPHER, notification_type='system_update', limit=2, skip=1)
    assert [n['id'] for n in page['notifications']] == [ids[2], ids[1]]
    assert page['total'] == 4

    with pytest.raises(ValidationError):
        store.notifications.list_notifications(PHOTOGRAPHER, notification_type='telegram')


def test_mark_read_is_recipient_only(store):
    [notification_id] = _seed(store, count=1)
    with pytest.raises(NotFound):
        store.notifications.mark_read(ORGANIZER, notification_id)

    with patch('gig_server.notification.service.EventEmitter.update_notification_count') as count:
        updated = store.notifications.mark_read(PHOTOGRAPHER, notification_id)
        store.notifications.mark_read(PHOTOGRAPHER, notification_id)

    assert updated['read'] is True
    assert updated['readAt'] is not None
    count.assert_called_once_with(PHOTOGRAPHER, 0)


def test_mark_all_read_returns_count(store):
    _seed(store, count=3)
    assert store.notifications.mark_all_read(PHOTOGRAPHER) == 3
    assert store.notifications.mark_all_read(PHOTOGRAPHER) == 0
    assert store.notifications.unread_count(PHOTOGRAPHER) == 0


def test_delete_is_recipient_only(store):
    [notification_id] = _seed(store, count=1)
    with pytest.raises(NotFound):
        store.notifications.delete(CATERER, notification_id)
    store.notifications.delete(PHOTOGRAPHER, notification_id)
    with pytest.raises(NotFound):
        store.notifications.delete(PHOTOGRAPHER, notification_id)


def test_unknown_id_is_not_found(store):
    with pytest.raises(NotFound):
        store.notifications.mark_read(PHOTOGRAPHER, 'nope')


@pytest.mark.parametrize('call', [
    lambda service: service.list_notifications(PHOTOGRAPHER),
    lambda service: service.mark_read(PHOTOGRAPHER, '64b7f0000000000000000000'),
    lambda service: service.mark_all_read(PHOTOGRAPHER),
])
def test_storage_timeout_surfaces_as_timeout(call):
    repo = Mock()
    slow = ExecutionTimeout('operation exceeded time limit', 50)
    repo.list_for.side_effect = slow
    repo.get_for.side_effect = slow
    repo.mark_all_read.side_effect = slow
    with pytest.raises(Timeout):
        call(NotificationService(notifications=repo))
