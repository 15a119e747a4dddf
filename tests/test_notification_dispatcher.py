from unittest.mock import Mock, patch

import pytest
from pymongo.errors import ExecutionTimeout

from conftest import CATERER, ORGANIZER, PHOTOGRAPHER
from gig_server.messaging.models import Message
from gig_server.notification.dispatcher import NotificationDispatcher
from gig_server.notification.events import (
    EventCancelled, EventUpdated, MessageSent, Notice, ProfessionalJoined, RequestAccepted, RequestRejected,
)
from gig_server.notification.models import NotificationType, render

pytestmark = pytest.mark.unit

EVENT = {
    'event_id': 'e1',
    'title': 'Summer Wedding',
    'organizer_id': ORGANIZER,
    'professional_ids': [PHOTOGRAPHER, CATERER],
}


def _request(kind='hire_request', services=('photographer',)):
    return Message.build(ORGANIZER, PHOTOGRAPHER, kind, 'Interested?', {
        'relatedEventId': 'e1', 'services': list(services), 'price': 500,
    })


def test_plain_message_notifies_receiver_with_preview():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    message = Message.build(ORGANIZER, PHOTOGRAPHER, 'plain', 'x' * 150)
    [notification] = dispatcher.plan(MessageSent(message))
    assert notification.recipient_id == PHOTOGRAPHER
    assert notification.type == NotificationType.MESSAGE_RECEIVED
    assert notification.metadata['preview'] == 'x' * 100
    assert notification.message == 'x' * 100


def test_hire_request_maps_to_hire_request_notification():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    [notification] = dispatcher.plan(MessageSent(_request(), EVENT))
    assert notification.type == NotificationType.HIRE_REQUEST
    assert notification.message == 'You have received a hire request for "Summer Wedding"'
    assert notification.related_event_id == 'e1'


def test_service_offer_maps_to_service_request_with_kind():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    [notification] = dispatcher.plan(MessageSent(_request('service_offer'), EVENT))
    assert notification.type == NotificationType.SERVICE_REQUEST
    assert notification.metadata['kind'] == 'service_offer'


def test_decisions_notify_the_requester():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    message = _request('service_request', ('photographer', 'videographer'))

    [accepted] = dispatcher.plan(RequestAccepted(message, EVENT, listing_id='L1'))
    [rejected] = dispatcher.plan(RequestRejected(message, EVENT))

    assert accepted.recipient_id == ORGANIZER
    assert accepted.type == NotificationType.SERVICE_ACCEPTED
    assert accepted.metadata['listing_id'] == 'L1'
    assert accepted.message == 'Your photographer, videographer request for "Summer Wedding" has been accepted'
    assert rejected.type == NotificationType.SERVICE_REJECTED


def test_professional_joined_notifies_organizer():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    [notification] = dispatcher.plan(ProfessionalJoined(EVENT, CATERER, ['caterer'], 'pending'))
    assert notification.recipient_id == ORGANIZER
    assert notification.type == NotificationType.PROFESSIONAL_JOINED
    assert notification.metadata['professional_id'] == CATERER


def test_event_changes_fan_out_to_everyone_but_the_actor():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    updated = dispatcher.plan(EventUpdated(EVENT, ORGANIZER, ['location']))
    cancelled = dispatcher.plan(EventCancelled(EVENT, ORGANIZER))
    assert sorted(n.recipient_id for n in updated) == [PHOTOGRAPHER, CATERER]
    assert {n.type for n in cancelled} == {NotificationType.EVENT_CANCELLED}
    assert updated[0].metadata['changes'] == ['location']


def test_notice_accepts_any_type():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    [notification] = dispatcher.plan(Notice(CATERER, 'payment_received', {'amount': '$200', 'extra': 'dropped'}))
    assert notification.message == 'You have received a payment of $200'
    assert notification.metadata == {'amount': '$200'}


def test_render_tolerates_missing_metadata():
    title, message = render(NotificationType.SERVICE_REQUEST, {})
    assert title == 'New Service Request'
    assert message == 'You have received a new  request for ""'


def test_dispatch_persists_and_returns_ids(store):
    ids = store.dispatcher.dispatch([EventUpdated(EVENT, ORGANIZER, ['title'])])
    assert len(ids) == 2
    assert store.db.notifications.count_documents({'type': 'event_updated', 'read': False}) == 2


def test_failed_write_does_not_stop_other_recipients():
    notifications = Mock()
    notifications.create.side_effect = [RuntimeError('write failed'), 'ok']
    dispatcher = NotificationDispatcher(notifications=notifications, push_enabled=False)

    ids = dispatcher.dispatch([EventCancelled(EVENT, ORGANIZER)])

    assert len(ids) == 1
    assert notifications.create.call_count == 2


def test_timed_out_write_is_skipped_not_raised():
    notifications = Mock()
    notifications.create.side_effect = [ExecutionTimeout('operation exceeded time limit', 50), 'ok']
    dispatcher = NotificationDispatcher(notifications=notifications, push_enabled=False)

    ids = dispatcher.dispatch([EventCancelled(EVENT, ORGANIZER)])

    assert len(ids) == 1
    assert notifications.create.call_count == 2


def test_unmappable_event_is_skipped():
    notifications = Mock()
    dispatcher = NotificationDispatcher(notifications=notifications, push_enabled=False)
    broken = MessageSent(Mock(kind='not-a-kind'))
    ids = dispatcher.dispatch([broken, EventCancelled(EVENT, ORGANIZER)])
    assert len(ids) == 2


def test_push_goes_to_recipient_room():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=True)
    with patch('gig_server.notification.dispatcher.EventEmitter.notify_user') as notify:
        dispatcher.dispatch([ProfessionalJoined(EVENT, CATERER, ['caterer'], 'pending')])
    notify.assert_called_once()
    assert notify.call_args[0][0] == ORGANIZER
    assert notify.call_args[0][1]['type'] == 'professional_joined'


def test_publish_runs_inline_in_tests():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    assert dispatcher.publish([EventCancelled(EVENT, ORGANIZER)]) != []


def test_dispatch_async_uses_the_pool():
    dispatcher = NotificationDispatcher(notifications=Mock(), push_enabled=False)
    future = dispatcher.dispatch_async([EventCancelled(EVENT, ORGANIZER)])
    assert len(future.result(timeout=5)) == 2
    assert dispatcher.dispatch_async([]) is None
