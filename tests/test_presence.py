import threading
import time
from unittest.mock import Mock

import pytest

from conftest import PHOTOGRAPHER
from gig_server.exception.UnauthorizedError import UnauthorizedError
from gig_server.repository.user_repository import UserRepository
from gig_server.utils.keyed_lock import KeyedLock
from gig_server.utils.time_utils import utc_now
from gig_server.websocket.presence import ConnectionState, PresenceTracker, SessionRegistry

pytestmark = pytest.mark.unit


@pytest.fixture
def registry():
    reg = SessionRegistry()
    reg.start()
    yield reg
    reg.stop()


@pytest.fixture
def tracker(registry, db, token):
    return PresenceTracker(registry, broadcast=Mock())


def _statuses(tracker):
    return [c.args[1] for c in tracker.broadcast.call_args_list]


def test_registry_must_be_started():
    with pytest.raises(RuntimeError):
        SessionRegistry().track('sid-1')


def test_first_connection_and_last_disconnect_broadcast_once(tracker, token):
    tracker.connect('sid-1', token(PHOTOGRAPHER))
    tracker.connect('sid-2', token(PHOTOGRAPHER))
    tracker.disconnect('sid-1')
    assert _statuses(tracker) == [True]

    tracker.disconnect('sid-2')
    assert _statuses(tracker) == [True, False]
    assert tracker.broadcast.call_args.args[0] == PHOTOGRAPHER
    assert not tracker.registry.is_online(PHOTOGRAPHER)


def test_presence_is_persisted(tracker, token, db):
    tracker.connect('sid-1', token(PHOTOGRAPHER))
    assert db.users.find_one({'user_id': PHOTOGRAPHER})['is_online'] is True
    tracker.disconnect('sid-1')
    doc = db.users.find_one({'user_id': PHOTOGRAPHER})
    assert doc['is_online'] is False
    assert doc['last_seen'] is not None


@pytest.mark.parametrize('credential', [None, '', 'garbage', 'a.b.c'])
def test_bad_credentials_are_refused_without_broadcast(tracker, credential):
    with pytest.raises(UnauthorizedError):
        tracker.connect('sid-x', credential)
    tracker.broadcast.assert_not_called()
    assert tracker.registry.connection('sid-x') is None


def test_going_offline_then_disconnect_broadcasts_offline_once(tracker, token):
    tracker.connect('sid-1', token(PHOTOGRAPHER))
    assert tracker.going_offline('sid-1') == PHOTOGRAPHER
    assert tracker.registry.connection('sid-1').state == ConnectionState.AUTHENTICATED
    tracker.disconnect('sid-1')
    assert _statuses(tracker) == [True, False]


def test_disconnect_of_unknown_sid_is_ignored(tracker):
    assert tracker.disconnect('never-seen') is None
    tracker.broadcast.assert_not_called()


def test_status_of_mixes_live_state_and_last_seen(tracker, token):
    tracker.connect('sid-1', token(PHOTOGRAPHER))
    status = tracker.status_of([PHOTOGRAPHER, 'ghost'])
    assert status[PHOTOGRAPHER]['isOnline'] is True
    assert status['ghost'] == {'isOnline': False, 'lastSeen': None}


def test_stop_drops_every_session(registry, tracker, token):
    tracker.connect('sid-1', token(PHOTOGRAPHER))
    registry.stop()
    assert not registry.running
    assert registry.online_users() == []


def test_concurrent_connections_announce_online_once(tracker, token):
    credential = token(PHOTOGRAPHER)
    barrier = threading.Barrier(10)

    def connect(n):
        barrier.wait()
        tracker.connect(f'sid-{n}', credential)

    threads = [threading.Thread(target=connect, args=(n,)) for n in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert _statuses(tracker) == [True]
    assert len(tracker.registry.sessions_of(PHOTOGRAPHER)) == 10


def test_keyed_lock_drops_idle_entries():
    locks = KeyedLock()
    with locks.hold('a'):
        with locks.hold('b'):
            assert len(locks) == 2
    assert len(locks) == 0


def test_reconnect_during_slow_offline_write_leaves_user_online(registry, token, db):
    users = UserRepository()
    persist = users.set_presence
    offline_started = threading.Event()
    release = threading.Event()

    def slow_offline(user_id, is_online, last_seen):
        if not is_online:
            offline_started.set()
            release.wait(2)
        return persist(user_id, is_online, last_seen)

    users.set_presence = slow_offline
    tracker = PresenceTracker(registry, users=users, broadcast=Mock())
    tracker.connect('sid-a', token(PHOTOGRAPHER))

    leaving = threading.Thread(target=tracker.disconnect, args=('sid-a',))
    leaving.start()
    assert offline_started.wait(2)
    joining = threading.Thread(target=tracker.connect, args=('sid-b', token(PHOTOGRAPHER)))
    joining.start()
    time.sleep(0.05)
    release.set()
    leaving.join(2)
    joining.join(2)

    assert registry.is_online(PHOTOGRAPHER)
    assert db.users.find_one({'user_id': PHOTOGRAPHER})['is_online'] is True
    assert _statuses(tracker)[-1] is True


def test_offline_announcement_is_dropped_once_user_is_back(tracker, token, db):
    tracker.connect('sid-a', token(PHOTOGRAPHER))
    tracker.registry.deactivate(PHOTOGRAPHER, 'sid-a')
    tracker.registry.activate(PHOTOGRAPHER, 'sid-b')

    tracker._announce(PHOTOGRAPHER, False, utc_now())

    assert _statuses(tracker) == [True]
    assert db.users.find_one({'user_id': PHOTOGRAPHER})['is_online'] is True
