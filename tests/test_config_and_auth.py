from datetime import timedelta
from unittest.mock import Mock

import pytest

from config import Config, config
from gig_server.exception.NegotiationError import NotFound, Timeout
from gig_server.exception.UnauthorizedError import UnauthorizedError
from gig_server.repository.unit_of_work import UnitOfWork
from gig_server.security.authentication import AuthSecurity, extract_bearer, resolve_user_id

pytestmark = pytest.mark.unit


def test_testing_environment_is_loaded():
    assert config.CURRENT_ENV == 'testing'
    assert config.STORAGE_TIMEOUT_SECONDS == 2.0
    assert config.NOTIFICATION_ASYNC_DISPATCH is False
    assert config.MONGO_DB == 'gig_db'


def test_environment_variables_win(monkeypatch):
    monkeypatch.setenv('STORAGE_TIMEOUT_SECONDS', '0.25')
    monkeypatch.setenv('NOTIFICATION_ASYNC_DISPATCH', 'yes')
    assert config.STORAGE_TIMEOUT_SECONDS == 0.25
    assert config.NOTIFICATION_ASYNC_DISPATCH is True


def test_production_requires_secrets(monkeypatch):
    monkeypatch.setenv('APP_ENV', 'production')
    monkeypatch.delenv('JWT_SECRET', raising=False)
    try:
        prod = Config.reload()
        assert prod.MONGO_TRANSACTIONS is True
        with pytest.raises(RuntimeError):
            prod.validate_required()
    finally:
        monkeypatch.setenv('APP_ENV', 'testing')
        Config.reload()


def test_token_round_trip_and_user_resolution():
    token = AuthSecurity.encode_token({'sub': 'pro-1', 'role': 'professional'})
    payload = AuthSecurity.decode_token(token)
    assert resolve_user_id(payload) == 'pro-1'


def test_expired_token_is_rejected():
    token = AuthSecurity.encode_token({'user_id': 'pro-1'}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(UnauthorizedError):
        AuthSecurity.decode_token(token)


def test_wrong_signature_and_type_are_rejected():
    foreign = AuthSecurity.encode_token({'user_id': 'pro-1'})
    AuthSecurity.configure('another-secret')
    with pytest.raises(UnauthorizedError):
        AuthSecurity.decode_token(foreign)
    refresh = AuthSecurity.encode_token({'user_id': 'pro-1', 'type': 'refresh'})
    with pytest.raises(UnauthorizedError):
        AuthSecurity.decode_token(refresh)


def test_token_without_user_is_rejected():
    with pytest.raises(UnauthorizedError):
        AuthSecurity.decode_token(AuthSecurity.encode_token({'role': 'professional'}))


def test_extract_bearer():
    assert extract_bearer('Bearer abc') == 'abc'
    assert extract_bearer('Basic abc') is None
    assert extract_bearer(None) is None


def test_unit_of_work_compensates_newest_first():
    calls = []
    with pytest.raises(Timeout):
        with UnitOfWork(use_transactions=False) as uow:
            uow.on_rollback(calls.append, 'first')
            uow.on_rollback(calls.append, 'second')
            raise Timeout('slow')
    assert calls == ['second', 'first']


def test_unit_of_work_keeps_going_when_a_compensation_fails():
    calls = []
    with pytest.raises(ValueError):
        with UnitOfWork(use_transactions=False) as uow:
            uow.on_rollback(calls.append, 'first')
            uow.on_rollback(Mock(side_effect=RuntimeError('undo failed')))
            raise ValueError('boom')
    assert calls == ['first']


def test_unit_of_work_commit_discards_compensations():
    calls = []
    with UnitOfWork(use_transactions=False) as uow:
        uow.on_rollback(calls.append, 'never')
    assert calls == []


def test_unit_of_work_uses_a_transaction_when_enabled():
    client = Mock()
    session = client.start_session.return_value
    with pytest.raises(ValueError):
        with UnitOfWork(client, use_transactions=True) as uow:
            assert uow.session is session
            uow.on_rollback(Mock())
            raise ValueError('boom')
    session.start_transaction.assert_called_once()
    session.abort_transaction.assert_called_once()
    session.commit_transaction.assert_not_called()
    session.end_session.assert_called_once()


def test_config_export_hides_secrets(monkeypatch):
    monkeypatch.setenv('JWT_SECRET', 'super-secret')
    exported = config.to_dict()
    assert exported['environment'] == 'testing'
    assert exported['security']['jwt_secret_set'] is True
    assert exported['database']['mongo_uri'] == '***'
    assert 'super-secret' not in repr(exported)


def test_negotiation_error_payload_for_the_live_channel():
    assert NotFound('Notification not found').to_dict() == {
        'code': 'NOT_FOUND', 'message': 'Notification not found',
    }
