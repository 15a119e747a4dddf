"""All-or-nothing grouping of writes across collections.

With transactions enabled (``database.transactions``, which needs a replica
set) the writes share one ClientSession transaction and are aborted together.
Without them each applied write registers a compensating step with
``on_rollback``; on failure the steps run newest first.

Usage:
    with UnitOfWork(client) as uow:
        messages.set_status(..., session=uow.session)
        uow.on_rollback(messages.set_status, ..., previous)
"""
import logging

from pymongo.errors import PyMongoError

from config import config

logger = logging.getLogger(__name__)


class UnitOfWork:

    def __init__(self, client=None, use_transactions=None):
        self.client = client
        if use_transactions is None:
            use_transactions = config.MONGO_TRANSACTIONS
        self.use_transactions = bool(use_transactions and client is not None)
        self.session = None
        self._undo = []

    def __enter__(self):
        if self.use_transactions:
            self.session = self.client.start_session()
            self.session.start_transaction()
        return self

    def on_rollback(self, fn, *args, **kwargs):
        """Register a compensating step; ignored when a transaction is active."""
        if self.session is None:
            self._undo.append((fn, args, kwargs))

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._commit()
        else:
            logger.warning("Rolling back unit of work after %s: %s", exc_type.__name__, exc)
            self._rollback()
        return False

    def _commit(self):
        self._undo.clear()
        if self.session is None:
            return
        try:
            self.session.commit_transaction()
        finally:
            self.session.end_session()

    def _rollback(self):
        if self.session is not None:
            try:
                self.session.abort_transaction()
            except PyMongoError:
                logger.exception('Failed to abort transaction')
            finally:
                self.session.end_session()
            return
        while self._undo:
            fn, args, kwargs = self._undo.pop()
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception('Compensation step %s failed', getattr(fn, '__name__', fn))
