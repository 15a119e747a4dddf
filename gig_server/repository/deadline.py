"""Storage deadlines.

Every storage call a command makes runs inside ``storage_deadline()``. The
budget is ``storage.timeout_seconds``, lowered per request by the
``X-Request-Timeout`` header (seconds). A server-side or network timeout is
reported as ``Timeout``; any open unit of work rolls back on the way out.
"""
import logging
from contextlib import contextmanager

import pymongo
from flask import g, has_request_context
from pymongo.errors import PyMongoError

from config import config
from gig_server.exception.NegotiationError import Timeout

logger = logging.getLogger(__name__)


def current_timeout_seconds() -> float:
    seconds = config.STORAGE_TIMEOUT_SECONDS
    if has_request_context():
        requested = g.get('storage_timeout')
        if requested:
            seconds = min(seconds, requested)
    return seconds


@contextmanager
def storage_deadline(seconds=None):
    if seconds is None:
        seconds = current_timeout_seconds()
    try:
        with pymongo.timeout(seconds):
            yield
    except PyMongoError as exc:
        if getattr(exc, 'timeout', False):
            logger.warning("Storage deadline of %ss exceeded: %s", seconds, exc)
            raise Timeout(f'Storage deadline of {seconds}s exceeded') from exc
        raise
