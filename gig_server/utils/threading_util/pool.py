"""Reusable thread-pool helpers for background tasks.

This module exposes a singleton ThreadPoolExecutor and convenience helpers to submit
background work (notification dispatch) without repeating executor setup logic.

Configuration:
- notification.worker_threads (NOTIFICATION_WORKER_THREADS env var) controls max_workers
  when the executor is first created (defaults to 4).

API:
- get_executor(max_workers=None) -> ThreadPoolExecutor
- submit_task(fn, *args, **kwargs) -> concurrent.futures.Future
- shutdown_executor(wait=False)
"""
from concurrent.futures import ThreadPoolExecutor
from atexit import register as _atexit_register
import threading
import logging

from config import config

logger = logging.getLogger(__name__)

_executor = None
_executor_lock = threading.Lock()


def _create_executor(max_workers=None):
    if max_workers is None:
        max_workers = config.NOTIFICATION_WORKER_THREADS
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='gig-dispatch')


def get_executor(max_workers=None):
    """Return a singleton ThreadPoolExecutor (create lazily)."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = _create_executor(max_workers=max_workers)
                _atexit_register(lambda: shutdown_executor(wait=False))
    return _executor


def submit_task(fn, *args, **kwargs):
    """Submit a callable to the shared executor and return a Future.

    Exceptions are available on the returned Future; callers can ignore
    the Future for fire-and-forget semantics.
    """
    try:
        return get_executor().submit(fn, *args, **kwargs)
    except RuntimeError:
        logger.exception('Failed to submit background task')
        raise


def shutdown_executor(wait=False):
    """Shutdown the shared executor if created."""
    global _executor
    with _executor_lock:
        exec_local = _executor
        _executor = None
    if exec_local is not None:
        exec_local.shutdown(wait=wait)
