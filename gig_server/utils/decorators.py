"""Route decorators for error handling, authentication and request deadlines.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request

from gig_server.exception.NegotiationError import NegotiationError
from gig_server.exception.UnauthorizedError import UnauthorizedError
from gig_server.security.authentication import get_auth_payload, resolve_user_id
from gig_server.utils.helpers import respond_error

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to handle common exceptions in route handlers.

    Catches:
    - NegotiationError -> its status_code, with the error kind in the body
    - UnauthorizedError -> 401
    - ValueError -> 400
    - Other exceptions -> 500

    Usage:
        @bp.route('/example')
        @handle_errors
        def example_route():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except NegotiationError as e:
            if e.status_code >= 500:
                logger.error("%s in %s: %s", e.kind, func.__name__, e.message)
            else:
                logger.info("%s in %s: %s", e.kind, func.__name__, e.message)
            return respond_error(e.message, status=e.status_code, kind=e.kind)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401, kind='unauthorized')
        except ValueError as e:
            logger.warning("Validation error: %s", e)
            return respond_error(str(e), status=400, kind='validation_error')
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` (the decoded token, with
    `user_id` normalized) as a keyword argument.

    Usage:
        @bp.route('/protected')
        @handle_errors
        @require_auth
        def protected_route(auth_payload):
            user_id = auth_payload['user_id']
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = dict(get_auth_payload(request))
        payload['user_id'] = resolve_user_id(payload)
        kwargs['auth_payload'] = payload
        return func(*args, **kwargs)
    return wrapper


def require_role(*required_roles: str) -> Callable:
    """Decorator to require one of the given roles (`role` or `roles` claim).

    Usage:
        @bp.route('/professionals-only')
        @handle_errors
        @require_role('professional')
        def route(auth_payload):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            payload = dict(get_auth_payload(request))
            payload['user_id'] = resolve_user_id(payload)
            user_roles = payload.get('roles') or ([payload['role']] if payload.get('role') else [])

            if not any(role in user_roles for role in required_roles):
                logger.warning("Access denied: required roles %s, user has %s", required_roles, user_roles)
                return respond_error('Insufficient permissions', status=403, kind='forbidden')

            kwargs['auth_payload'] = payload
            return func(*args, **kwargs)
        return wrapper
    return decorator
