from datetime import datetime

from flask import jsonify

from gig_server.exception.NegotiationError import ValidationError


def respond_error(message_or_dict, status=400, kind=None):
    """Return a standardized error response."""
    if isinstance(message_or_dict, dict):
        body = {'success': False, 'errors': message_or_dict}
    else:
        body = {'success': False, 'error': message_or_dict}
    if kind:
        body['kind'] = kind
    return jsonify(body), status


def respond_success(payload=None, status=200):
    if payload is None:
        payload = {}
    body = {'success': True}
    if isinstance(payload, dict):
        body.update(payload)
    else:
        body['data'] = payload
    return jsonify(body), status


def normalize_doc(obj):
    """Recursively convert BSON types (ObjectId) and datetimes to JSON-serializable values.

    - ObjectId -> str(ObjectId)
    - datetime -> ISO string
    - recursively handles dicts and lists
    Returns a new object (does not mutate input).
    """
    from bson import ObjectId

    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: normalize_doc(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_doc(v) for v in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def parse_pagination(args, default_limit=50, max_limit=100):
    errors = {}
    limit = default_limit
    skip = 0
    try:
        limit = int(args.get('limit', default_limit))
        if limit < 1 or limit > max_limit:
            errors['limit'] = f'limit must be between 1 and {max_limit}'
    except (TypeError, ValueError):
        errors['limit'] = 'limit must be an integer'
    try:
        skip = int(args.get('skip', 0))
        if skip < 0:
            errors['skip'] = 'skip must be >= 0'
    except (TypeError, ValueError):
        errors['skip'] = 'skip must be an integer'
    if errors:
        return None, None, errors
    return limit, skip, None


def pagination_or_raise(args, default_limit=50, max_limit=100):
    limit, skip, errors = parse_pagination(args, default_limit=default_limit, max_limit=max_limit)
    if errors:
        raise ValidationError('; '.join(f'{k}: {v}' for k, v in errors.items()))
    return limit, skip


def parse_bool(value, default=False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes')
