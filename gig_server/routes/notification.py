"""Notification routes.

Endpoints (/api/notifications):
- GET    /                 list, newest first (?unread=true&type=...&limit=&skip=)
- GET    /unread-count
- PUT    /<id>/read        recipient only
- PUT    /read-all
- DELETE /<id>

WebSocket events emitted: notification:count after acknowledgements.
"""
import logging

from flask import Blueprint, request

from gig_server.notification.service import get_notification_service
from gig_server.utils.decorators import handle_errors, require_auth
from gig_server.utils.helpers import respond_success, pagination_or_raise, parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


@notification_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def list_notifications(auth_payload):
    user_id = auth_payload['user_id']
    limit, skip = pagination_or_raise(request.args)
    unread_only = parse_bool(request.args.get('unread'))
    notification_type = request.args.get('type')
    logger.info(f"GET /api/notifications | user_id: {user_id}, unread: {unread_only}")
    return respond_success(get_notification_service().list_notifications(
        user_id, unread_only=unread_only, notification_type=notification_type, limit=limit, skip=skip
    ))


@notification_bp.route('/unread-count', methods=['GET'])
@handle_errors
@require_auth
def unread_count(auth_payload):
    return respond_success({'count': get_notification_service().unread_count(auth_payload['user_id'])})


@notification_bp.route('/<notification_id>/read', methods=['PUT'])
@handle_errors
@require_auth
def mark_read(notification_id, auth_payload):
    notification = get_notification_service().mark_read(auth_payload['user_id'], notification_id)
    return respond_success({'notification': notification})


@notification_bp.route('/read-all', methods=['PUT'])
@handle_errors
@require_auth
def mark_all_read(auth_payload):
    count = get_notification_service().mark_all_read(auth_payload['user_id'])
    return respond_success({'updated': count})


@notification_bp.route('/<notification_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_notification(notification_id, auth_payload):
    get_notification_service().delete(auth_payload['user_id'], notification_id)
    return respond_success({'deleted': notification_id})
