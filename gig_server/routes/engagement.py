"""Event engagement routes.

Endpoints (/api/events):
- GET    /<event_id>/professionals                    engagements on the event
- POST   /<event_id>/professionals                    join as pending (professionals only)
- DELETE /<event_id>/professionals                    leave
- PUT    /<event_id>/professionals/<professional_id>  organizer accepts/rejects
- PATCH  /<event_id>                                  organizer updates schedule fields
- POST   /<event_id>/cancel, /<event_id>/complete     organizer closes the event
"""
import logging

from flask import Blueprint, request

from gig_server.engagement.service import get_engagement_service
from gig_server.notification.dispatcher import get_notification_dispatcher
from gig_server.utils.decorators import handle_errors, require_auth, require_role
from gig_server.utils.helpers import respond_success

logger = logging.getLogger(__name__)

engagement_bp = Blueprint('engagement', __name__, url_prefix='/api/events')


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _publish(result):
    get_notification_dispatcher().publish(result.events)
    return result


@engagement_bp.route('/<event_id>/professionals', methods=['GET'])
@handle_errors
@require_auth
def list_engagements(event_id, auth_payload):
    return respond_success({'professionals': get_engagement_service().list_engagements(event_id)})


@engagement_bp.route('/<event_id>/professionals', methods=['POST'])
@handle_errors
@require_role('professional')
def join_event(event_id, auth_payload):
    data = _body()
    user_id = auth_payload['user_id']
    logger.info(f"POST /api/events/{event_id}/professionals | user_id: {user_id}")
    result = _publish(get_engagement_service().join_event(
        user_id, event_id, service=data.get('service'), services=data.get('services')
    ))
    return respond_success({'engagement': result.get('engagement').to_dict()}, status=201)


@engagement_bp.route('/<event_id>/professionals', methods=['DELETE'])
@handle_errors
@require_auth
def leave_event(event_id, auth_payload):
    user_id = auth_payload['user_id']
    logger.info(f"DELETE /api/events/{event_id}/professionals | user_id: {user_id}")
    _publish(get_engagement_service().leave_event(user_id, event_id))
    return respond_success({'left': event_id})


@engagement_bp.route('/<event_id>/professionals/<professional_id>', methods=['PUT'])
@handle_errors
@require_auth
def decide_engagement(event_id, professional_id, auth_payload):
    data = _body()
    result = _publish(get_engagement_service().set_engagement_status(
        auth_payload['user_id'], event_id, professional_id, data.get('status')
    ))
    return respond_success({'engagement': result.get('engagement').to_dict()})


@engagement_bp.route('/<event_id>', methods=['PATCH'])
@handle_errors
@require_auth
def update_event(event_id, auth_payload):
    result = _publish(get_engagement_service().update_event(auth_payload['user_id'], event_id, _body()))
    return respond_success({'event': result.get('event')})


@engagement_bp.route('/<event_id>/cancel', methods=['POST'])
@handle_errors
@require_auth
def cancel_event(event_id, auth_payload):
    result = _publish(get_engagement_service().cancel_event(auth_payload['user_id'], event_id))
    return respond_success({'status': result.get('status')})


@engagement_bp.route('/<event_id>/complete', methods=['POST'])
@handle_errors
@require_auth
def complete_event(event_id, auth_payload):
    result = _publish(get_engagement_service().complete_event(auth_payload['user_id'], event_id))
    return respond_success({'status': result.get('status')})
