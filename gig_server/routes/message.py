"""Message and negotiation routes.

Endpoints (/api/messages):
- GET    /                                      overview: conversations + sent/received requests
- GET    /conversations                         conversation summaries with unread counts
- GET    /requests/sent, /requests/received     request-kind messages
- POST   /                                      send a message or request
- POST   /<id>/reply                            plain reply to the other party
- PUT    /<id>                                  edit (sender only)
- DELETE /<id>                                  soft delete (sender only)
- GET    /<id>/history                          version history (participants only)
- PUT    /<id>/status                           read / accepted / rejected (receiver only)
- PUT    /<id>/accept, /<id>/reject, /<id>/read
- GET    /conversation/<partner_id>             thread with partner presence
- PUT    /conversation/<partner_id>/read        mark the conversation read
- GET    /check-request/<professional>/<event>  does a request already exist?

Notifications for state changes are dispatched after the command commits.
"""
import logging

from flask import Blueprint, request

from gig_server.exception.NegotiationError import ValidationError
from gig_server.messaging.conversations import get_conversation_aggregator
from gig_server.messaging.models import MessageStatus
from gig_server.messaging.service import get_message_service
from gig_server.notification.dispatcher import get_notification_dispatcher
from gig_server.utils.decorators import handle_errors, require_auth
from gig_server.utils.helpers import respond_success

logger = logging.getLogger(__name__)

message_bp = Blueprint('message', __name__, url_prefix='/api/messages')


def _body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _publish(result):
    get_notification_dispatcher().publish(result.events)
    return result


def _transition_response(result):
    payload = {'message': result.message.to_dict()}
    listing = result.get('listing')
    if listing is not None:
        payload['listing'] = listing.to_dict()
        payload['listingId'] = listing.listing_id
    engagement = result.get('engagement')
    if engagement is not None:
        payload['engagement'] = engagement.value
    response = result.get('response')
    if response is not None:
        payload['responseMessage'] = response.to_dict()
    return respond_success(payload)


# =============================================================================
# Read paths
# =============================================================================

@message_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def get_overview(auth_payload):
    user_id = auth_payload['user_id']
    logger.info(f"GET /api/messages | user_id: {user_id}")
    return respond_success(get_conversation_aggregator().overview(user_id))


@message_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    user_id = auth_payload['user_id']
    logger.info(f"GET /api/messages/conversations | user_id: {user_id}")
    conversations = get_conversation_aggregator().list_conversations(user_id)
    return respond_success({'conversations': conversations, 'total': len(conversations)})


@message_bp.route('/requests/sent', methods=['GET'])
@handle_errors
@require_auth
def list_sent_requests(auth_payload):
    requests = get_conversation_aggregator().list_sent_requests(auth_payload['user_id'])
    return respond_success({'requests': requests, 'total': len(requests)})


@message_bp.route('/requests/received', methods=['GET'])
@handle_errors
@require_auth
def list_received_requests(auth_payload):
    requests = get_conversation_aggregator().list_received_requests(auth_payload['user_id'])
    return respond_success({'requests': requests, 'total': len(requests)})


@message_bp.route('/conversation/<partner_id>', methods=['GET'])
@handle_errors
@require_auth
def get_thread(partner_id, auth_payload):
    user_id = auth_payload['user_id']
    logger.info(f"GET /api/messages/conversation/{partner_id} | user_id: {user_id}")
    return respond_success(get_message_service().get_thread(user_id, partner_id))


@message_bp.route('/<message_id>/history', methods=['GET'])
@handle_errors
@require_auth
def get_history(message_id, auth_payload):
    return respond_success(get_message_service().get_history(message_id, auth_payload['user_id']))


@message_bp.route('/check-request/<professional_id>/<event_id>', methods=['GET'])
@handle_errors
@require_auth
def check_request(professional_id, event_id, auth_payload):
    return respond_success(get_message_service().check_request(auth_payload['user_id'], professional_id, event_id))


# =============================================================================
# Sending and content changes
# =============================================================================

@message_bp.route('', methods=['POST'])
@handle_errors
@require_auth
def send_message(auth_payload):
    """Send a message or negotiation request.

    Request Body:
        {
            "receiverId": "user id",                 // Required
            "content": "text",                       // Required
            "type": "plain|service_request|hire_request|service_offer",
            "relatedEventId": "event id",            // Required for requests/offers
            "services": ["photographer"],            // or "service": "photographer"
            "price": 500
        }
    """
    user_id = auth_payload['user_id']
    data = _body()
    receiver_id = data.get('receiverId') or data.get('receiver_id') or data.get('receiver')
    kind = data.get('type') or data.get('kind')
    logger.info(f"POST /api/messages | user_id: {user_id}, type: {kind or 'plain'}")
    result = _publish(get_message_service().send(user_id, receiver_id, kind, data.get('content'), data))
    return respond_success({'message': result.message.to_dict()}, status=201)


@message_bp.route('/<message_id>/reply', methods=['POST'])
@handle_errors
@require_auth
def reply_to_message(message_id, auth_payload):
    data = _body()
    result = _publish(get_message_service().reply(auth_payload['user_id'], message_id, data.get('content')))
    return respond_success({'message': result.message.to_dict()}, status=201)


@message_bp.route('/<message_id>', methods=['PUT'])
@handle_errors
@require_auth
def edit_message(message_id, auth_payload):
    data = _body()
    logger.info(f"PUT /api/messages/{message_id} | user_id: {auth_payload['user_id']}")
    result = get_message_service().edit(message_id, auth_payload['user_id'], data.get('content'))
    return respond_success({'message': result.message.to_dict(include_history=True)})


@message_bp.route('/<message_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_message(message_id, auth_payload):
    logger.info(f"DELETE /api/messages/{message_id} | user_id: {auth_payload['user_id']}")
    result = get_message_service().soft_delete(message_id, auth_payload['user_id'])
    return respond_success({'message': result.message.to_dict(include_history=True)})


# =============================================================================
# Negotiation state changes
# =============================================================================

def _transition(message_id, user_id, target):
    logger.info(f"PUT /api/messages/{message_id} -> {target} | user_id: {user_id}")
    result = _publish(get_message_service().transition(message_id, user_id, target))
    return _transition_response(result)


@message_bp.route('/<message_id>/status', methods=['PUT'])
@handle_errors
@require_auth
def update_status(message_id, auth_payload):
    data = _body()
    if not data.get('status'):
        raise ValidationError('status is required')
    return _transition(message_id, auth_payload['user_id'], data['status'])


@message_bp.route('/<message_id>/accept', methods=['PUT'])
@handle_errors
@require_auth
def accept_message(message_id, auth_payload):
    return _transition(message_id, auth_payload['user_id'], MessageStatus.ACCEPTED)


@message_bp.route('/<message_id>/reject', methods=['PUT'])
@handle_errors
@require_auth
def reject_message(message_id, auth_payload):
    return _transition(message_id, auth_payload['user_id'], MessageStatus.REJECTED)


@message_bp.route('/<message_id>/read', methods=['PUT'])
@handle_errors
@require_auth
def read_message(message_id, auth_payload):
    return _transition(message_id, auth_payload['user_id'], MessageStatus.READ)


@message_bp.route('/conversation/<partner_id>/read', methods=['PUT'])
@handle_errors
@require_auth
def mark_conversation_read(partner_id, auth_payload):
    count = get_message_service().mark_conversation_read(auth_payload['user_id'], partner_id)
    return respond_success({'updated': count})
