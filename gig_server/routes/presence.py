import logging

from flask import Blueprint, request

from gig_server.exception.NegotiationError import ValidationError
from gig_server.utils.decorators import handle_errors, require_auth
from gig_server.utils.helpers import respond_success, respond_error
from gig_server.websocket.hub import get_websocket_hub

logger = logging.getLogger(__name__)

presence_bp = Blueprint('presence', __name__, url_prefix='/api/presence')

MAX_USERS_PER_QUERY = 100


@presence_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def get_presence(auth_payload):
    """Online state for ?user_ids=a,b from the live registry, with persisted last-seen."""
    user_ids = [u.strip() for u in request.args.get('user_ids', '').split(',') if u.strip()]
    if not user_ids:
        raise ValidationError('user_ids is required')
    if len(user_ids) > MAX_USERS_PER_QUERY:
        raise ValidationError(f'At most {MAX_USERS_PER_QUERY} user_ids per request')
    hub = get_websocket_hub()
    if hub is None:
        return respond_error('Live channel is not running', status=503)
    return respond_success({'presence': hub.tracker.status_of(user_ids)})
