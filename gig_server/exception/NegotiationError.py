"""Error taxonomy for negotiation, engagement and notification operations.

Each error carries a stable ``kind`` string and the HTTP status the route
layer answers with. Routes never build these responses by hand: the
``handle_errors`` decorator does it from the exception.
"""


class NegotiationError(Exception):
    kind = 'negotiation_error'
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        """Payload for the live channel's ``error`` event."""
        return {'code': self.kind.upper(), 'message': self.message}


class ValidationError(NegotiationError):
    """Malformed input; the caller must correct it and retry."""
    kind = 'validation_error'
    status_code = 400


class Forbidden(NegotiationError):
    """Actor lacks rights over the target message or engagement."""
    kind = 'forbidden'
    status_code = 403


class NotFound(NegotiationError):
    kind = 'not_found'
    status_code = 404


class InvalidStateTransition(NegotiationError):
    """Negotiation already closed, or target not reachable from the current state."""
    kind = 'invalid_state_transition'
    status_code = 409


class Timeout(NegotiationError):
    """Storage deadline exceeded. No partial effect was committed."""
    kind = 'timeout'
    status_code = 504


class DispatchFailure(NegotiationError):
    """A notification write failed. Logged by the dispatcher, never raised to callers."""
    kind = 'dispatch_failure'
    status_code = 500
