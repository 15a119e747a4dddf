class UnauthorizedError(Exception):
    """Raised when a bearer token is missing, malformed, expired or has a bad signature."""
    def __init__(self, message):
        super().__init__(message)
