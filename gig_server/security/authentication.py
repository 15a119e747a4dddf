from jose import jwt, JWTError
from datetime import timedelta, datetime, timezone
import time

from gig_server.exception.UnauthorizedError import UnauthorizedError


class AuthSecurity:
    """Bearer token verification for HTTP requests and socket handshakes.

    Tokens are issued by the identity service; this side only verifies them
    and resolves the payload to a user id and role. encode_token exists for
    tooling and tests.
    """
    secret_key = None
    algorithm = 'HS256'
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7*24*60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # A JWT has exactly two dots
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except JWTError as e:
            msg = str(e)
            if 'expired' in msg.lower():
                raise UnauthorizedError("Token expired. Please login again or refresh your session.")
            elif 'Not enough segments' in msg or 'Invalid header string' in msg:
                raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
            elif 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again or contact support if the problem persists.")
            else:
                raise UnauthorizedError(f"Invalid token: {msg}. Please check your authentication and try again.")

        exp = payload.get('exp')
        if exp is not None and int(float(exp)) < int(time.time()):
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        if payload.get('type') not in (None, 'access'):
            raise UnauthorizedError("Invalid token type.")
        if not resolve_user_id(payload):
            raise UnauthorizedError("Token does not identify a user.")
        return payload


def resolve_user_id(payload: dict):
    """User id carried by a decoded token (``user_id``, falling back to ``sub``)."""
    user_id = payload.get('user_id') or payload.get('userId') or payload.get('sub')
    return str(user_id) if user_id else None


def extract_bearer(header_value):
    if not header_value or not header_value.startswith('Bearer '):
        return None
    return header_value.split(' ', 1)[1].strip()


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    token = extract_bearer(request.headers.get('Authorization'))
    if not token:
        raise UnauthorizedError('Missing or invalid token')
    return AuthSecurity.decode_token(token)
