"""
Bearer Token Authentication Middleware.

Members and admins authenticate with HS256 JWTs in the Authorization header:

    Authorization: Bearer <token>

Token payload:
- sub: User ID (members) or admin email (admins)
- type: 'user' or 'admin'
- exp / iat: Expiry and issue time
"""
import logging
from datetime import datetime, timedelta
from functools import wraps

import jwt
from flask import request, g, current_app

from ..extensions import db
from ..models import User
from ..utils.errors import unauthorized, forbidden, ErrorCode

logger = logging.getLogger(__name__)

TOKEN_TYPE_USER = 'user'
TOKEN_TYPE_ADMIN = 'admin'


def create_token(subject, token_type: str = TOKEN_TYPE_USER) -> str:
    """Create a signed access token."""
    now = datetime.utcnow()
    payload = {
        'sub': str(subject),
        'type': token_type,
        'iat': now,
        'exp': now + timedelta(hours=current_app.config['JWT_ACCESS_EXPIRY_HOURS']),
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm=current_app.config['JWT_ALGORITHM']
    )


def decode_token(token: str) -> dict | None:
    """
    Decode and verify a bearer token.

    Returns:
        Decoded payload or None if invalid/expired
    """
    if not token:
        return None

    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET_KEY'],
            algorithms=[current_app.config['JWT_ALGORITHM']]
        )
    except jwt.ExpiredSignatureError:
        logger.info('Bearer token expired')
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f'Invalid bearer token: {e}')
        return None


def get_bearer_token() -> str | None:
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[7:].strip() or None


def require_user(f):
    """
    Decorator to require an authenticated, non-suspended user.

    Sets g.user and g.user_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_bearer_token()
        if not token:
            return unauthorized()

        payload = decode_token(token)
        if not payload or payload.get('type') != TOKEN_TYPE_USER:
            return unauthorized('Invalid token', ErrorCode.INVALID_TOKEN)

        try:
            user = db.session.get(User, int(payload['sub']))
        except (KeyError, TypeError, ValueError):
            user = None

        if not user:
            return unauthorized('Invalid token', ErrorCode.INVALID_TOKEN)
        if user.suspended:
            return forbidden('Account suspended', ErrorCode.ACCOUNT_SUSPENDED)

        g.user = user
        g.user_id = user.id
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Decorator to require an admin token.

    Sets g.admin to the admin identifier from the token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_bearer_token()
        if not token:
            return unauthorized()

        payload = decode_token(token)
        if not payload:
            return unauthorized('Invalid token', ErrorCode.INVALID_TOKEN)
        if payload.get('type') != TOKEN_TYPE_ADMIN:
            return forbidden('Admin access required')

        g.admin = payload.get('sub')
        return f(*args, **kwargs)

    return decorated_function
