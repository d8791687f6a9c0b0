"""
JSON Web Token helpers for the /api/ endpoints
"""
from datetime import datetime, timedelta, timezone as dt_timezone

import jwt
from django.conf import settings


def get_jwt_secret():
    return getattr(settings, 'JWT_SECRET', None) or settings.SECRET_KEY


def generate_token(user, expires_in_hours=None):
    """Sign a token carrying the user's id, role and class"""
    if expires_in_hours is None:
        expires_in_hours = settings.JWT_EXPIRATION_HOURS
    now = datetime.now(dt_timezone.utc)
    payload = {
        'id': user.pk,
        'role': user.role,
        'class': user.class_name,
        'iat': now,
        'exp': now + timedelta(hours=expires_in_hours),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=settings.JWT_ALGORITHM)


def get_token_from_request(request):
    """
    Read the token from the request headers.

    Checks ``x-auth-token`` first, then ``Authorization`` with or without the
    ``Bearer`` prefix. Returns None when no token is present.
    """
    token = request.headers.get('x-auth-token')
    if token:
        return token.strip()

    auth_header = request.headers.get('Authorization', '')
    if not auth_header:
        return None
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip() or None
    return auth_header.strip()


def decode_token(token):
    """Verify and decode a token. Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError."""
    return jwt.decode(token, get_jwt_secret(), algorithms=[settings.JWT_ALGORITHM])


def get_user_id_from_payload(payload):
    """
    Extract the user id from the supported payload shapes:
    ``{id, role}``, ``{user: {id, role}}`` and ``{userId, role}``.
    """
    nested = payload.get('user')
    if isinstance(nested, dict):
        user_id = nested.get('id') or nested.get('_id')
    elif payload.get('id') is not None:
        user_id = payload.get('id')
    else:
        user_id = payload.get('userId')

    if user_id is None:
        raise jwt.InvalidTokenError('Invalid token format: missing required fields')
    return user_id
