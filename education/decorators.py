"""
Decorators for token authentication, role checks and API error handling
"""
import logging
from functools import wraps

import jwt
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import JsonResponse

from .auth import get_token_from_request, decode_token, get_user_id_from_payload
from .models import CustomUser

logger = logging.getLogger(__name__)


def token_required(view_func):
    """
    Decorator to authenticate the request from its JWT.
    Sets request.user to the token's user and request.token_payload to the claims.
    Preflight OPTIONS requests pass through untouched.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if request.method == 'OPTIONS':
            return view_func(request, *args, **kwargs)

        token = get_token_from_request(request)
        if not token:
            logger.info("No token provided for %s %s", request.method, request.path)
            return JsonResponse({'success': False, 'msg': 'No token, authorization denied'}, status=401)

        try:
            payload = decode_token(token)
            user_id = get_user_id_from_payload(payload)
        except jwt.ExpiredSignatureError:
            return JsonResponse({'success': False, 'message': 'Token has expired. Please log in again.'}, status=401)
        except jwt.InvalidTokenError as e:
            logger.warning("Token verification failed: %s", e)
            return JsonResponse({'success': False, 'message': 'Invalid token. Please log in again.'}, status=401)

        try:
            user = CustomUser.objects.get(pk=user_id, is_active=True)
        except (CustomUser.DoesNotExist, ValueError, TypeError):
            return JsonResponse({'success': False, 'message': 'User not found for this token'}, status=401)

        request.user = user
        request.token_payload = payload
        return view_func(request, *args, **kwargs)
    return wrapper


def check_role(request, *roles):
    """Helper to verify the authenticated user has one of the roles; returns an error response or None"""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return JsonResponse({'success': False, 'msg': 'Not authorized to access this route'}, status=401)
    if not user.has_role(*roles):
        logger.warning("Access denied for %s (role %s); requires %s", user.email, user.role, roles)
        return JsonResponse({
            'success': False,
            'msg': f"User role '{user.role}' is not authorized to access this route",
            'requiredRoles': list(roles),
            'userRole': user.role,
        }, status=403)
    return None


def role_required(*roles):
    """Decorator to ensure the authenticated user has one of the given roles. Use under token_required."""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.method == 'OPTIONS':
                return view_func(request, *args, **kwargs)
            denied = check_role(request, *roles)
            if denied:
                return denied
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def api_error_handler(view_func):
    """
    Decorator turning uncaught errors into JSON responses.
    Validation errors become 400; anything else is logged and returned as 500
    with the error message in DEBUG and a generic message otherwise.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ValidationError as e:
            return JsonResponse({'success': False, 'error': 'Validation failed', 'details': validation_messages(e)}, status=400)
        except Exception as e:
            logger.exception("Unhandled error in %s %s", request.method, request.path)
            body = {'success': False, 'error': 'Server error'}
            if settings.DEBUG:
                body['details'] = str(e)
            return JsonResponse(body, status=500)
    return wrapper


def validation_messages(error):
    """Flatten a ValidationError into a {field: [messages]} dict or a list"""
    if hasattr(error, 'message_dict'):
        return error.message_dict
    return error.messages
