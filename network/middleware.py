"""
================================================================================
SOCIALNET - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description Bearer-token authentication and the API error boundary
@version     1.0.0

MODULE PURPOSE
================================================================================
1. BearerTokenMiddleware
   - Resolves "Authorization: Bearer <jwt>" to request.user
   - Answers 401 straight away for a malformed, expired or forged token
   - Ignores session cookies on /api/ paths

2. ApiExceptionMiddleware
   - Outermost error boundary for /api/ requests
   - Turns domain errors into {"error": message} with their status

3. QueryTokenAuthMiddleware (ASGI, websocket)
   - Resolves "?access_token=<jwt>" to scope["user"]
   - Anonymous connections are refused by ChatConsumer

ERROR MAPPING
================================================================================
    NetworkError subclasses   their own status (400/401/403/404/409)
    Http404                   404
    PermissionDenied          403
    IntegrityError            409, generic message, detail only logged
    anything else             500, traceback logged

No request is retried.

ORDER IN settings.MIDDLEWARE
================================================================================
    ... AuthenticationMiddleware
    network.middleware.BearerTokenMiddleware
    network.middleware.ApiExceptionMiddleware

================================================================================
"""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from django.core.exceptions import PermissionDenied
from django.db import IntegrityError
from django.http import Http404, JsonResponse

from .auth import TokenService
from .exceptions import AuthenticationFailed, Conflict, Forbidden, NetworkError, NotFound


logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
INTERNAL_ERROR = "An internal server error occurred."


def _bearer_token(request):
    header = request.headers.get("Authorization", "")
    if not header:
        return None
    parts = header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1]


# ============================================================================
# BEARER TOKEN AUTHENTICATION
# ============================================================================

class BearerTokenMiddleware:
    """
    Authenticate API calls from the Authorization header.

    Under /api/ the bearer token is the only credential: the session user is
    replaced by AnonymousUser, so an admin-site cookie never authenticates an
    API call. Other paths keep the session user (the admin site).
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        token = _bearer_token(request)

        if request.path.startswith(API_PREFIX):
            request.user = AnonymousUser()

        if token is not None:
            try:
                if not token:
                    raise AuthenticationFailed("Invalid authorization header format.")
                request.user = TokenService.from_settings().resolve_user(token)
            except AuthenticationFailed as e:
                return JsonResponse({"error": e.message}, status=e.status_code)

        return self.get_response(request)


# ============================================================================
# API ERROR BOUNDARY
# ============================================================================

class ApiExceptionMiddleware:
    """Convert exceptions raised by /api/ views into JSON error responses."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not request.path.startswith(API_PREFIX):
            return None

        if isinstance(exception, NetworkError):
            if exception.status_code >= 500:
                logger.error(f"{request.method} {request.path} failed: {exception.message}")
            return JsonResponse({"error": exception.message}, status=exception.status_code)

        if isinstance(exception, Http404):
            return JsonResponse({"error": NotFound.default_message}, status=404)

        if isinstance(exception, PermissionDenied):
            return JsonResponse({"error": Forbidden.default_message}, status=403)

        if isinstance(exception, IntegrityError):
            logger.warning(f"Integrity error on {request.method} {request.path}: {exception}")
            return JsonResponse({"error": Conflict.default_message}, status=409)

        logger.error(f"Unhandled error on {request.method} {request.path}: {exception}", exc_info=True)
        return JsonResponse({"error": INTERNAL_ERROR}, status=500)


# ============================================================================
# WEBSOCKET QUERY-STRING AUTHENTICATION
# ============================================================================

@database_sync_to_async
def _user_for_token(token):
    try:
        return TokenService.from_settings().resolve_user(token)
    except AuthenticationFailed:
        return AnonymousUser()


class QueryTokenAuthMiddleware(BaseMiddleware):
    """Populate scope["user"] from the access_token query parameter."""

    async def __call__(self, scope, receive, send):
        query = parse_qs(scope.get("query_string", b"").decode())
        token = (query.get("access_token") or [""])[0]

        user = AnonymousUser()
        if token:
            user = await _user_for_token(token)

        scope = dict(scope, user=user)
        return await super().__call__(scope, receive, send)
