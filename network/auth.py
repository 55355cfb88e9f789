"""
================================================================================
SOCIALNET - AUTHENTICATION
================================================================================

Two separate concerns:

1. CredentialVerifier
   "Is this identifier/password pair valid, and for which account?"
   The default DjangoCredentialVerifier checks against the hashed passwords
   kept by django.contrib.auth. Swap it with settings.CREDENTIAL_VERIFIER.

2. TokenService
   Issues and decodes the bearer tokens presented on every API call.
   Tokens are HS256 JWTs signed with settings.JWT_SECRET.

TOKEN CLAIMS
================================================================================
    sub       user id (string)
    username  handle at issue time
    role      "Admin" or "User"
    type      always "access_token"
    iss, aud  settings.JWT_ISSUER / settings.JWT_AUDIENCE
    iat, exp  issue time and expiry (JWT_LIFETIME, one day by default)

================================================================================
"""

import functools
import logging
from datetime import datetime, timedelta, timezone as dt_timezone

import jwt
from django.conf import settings
from django.contrib.auth import authenticate
from django.http import JsonResponse
from django.utils.module_loading import import_string

from .exceptions import AuthenticationFailed
from .models import User


logger = logging.getLogger(__name__)

TOKEN_TYPE = "access_token"


# ============================================================================
# CREDENTIAL VERIFICATION
# ============================================================================

class CredentialVerifier:

    def verify(self, identifier, password):
        """Return the matching active User or None."""
        raise NotImplementedError


class DjangoCredentialVerifier(CredentialVerifier):
    """Accepts either the username or the e-mail address as identifier."""

    def verify(self, identifier, password):
        identifier = (identifier or "").strip()
        if not identifier or not password:
            return None

        user = User.objects.filter(username=identifier).first()
        if user is None:
            users = User.objects.filter(email__iexact=identifier)
            if users.count() != 1:
                return None
            user = users.first()

        user = authenticate(username=user.username, password=password)
        if user is None or not user.is_active:
            return None
        return user


def get_credential_verifier():
    return import_string(settings.CREDENTIAL_VERIFIER)()


# ============================================================================
# BEARER TOKENS
# ============================================================================

class TokenService:

    algorithm = "HS256"

    def __init__(self, secret, issuer, audience, lifetime):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.lifetime = lifetime

    @classmethod
    def from_settings(cls):
        return cls(
            secret=settings.JWT_SECRET,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            lifetime=timedelta(seconds=settings.JWT_LIFETIME),
        )

    def issue(self, user):
        now = datetime.now(dt_timezone.utc)
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role,
            "type": TOKEN_TYPE,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + self.lifetime,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token):
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationFailed("Token has expired.") from e
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected bearer token: {e}")
            raise AuthenticationFailed("Invalid token.") from e

        if payload.get("type") != TOKEN_TYPE:
            raise AuthenticationFailed("Invalid token type.")
        return payload

    def resolve_user(self, token):
        payload = self.decode(token)
        try:
            user = User.objects.get(pk=int(payload["sub"]), is_active=True)
        except (User.DoesNotExist, ValueError):
            raise AuthenticationFailed("Invalid token.")
        return user


def build_auth_payload(user, tokens=None):
    tokens = tokens or TokenService.from_settings()
    return {
        "token": tokens.issue(user),
        "user_id": user.id,
        "username": user.username,
        "profile_picture_url": user.profile_picture_url,
        "role": user.role,
    }


# ============================================================================
# VIEW DECORATOR
# ============================================================================

def api_login_required(view_func):
    """Like login_required, but answers 401 JSON instead of redirecting."""

    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": AuthenticationFailed.default_message}, status=401)
        return view_func(request, *args, **kwargs)

    return wrapper
