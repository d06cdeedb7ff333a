"""Authentication for OpenAPI endpoints."""

from .auth_helpers import ResolvedAuth, ResolvedAuthScheme, apply_auth
from .oauth import OAuthTokenCache, TokenRequest
from .resolver import resolve_auth

__all__ = [
    "OAuthTokenCache",
    "ResolvedAuth",
    "ResolvedAuthScheme",
    "TokenRequest",
    "apply_auth",
    "resolve_auth",
]
