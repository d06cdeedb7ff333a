"""
Name: OAuth2 token cache.
Description: Obtains OAuth2 client-credentials access tokens and reuses them until shortly before they expire. One cache instance is injected into every call path; there is no process-wide singleton.
"""

import base64
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel, Field

from ...constants import DEFAULT_TOKEN_EXPIRES_IN, DEFAULT_TIMEOUT_MS, TOKEN_EXPIRY_SAFETY_MS
from ...errors import ErrorCode, OpenApiMcpError
from ..models import TokenAuthMethod

logger = logging.getLogger(__name__)


class TokenRequest(BaseModel):
    """Parameters of one client-credentials grant."""

    cache_key: str
    token_url: str
    client_id: str
    client_secret: str
    scopes: List[str] = Field(default_factory=list)
    token_endpoint_auth_method: TokenAuthMethod = "client_secret_basic"


class TokenCacheEntry(BaseModel):
    """A cached access token."""

    access_token: str
    expires_at_ms: float


def build_cache_key(
    api_name: str,
    scheme_name: str,
    client_id: str,
    token_url: str,
    auth_method: str,
    scopes: List[str],
) -> str:
    """Build the composite cache key; scope order does not matter."""
    return "|".join(
        [api_name, scheme_name, client_id, token_url, auth_method, ",".join(sorted(scopes))]
    )


def _client_secret_basic(client_id: str, client_secret: str) -> str:
    # RFC 6749 2.3.1: id and secret are form-urlencoded before base64
    raw = f"{quote_plus(client_id)}:{quote_plus(client_secret)}"
    return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")


class OAuthTokenCache:
    """Cache of client-credentials tokens keyed by the negotiated parameters.

    Concurrent cache misses for the same key may each issue a grant; the last
    write wins, which is harmless because every write stores a valid token.

    Args:
        client: Optional shared httpx client used for token requests
        clock: Returns the current time in seconds since the epoch
        timeout_ms: Timeout for a single token request
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        self._client = client
        self._clock = clock
        self._timeout_ms = timeout_ms
        self._entries: Dict[str, TokenCacheEntry] = {}

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def peek(self, cache_key: str) -> Optional[TokenCacheEntry]:
        """Return the stored entry for a key without fetching."""
        return self._entries.get(cache_key)

    async def get_token(self, request: TokenRequest) -> str:
        """Return a valid access token, fetching a new one when needed.

        Args:
            request: Token request parameters

        Returns:
            The access token

        Raises:
            OpenApiMcpError: AUTH_ERROR when the grant fails
        """
        cached = self._entries.get(request.cache_key)
        if cached and cached.expires_at_ms - self._now_ms() > TOKEN_EXPIRY_SAFETY_MS:
            logger.debug(f"Token cache hit for {request.token_url}")
            return cached.access_token

        logger.debug(f"Token cache miss for {request.token_url}")
        payload = await self._request_token(request)

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise OpenApiMcpError(
                ErrorCode.AUTH_ERROR,
                "OAuth2 operation failed",
                {"tokenUrl": request.token_url, "cause": "Response has no access_token"},
            )

        expires_in = payload.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_TOKEN_EXPIRES_IN
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError):
            raise OpenApiMcpError(
                ErrorCode.AUTH_ERROR,
                "OAuth2 operation failed",
                {"tokenUrl": request.token_url, "cause": "Invalid expires_in value"},
            )

        self._entries[request.cache_key] = TokenCacheEntry(
            access_token=access_token,
            expires_at_ms=self._now_ms() + max(expires_in, 1) * 1000,
        )
        logger.info(f"Obtained OAuth2 token from {request.token_url}")
        return access_token

    async def _request_token(self, request: TokenRequest) -> Dict[str, Any]:
        form = {"grant_type": "client_credentials"}
        headers = {"Accept": "application/json"}

        if request.scopes:
            form["scope"] = " ".join(request.scopes)

        if request.token_endpoint_auth_method == "client_secret_post":
            form["client_id"] = request.client_id
            form["client_secret"] = request.client_secret
        else:
            headers["Authorization"] = _client_secret_basic(
                request.client_id, request.client_secret
            )

        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(
                request.token_url,
                data=form,
                headers=headers,
                timeout=self._timeout_ms / 1000,
            )
        except httpx.HTTPError as e:
            raise OpenApiMcpError(
                ErrorCode.AUTH_ERROR,
                "OAuth2 token request failed",
                {"tokenUrl": request.token_url, "cause": str(e) or e.__class__.__name__},
            )
        finally:
            if self._client is None:
                await client.aclose()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            detail: Dict[str, Any] = {"tokenUrl": request.token_url, "status": response.status_code}
            if isinstance(payload, dict) and "error" in payload:
                detail["oauthError"] = {
                    key: payload[key]
                    for key in ("error", "error_description", "error_uri")
                    if key in payload
                }
            else:
                detail["cause"] = response.text
            raise OpenApiMcpError(ErrorCode.AUTH_ERROR, "OAuth2 token request failed", detail)

        if not isinstance(payload, dict):
            raise OpenApiMcpError(
                ErrorCode.AUTH_ERROR,
                "OAuth2 operation failed",
                {"tokenUrl": request.token_url, "cause": "Token response is not a JSON object"},
            )

        return payload
