"""
Name: Request executor.
Description: Executes one endpoint call end to end: resolves auth, expands the path, serializes query parameters, merges headers and cookies, encodes the body, sends the request with a per-attempt timeout and 429 retry/backoff, then decodes the response and redacts sensitive headers from the echoed request.
"""

import asyncio
import base64
import json
import logging
import random
import re
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from ..constants import REDACTED_VALUE
from ..errors import ErrorCode, OpenApiMcpError
from .auth import OAuthTokenCache, apply_auth, resolve_auth
from .auth.auth_helpers import set_header
from .auth.env import read_api_extra_headers
from .models import (
    EndpointDefinition,
    EndpointRequest,
    RequestExecutionResult,
    RequestSummary,
    ResponseSummary,
)
from .serialization import build_url, cookie_header, encode_body, expand_path, serialize_query
from .spec import ApiDescriptor
from .utils import RetryHandler, resolve_retry_policy

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPE_PATTERNS = [
    re.compile(r"^text/", re.IGNORECASE),
    re.compile(r"^application/xml", re.IGNORECASE),
    re.compile(r"^application/x-www-form-urlencoded", re.IGNORECASE),
    re.compile(r"^application/graphql", re.IGNORECASE),
]
_CHARSET = re.compile(r"charset=", re.IGNORECASE)


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy headers, masking credentials.

    ``authorization``, ``cookie`` and any name containing ``api-key`` are
    replaced, compared case-insensitively.
    """
    redacted = {}
    for key, value in headers.items():
        lower = key.lower()
        if lower in ("authorization", "cookie") or "api-key" in lower:
            redacted[key] = REDACTED_VALUE
        else:
            redacted[key] = value
    return redacted


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _remove_header(headers: Dict[str, str], name: str) -> None:
    for key in [key for key in headers if key.lower() == name.lower()]:
        del headers[key]


def decode_response(response: httpx.Response) -> Dict[str, Any]:
    """Decode a response body by status and content type.

    Returns:
        Dictionary with ``body_type`` and the matching body field
    """
    if response.status_code in (204, 205):
        return {"body_type": "empty"}

    content_type = response.headers.get("content-type", "")

    if "json" in content_type.lower():
        text = response.text
        if not text:
            return {"body_type": "empty"}
        try:
            return {"body_type": "json", "body_json": json.loads(text)}
        except ValueError:
            return {"body_type": "text", "body_text": text}

    if any(pattern.search(content_type) for pattern in TEXT_CONTENT_TYPE_PATTERNS) or _CHARSET.search(
        content_type
    ):
        return {"body_type": "text", "body_text": response.text}

    content = response.content
    if not content:
        return {"body_type": "empty"}
    return {"body_type": "binary", "body_base64": base64.b64encode(content).decode("ascii")}


class RequestExecutor:
    """Executes endpoint calls against loaded APIs.

    Args:
        token_cache: OAuth2 token cache shared by all calls
        client: Optional httpx client; one is created when omitted
        sleep: Awaitable sleep used between 429 retries
        rand: Random source used for backoff jitter
    """

    def __init__(
        self,
        token_cache: OAuthTokenCache,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.token_cache = token_cache
        self._client = client or httpx.AsyncClient()
        self._sleep = sleep
        self._rand = rand

    async def aclose(self):
        await self._client.aclose()

    async def execute(
        self,
        api: ApiDescriptor,
        endpoint: EndpointDefinition,
        request: EndpointRequest,
        env: Mapping[str, str],
    ) -> RequestExecutionResult:
        """Execute one endpoint call.

        Args:
            api: The API the endpoint belongs to
            endpoint: The endpoint to call
            request: Call input
            env: Environment mapping holding credentials

        Returns:
            The execution result; non-2xx responses are results, not errors

        Raises:
            OpenApiMcpError: AUTH_ERROR, CONFIG_ERROR or REQUEST_ERROR
        """
        start = time.monotonic()
        auth = await resolve_auth(api, endpoint, self.token_cache, env)

        path = expand_path(endpoint.path, request.path_params)
        query_pairs = serialize_query(endpoint, request.query)

        headers: Dict[str, str] = {}
        for source in (api.headers, read_api_extra_headers(api.name, env), request.headers):
            for name, value in source.items():
                set_header(headers, name, value)
        if request.accept:
            set_header(headers, "accept", request.accept)

        cookies = dict(request.cookies)
        query_pairs = apply_auth(auth.schemes, headers, query_pairs, cookies)
        cookie_value = cookie_header(cookies)
        if cookie_value:
            set_header(headers, "cookie", cookie_value)

        encoded = encode_body(request.body, request.files, request.content_type)
        if encoded.strip_content_type:
            _remove_header(headers, "content-type")
        elif encoded.content_type:
            set_header(headers, "content-type", encoded.content_type)
        elif encoded.default_content_type and not _has_header(headers, "content-type"):
            headers["content-type"] = encoded.default_content_type

        url = build_url(api.base_url, path, query_pairs)
        method = endpoint.method.upper()
        timeout_ms = request.timeout_ms or api.timeout_ms
        retry_handler = RetryHandler(
            resolve_retry_policy(request.retry429, api.retry429),
            sleep=self._sleep,
            rand=self._rand,
        )

        async def attempt() -> httpx.Response:
            # Calls never share upstream cookies; only the caller's go on the wire
            self._client.cookies.clear()
            http_request = self._client.build_request(
                method,
                url,
                headers=headers,
                content=encoded.content,
                files=encoded.multipart or None,
                timeout=timeout_ms / 1000,
            )
            logger.debug(f"{method} {url} ({endpoint.endpoint_id})")
            try:
                return await asyncio.wait_for(
                    self._client.send(http_request, follow_redirects=True),
                    timeout=timeout_ms / 1000,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                raise OpenApiMcpError(
                    ErrorCode.REQUEST_ERROR,
                    f"Request timed out after {timeout_ms}ms",
                    {"apiName": api.name, "endpointId": endpoint.endpoint_id},
                )
            except httpx.HTTPError as e:
                raise OpenApiMcpError(
                    ErrorCode.REQUEST_ERROR,
                    "Request failed",
                    {
                        "cause": str(e) or e.__class__.__name__,
                        "apiName": api.name,
                        "endpointId": endpoint.endpoint_id,
                    },
                )

        response = await retry_handler.run(attempt)

        return RequestExecutionResult(
            request=RequestSummary(
                url=url,
                method=method,
                redacted_headers=redact_headers(headers),
                endpoint_id=endpoint.endpoint_id,
            ),
            response=ResponseSummary(
                status=response.status_code,
                headers=dict(response.headers),
                **decode_response(response),
            ),
            timing_ms=int((time.monotonic() - start) * 1000),
            auth_used=auth.auth_used,
        )
