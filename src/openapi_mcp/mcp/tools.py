"""
Name: MCP tool handlers.
Description: The operations exposed to MCP clients: listing APIs and endpoints, describing an endpoint, reading the API document and executing endpoint requests. Handlers return JSON-serializable dictionaries and raise OpenApiMcpError on failure.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ..constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from ..errors import ErrorCode, OpenApiMcpError, from_validation_error
from ..openapi.auth import OAuthTokenCache
from ..openapi.auth.resolver import security_requirements
from ..openapi.executor import RequestExecutor
from ..openapi.models import EndpointDefinition, EndpointRequest
from ..openapi.pointer import get_by_json_pointer
from ..openapi.spec import ApiRegistry

logger = logging.getLogger(__name__)


class ToolContext:
    """Shared state handed to every tool call.

    Args:
        registry: Loaded APIs
        token_cache: OAuth2 token cache
        executor: Request executor
        env: Environment mapping holding credentials
    """

    def __init__(
        self,
        registry: ApiRegistry,
        token_cache: OAuthTokenCache,
        executor: RequestExecutor,
        env: Mapping[str, str],
    ):
        self.registry = registry
        self.token_cache = token_cache
        self.executor = executor
        self.env = env


def to_string_map(value: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Stringify header or cookie values, dropping nulls."""
    if not value:
        return {}
    out = {}
    for key, item in value.items():
        if item is None:
            continue
        if isinstance(item, bool):
            out[key] = "true" if item else "false"
        else:
            out[key] = str(item)
    return out


def _endpoint_summary(endpoint: EndpointDefinition) -> Dict[str, Any]:
    return {
        "endpointId": endpoint.endpoint_id,
        "method": endpoint.method,
        "path": endpoint.path,
        "operationId": endpoint.operation_id,
        "summary": endpoint.summary,
        "tags": list(endpoint.tags),
    }


def _matches_search(endpoint: EndpointDefinition, terms: List[str]) -> bool:
    haystack = [
        value.lower()
        for value in [
            endpoint.endpoint_id,
            endpoint.method,
            endpoint.path,
            endpoint.operation_id,
            endpoint.summary,
            endpoint.description,
            *endpoint.tags,
        ]
        if isinstance(value, str)
    ]
    # Any term matching any field is enough
    return any(term in value for term in terms for value in haystack)


def _parse_cursor(cursor: Optional[str]) -> int:
    if not cursor or not cursor.strip():
        return 0
    try:
        offset = int(cursor.strip())
    except ValueError:
        return 0
    return max(offset, 0)


async def list_apis(context: ToolContext) -> Dict[str, Any]:
    """List every loaded API."""
    return {
        "apis": [
            {
                "name": api.name,
                "title": api.title,
                "version": api.version,
                "baseUrl": api.base_url,
                "specSource": api.source,
                "authSchemes": list(api.auth_scheme_names),
            }
            for api in context.registry
        ]
    }


async def list_api_endpoints(
    context: ToolContext,
    api_name: str,
    method: Optional[str] = None,
    tag: Optional[str] = None,
    path_contains: Optional[str] = None,
    search: Optional[List[str]] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
) -> Dict[str, Any]:
    """List the endpoints of an API with optional filters and paging.

    Args:
        context: Tool context
        api_name: Name of the API
        method: HTTP method filter, case-insensitive
        tag: Exact tag filter
        path_contains: Substring the path must contain
        search: Terms matched against id, method, path, operationId,
            summary, description and tags; any match keeps the endpoint
        limit: Page size, default 50, capped at 200
        cursor: Offset returned as ``nextCursor`` by a previous call

    Returns:
        Dictionary with ``endpoints`` and, when more remain, ``nextCursor``
    """
    api = context.registry.get(api_name)

    if limit is not None and limit < 1:
        raise OpenApiMcpError(ErrorCode.REQUEST_ERROR, "limit: must be a positive integer")

    method_filter = method.lower() if method else None
    terms = [term.strip().lower() for term in (search or []) if term.strip()]
    page_size = min(limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    offset = _parse_cursor(cursor)

    filtered = []
    for endpoint in api.endpoints:
        if method_filter and endpoint.method != method_filter:
            continue
        if tag and tag not in endpoint.tags:
            continue
        if path_contains and path_contains not in endpoint.path:
            continue
        if terms and not _matches_search(endpoint, terms):
            continue
        filtered.append(endpoint)

    page = filtered[offset : offset + page_size]
    result: Dict[str, Any] = {"endpoints": [_endpoint_summary(endpoint) for endpoint in page]}

    next_offset = offset + len(page)
    if next_offset < len(filtered):
        result["nextCursor"] = str(next_offset)
    return result


async def get_api_endpoint(context: ToolContext, api_name: str, endpoint_id: str) -> Dict[str, Any]:
    """Describe one endpoint: parameters, request body, responses and security."""
    api = context.registry.get(api_name)
    endpoint = api.get_endpoint(endpoint_id)

    parameters = []
    for param in endpoint.parameters:
        described = {
            "name": param.get("name"),
            "in": param.get("in"),
            "required": bool(param.get("required", False)),
            "description": param.get("description"),
            "style": param.get("style"),
            "explode": param.get("explode"),
            "schema": param.get("schema"),
        }
        parameters.append({key: value for key, value in described.items() if value is not None})

    request_body = endpoint.operation.get("requestBody")
    if not isinstance(request_body, dict) or "$ref" in request_body:
        request_body = {}

    return {
        "endpointId": endpoint.endpoint_id,
        "method": endpoint.method,
        "path": endpoint.path,
        "operationId": endpoint.operation_id,
        "summary": endpoint.summary,
        "description": endpoint.description,
        "tags": list(endpoint.tags),
        "parameters": parameters,
        "requestBody": {
            "required": bool(request_body.get("required", False)),
            "contentTypes": list((request_body.get("content") or {}).keys()),
        },
        "responses": endpoint.operation.get("responses"),
        "security": security_requirements(api, endpoint),
    }


async def get_api_schema(
    context: ToolContext, api_name: str, pointer: Optional[str] = None
) -> Dict[str, Any]:
    """Return the API document, or the fragment a JSON pointer selects."""
    api = context.registry.get(api_name)
    return {
        "apiName": api.name,
        "pointer": pointer or "",
        "schema": get_by_json_pointer(api.document, pointer),
    }


async def make_endpoint_request(
    context: ToolContext,
    api_name: str,
    endpoint_id: str,
    path_params: Optional[Dict[str, Any]] = None,
    query: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, Any]] = None,
    cookies: Optional[Dict[str, Any]] = None,
    body: Any = None,
    files: Optional[Dict[str, Any]] = None,
    content_type: Optional[str] = None,
    accept: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    retry429: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Execute a request against an endpoint.

    Returns:
        The execution result with camelCase keys

    Raises:
        OpenApiMcpError: REQUEST_ERROR for invalid input, plus anything the
            executor raises
    """
    api = context.registry.get(api_name)
    endpoint = api.get_endpoint(endpoint_id)

    try:
        request = EndpointRequest.model_validate(
            {
                "pathParams": path_params or {},
                "query": query or {},
                "headers": to_string_map(headers),
                "cookies": to_string_map(cookies),
                "body": body,
                "files": files or {},
                "contentType": content_type,
                "accept": accept,
                "timeoutMs": timeout_ms,
                "retry429": retry429,
            }
        )
    except ValidationError as e:
        raise from_validation_error(e, ErrorCode.REQUEST_ERROR, "arguments")

    result = await context.executor.execute(api, endpoint, request, context.env)
    logger.debug(
        f"{api.name} {endpoint.endpoint_id} -> {result.response.status} in {result.timing_ms}ms"
    )
    return result.to_dict()
