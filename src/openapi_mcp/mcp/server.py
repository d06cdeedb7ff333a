"""
Name: MCP Server.
Description: Builds the FastMCP server exposing the openapi-mcp tools and runs it over stdio or SSE. Failures are reported to the client as ToolError carrying the structured error payload.
"""

import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from ..constants import DEFAULT_HOST, DEFAULT_PORT, SERVER_NAME
from ..errors import as_error_response
from . import tools
from .tools import ToolContext

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Call OpenAPI-described HTTP APIs. Use list_apis and list_api_endpoints to "
    "discover endpoints, get_api_endpoint to see their parameters, then "
    "make_endpoint_request to call them."
)


def _reporting_errors(fn: Callable[..., Awaitable[Dict[str, Any]]]):
    """Re-raise any failure as a ToolError with the JSON error payload."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ToolError:
            raise
        except Exception as e:
            payload = as_error_response(e)
            logger.warning(f"{fn.__name__} failed: {payload['code']} {payload['message']}")
            raise ToolError(json.dumps(payload, indent=2)) from e

    return wrapper


def create_server(context: ToolContext) -> FastMCP:
    """Create a FastMCP instance with the tools bound to ``context``.

    Args:
        context: Shared tool context

    Returns:
        FastMCP instance
    """
    mcp = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)

    @mcp.tool(name="list_apis", description="List the configured APIs.")
    @_reporting_errors
    async def list_apis() -> Dict[str, Any]:
        return await tools.list_apis(context)

    @mcp.tool(
        name="list_api_endpoints",
        description="List the endpoints of an API, with optional filters and paging.",
    )
    @_reporting_errors
    async def list_api_endpoints(
        api_name: str,
        method: Optional[str] = None,
        tag: Optional[str] = None,
        path_contains: Optional[str] = None,
        search: Optional[List[str]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await tools.list_api_endpoints(
            context, api_name, method, tag, path_contains, search, limit, cursor
        )

    @mcp.tool(
        name="get_api_endpoint",
        description="Describe one endpoint: parameters, request body, responses and security.",
    )
    @_reporting_errors
    async def get_api_endpoint(api_name: str, endpoint_id: str) -> Dict[str, Any]:
        return await tools.get_api_endpoint(context, api_name, endpoint_id)

    @mcp.tool(
        name="get_api_schema",
        description="Return the OpenAPI document of an API, or the part a JSON pointer selects.",
    )
    @_reporting_errors
    async def get_api_schema(api_name: str, pointer: Optional[str] = None) -> Dict[str, Any]:
        return await tools.get_api_schema(context, api_name, pointer)

    @mcp.tool(
        name="make_endpoint_request",
        description=(
            "Call an endpoint. Credentials come from the server environment. "
            "Files are objects with one of base64, text or path."
        ),
    )
    @_reporting_errors
    async def make_endpoint_request(
        api_name: str,
        endpoint_id: str,
        path_params: Optional[Dict[str, Any]] = None,
        query: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, Any]] = None,
        cookies: Optional[Dict[str, Any]] = None,
        body: Any = None,
        files: Optional[Dict[str, Dict[str, Any]]] = None,
        content_type: Optional[str] = None,
        accept: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        retry429: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await tools.make_endpoint_request(
            context,
            api_name,
            endpoint_id,
            path_params=path_params,
            query=query,
            headers=headers,
            cookies=cookies,
            body=body,
            files=files,
            content_type=content_type,
            accept=accept,
            timeout_ms=timeout_ms,
            retry429=retry429,
        )

    return mcp


def create_sse_app(mcp: FastMCP, context: ToolContext):
    """Wrap the MCP server in a FastAPI app with a health check.

    The MCP SSE application is mounted at ``/mcp``.
    """
    from fastapi import FastAPI

    app = FastAPI(title="openapi-mcp", description="MCP server for OpenAPI-described APIs")

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "apis": [api.name for api in context.registry]}

    app.mount("/mcp", mcp.http_app(transport="sse"))
    return app


def run_server(
    context: ToolContext,
    transport: str = "stdio",
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
):
    """Run the MCP server until interrupted.

    Args:
        context: Shared tool context
        transport: ``stdio`` or ``sse``
        host: Host to bind for SSE
        port: Port to bind for SSE
    """
    mcp = create_server(context)

    if transport == "sse":
        import uvicorn

        logger.info(f"Starting MCP server on {host}:{port}")
        uvicorn.run(create_sse_app(mcp, context), host=host, port=port, log_level="warning")
        return

    logger.info("Starting MCP server on stdio")
    mcp.run(transport="stdio")
