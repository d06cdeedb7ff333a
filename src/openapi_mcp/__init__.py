"""
Name: openapi-mcp package.
Description: Exposes any OpenAPI 3.x described API as a small set of MCP tools. Defines the package version and the public entry points.
"""

__version__ = "0.1.0"
__author__ = "JR Oakes"

from .errors import ErrorCode, OpenApiMcpError

__all__ = ["ErrorCode", "OpenApiMcpError", "__version__"]
