"""MCP server module for openapi-mcp."""

from .server import create_server, run_server
from .tools import ToolContext

__all__ = ["ToolContext", "create_server", "run_server"]
