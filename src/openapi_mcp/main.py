"""
Name: Command-line interface.
Description: Implements the command-line interface for openapi-mcp with commands for serving the configured APIs as an MCP server and for listing the APIs and endpoints a configuration exposes.
"""

import argparse
import json
import logging
import sys

from .config import load_config
from .constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TRANSPORT
from .errors import OpenApiMcpError
from .mcp import ToolContext, run_server
from .openapi import RequestExecutor, load_api_registry
from .openapi.auth import OAuthTokenCache
from .utils import setup_environment

logger = logging.getLogger(__name__)


def _report_error(error: OpenApiMcpError):
    print(json.dumps(error.to_dict(), indent=2), file=sys.stderr)
    sys.exit(1)


def serve_command(args):
    """Load the configured APIs and serve them over MCP."""
    env = setup_environment(args.env_file, debug=args.debug)

    try:
        config = load_config(args.config)
        registry = load_api_registry(config, env)
    except OpenApiMcpError as e:
        _report_error(e)

    for api in registry:
        logger.info(
            f"{api.name}: {len(api.endpoints)} endpoints, base URL {api.base_url}, "
            f"auth schemes {api.auth_scheme_names or 'none'}"
        )

    token_cache = OAuthTokenCache()
    context = ToolContext(registry, token_cache, RequestExecutor(token_cache), env)
    run_server(context, transport=args.transport, host=args.host, port=args.port)


def list_command(args):
    """Print the APIs and endpoint ids of a configuration."""
    env = setup_environment(args.env_file, debug=args.debug)

    try:
        config = load_config(args.config)
        registry = load_api_registry(config, env)
    except OpenApiMcpError as e:
        _report_error(e)

    print(f"Found {len(registry)} API(s):")
    for api in registry:
        print(f"  - {api.name} ({api.base_url})")
        for endpoint in api.endpoints:
            print(f"    {endpoint.endpoint_id}: {endpoint.method.upper()} {endpoint.path}")
        print("")


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="openapi-mcp - Expose OpenAPI-described APIs as MCP tools"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def add_common_args(parser):
        parser.add_argument(
            "--config", type=str, required=True, help="Path to the YAML configuration file"
        )
        parser.add_argument(
            "--env-file", type=str, default=None, help="Path to a .env file with credentials"
        )
        parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the MCP server")
    add_common_args(serve_parser)
    serve_parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "sse"],
        default=DEFAULT_TRANSPORT,
        help="MCP transport",
    )
    serve_parser.add_argument(
        "--host", type=str, default=DEFAULT_HOST, help="Host to bind the SSE server to"
    )
    serve_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Port to bind the SSE server to"
    )

    # List command
    list_parser = subparsers.add_parser("list", help="List configured APIs and endpoints")
    add_common_args(list_parser)

    args = parser.parse_args()

    if args.command == "serve":
        serve_command(args)
    elif args.command == "list":
        list_command(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
