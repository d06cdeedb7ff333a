"""
Name: Utility functions.
Description: Common utility functions for openapi-mcp, including loading OpenAPI documents from files or URLs, environment setup and logging.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

import requests
import yaml
from dotenv import load_dotenv

# Configure logging
logger = logging.getLogger(__name__)

SPEC_DOWNLOAD_TIMEOUT = 30


def configure_logging(debug: bool = False):
    """Configure logging for the application.

    Logs go to stderr; stdout is reserved for the stdio MCP transport.

    Args:
        debug: Whether to enable debug mode
    """
    logging_level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(logging_level)

    # Only adjust levels when handlers already exist
    if root_logger.handlers:
        for handler in root_logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setLevel(logging_level)
        return

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)


def load_spec_from_file(file_path: str) -> Any:
    """Load an OpenAPI document from a file.

    ``.json`` files are parsed as JSON, everything else as YAML.

    Args:
        file_path: Path to the OpenAPI document

    Returns:
        The parsed document
    """
    _, ext = os.path.splitext(file_path)
    with open(file_path, "r", encoding="utf-8") as f:
        if ext.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_spec_from_url(url: str) -> Any:
    """Load an OpenAPI document from a URL.

    Args:
        url: URL to the OpenAPI document

    Returns:
        The parsed document
    """
    response = requests.get(url, timeout=SPEC_DOWNLOAD_TIMEOUT)
    response.raise_for_status()
    content_type = response.headers.get("Content-Type", "")

    if "json" in content_type:
        return response.json()
    if "yaml" in content_type or url.endswith((".yaml", ".yml")):
        return yaml.safe_load(response.text)

    # Try to parse as JSON first, then fall back to YAML
    try:
        return response.json()
    except ValueError:
        return yaml.safe_load(response.text)


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def setup_environment(dotenv_path: Optional[str] = None, debug: bool = False) -> Dict[str, str]:
    """Setup the environment for the application.

    - Configures logging
    - Loads environment variables from a .env file

    Args:
        dotenv_path: Optional explicit .env file
        debug: Whether to enable debug logging

    Returns:
        Snapshot of the process environment to pass to the core
    """
    configure_logging(debug)

    if load_dotenv(dotenv_path):
        logger.debug("Loaded environment variables from .env file")

    return dict(os.environ)
