"""
Name: Constants and settings.
Description: Centralized location for default values used throughout openapi-mcp.
This file contains request defaults, retry defaults and OAuth2 settings to maintain consistency.
"""

# Server settings
SERVER_NAME = "openapi-mcp"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
DEFAULT_TRANSPORT = "stdio"

# Request settings
DEFAULT_TIMEOUT_MS = 30000
HTTP_METHODS = ["get", "put", "post", "delete", "options", "head", "patch", "trace"]

# 429 retry settings
DEFAULT_MAX_RETRIES = 0
DEFAULT_BASE_DELAY_MS = 250
DEFAULT_MAX_DELAY_MS = 5000
DEFAULT_JITTER_RATIO = 0.2
DEFAULT_RESPECT_RETRY_AFTER = True

# OAuth2 settings
TOKEN_EXPIRY_SAFETY_MS = 60000
DEFAULT_TOKEN_EXPIRES_IN = 3600
DEFAULT_TOKEN_AUTH_METHOD = "client_secret_basic"
TOKEN_AUTH_METHODS = ("client_secret_basic", "client_secret_post")

# Response settings
REDACTED_VALUE = "<redacted>"

# Endpoint listing settings
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
