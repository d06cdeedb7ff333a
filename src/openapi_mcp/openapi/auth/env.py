"""
Name: Environment credential reader.
Description: Pure lookup functions mapping an API name and a security scheme name to environment-sourced secrets and options. The environment is always passed in explicitly as a flat string mapping.
"""

import json
import re
from typing import List, Mapping, Optional

from pydantic import BaseModel

from ...constants import TOKEN_AUTH_METHODS
from ...errors import ErrorCode, OpenApiMcpError


_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


class HttpCredentialsFromEnv(BaseModel):
    """HTTP Bearer/Basic credentials read from the environment."""

    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class OAuthCredentialsFromEnv(BaseModel):
    """OAuth2 client-credentials settings read from the environment."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_url: Optional[str] = None
    scopes: Optional[List[str]] = None
    token_auth_method: Optional[str] = None


def normalize_env_segment(value: str) -> str:
    """Normalize a name into an environment variable segment.

    Uppercases, collapses runs of non-alphanumeric characters into a single
    underscore and trims leading/trailing underscores.

    Args:
        value: API or scheme name

    Returns:
        Normalized segment, e.g. ``"pet-api"`` -> ``"PET_API"``
    """
    return _NON_ALNUM.sub("_", value.upper()).strip("_")


def api_prefix(api_name: str) -> str:
    return normalize_env_segment(api_name)


def scheme_prefix(api_name: str, scheme_name: str) -> str:
    return f"{api_prefix(api_name)}_{normalize_env_segment(scheme_name)}"


def _read(env: Mapping[str, str], key: str) -> Optional[str]:
    # Empty strings count as unset
    value = env.get(key)
    return value if value else None


def read_api_base_url(api_name: str, env: Mapping[str, str]) -> Optional[str]:
    return _read(env, f"{api_prefix(api_name)}_BASE_URL")


def read_api_extra_headers(api_name: str, env: Mapping[str, str]) -> dict:
    """Read the extra headers JSON object for an API.

    Args:
        api_name: Name of the API
        env: Environment mapping

    Returns:
        Dictionary of header name to value, empty when the variable is unset

    Raises:
        OpenApiMcpError: CONFIG_ERROR when the value is not a JSON object of strings
    """
    key = f"{api_prefix(api_name)}_HEADERS"
    raw = _read(env, key)
    if not raw:
        return {}

    try:
        parsed = json.loads(raw)
    except ValueError:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR, f"Invalid JSON in {key}", {"value": raw}
        )

    if not isinstance(parsed, dict):
        raise OpenApiMcpError(ErrorCode.CONFIG_ERROR, f"{key} must be a JSON object")

    headers = {}
    for name, value in parsed.items():
        if not isinstance(value, str):
            raise OpenApiMcpError(
                ErrorCode.CONFIG_ERROR, f"{key} values must be strings", {"key": name}
            )
        headers[name] = value
    return headers


def read_api_key_value(
    api_name: str, scheme_name: str, env: Mapping[str, str]
) -> Optional[str]:
    return _read(env, f"{scheme_prefix(api_name, scheme_name)}_API_KEY")


def read_http_credentials(
    api_name: str, scheme_name: str, env: Mapping[str, str]
) -> HttpCredentialsFromEnv:
    prefix = scheme_prefix(api_name, scheme_name)
    return HttpCredentialsFromEnv(
        token=_read(env, f"{prefix}_TOKEN"),
        username=_read(env, f"{prefix}_USERNAME"),
        password=_read(env, f"{prefix}_PASSWORD"),
    )


def read_oauth_credentials(
    api_name: str, scheme_name: str, env: Mapping[str, str]
) -> OAuthCredentialsFromEnv:
    """Read OAuth2 client-credentials settings for a scheme.

    Args:
        api_name: Name of the API
        scheme_name: Name of the security scheme
        env: Environment mapping

    Returns:
        The settings found; missing values are None

    Raises:
        OpenApiMcpError: CONFIG_ERROR for an unknown token auth method
    """
    prefix = scheme_prefix(api_name, scheme_name)

    auth_method = _read(env, f"{prefix}_TOKEN_AUTH_METHOD")
    if auth_method is not None and auth_method not in TOKEN_AUTH_METHODS:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR,
            f"Invalid {prefix}_TOKEN_AUTH_METHOD value",
            {"value": auth_method},
        )

    scopes_raw = _read(env, f"{prefix}_SCOPES")
    scopes = scopes_raw.split() if scopes_raw else None

    return OAuthCredentialsFromEnv(
        client_id=_read(env, f"{prefix}_CLIENT_ID"),
        client_secret=_read(env, f"{prefix}_CLIENT_SECRET"),
        token_url=_read(env, f"{prefix}_TOKEN_URL"),
        scopes=scopes or None,
        token_auth_method=auth_method,
    )
