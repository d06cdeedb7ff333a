"""
Name: Auth resolution engine.
Description: Negotiates an operation's OpenAPI security requirements against the credentials available in the environment. Requirements are OR'd in declaration order; the schemes inside one requirement are AND'd. Produces the applied schemes of the first fully satisfied requirement, or an AUTH_ERROR listing why each alternative failed.
"""

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional

from fastapi.openapi.models import APIKeyIn

from ...constants import DEFAULT_TOKEN_AUTH_METHOD
from ...errors import ErrorCode, OpenApiMcpError
from ..models import EndpointDefinition
from .auth_helpers import (
    AuthSchemeType,
    HttpScheme,
    ResolvedApiKeyAuth,
    ResolvedAuth,
    ResolvedAuthScheme,
    ResolvedHttpAuth,
    ResolvedOAuth2Auth,
)
from .env import (
    read_api_key_value,
    read_http_credentials,
    read_oauth_credentials,
    scheme_prefix,
)
from .oauth import OAuthTokenCache, TokenRequest, build_cache_key

if TYPE_CHECKING:
    from ..spec import ApiDescriptor

logger = logging.getLogger(__name__)


class SchemeUnresolved(Exception):
    """Raised when one scheme of a requirement cannot be satisfied."""

    def __init__(self, reason: str, missing_env: Optional[List[str]] = None):
        super().__init__(reason)
        self.reason = reason
        self.missing_env = missing_env or []


class _SchemeContext:
    """Everything a scheme handler needs to resolve one scheme."""

    def __init__(
        self,
        api: "ApiDescriptor",
        scheme_name: str,
        scheme: Dict[str, Any],
        requested_scopes: List[str],
        token_cache: OAuthTokenCache,
        env: Mapping[str, str],
    ):
        self.api = api
        self.scheme_name = scheme_name
        self.scheme = scheme
        self.requested_scopes = requested_scopes
        self.token_cache = token_cache
        self.env = env

    def env_name(self, suffix: str) -> str:
        return f"{scheme_prefix(self.api.name, self.scheme_name)}_{suffix}"


async def _resolve_api_key(ctx: _SchemeContext) -> ResolvedAuthScheme:
    value = read_api_key_value(ctx.api.name, ctx.scheme_name, ctx.env)
    if not value:
        raise SchemeUnresolved(
            f"Missing API key for scheme '{ctx.scheme_name}'", [ctx.env_name("API_KEY")]
        )

    try:
        location = APIKeyIn(ctx.scheme.get("in"))
    except ValueError:
        raise SchemeUnresolved(
            f"Invalid API key location '{ctx.scheme.get('in')}' for scheme '{ctx.scheme_name}'"
        )

    return ResolvedApiKeyAuth(
        scheme_name=ctx.scheme_name,
        in_=location,
        name=str(ctx.scheme.get("name", "")),
        value=value,
    )


async def _resolve_http(ctx: _SchemeContext) -> ResolvedAuthScheme:
    scheme_word = str(ctx.scheme.get("scheme", "")).lower()
    if scheme_word not in (HttpScheme.bearer.value, HttpScheme.basic.value):
        raise SchemeUnresolved(f"HTTP auth scheme '{scheme_word}' is not supported")

    credentials = read_http_credentials(ctx.api.name, ctx.scheme_name, ctx.env)

    if scheme_word == HttpScheme.bearer.value:
        if not credentials.token:
            raise SchemeUnresolved(
                f"Missing Bearer token for scheme '{ctx.scheme_name}'", [ctx.env_name("TOKEN")]
            )
        return ResolvedHttpAuth(
            scheme_name=ctx.scheme_name, scheme=HttpScheme.bearer, token=credentials.token
        )

    if not credentials.username or not credentials.password:
        raise SchemeUnresolved(
            f"Missing Basic auth credentials for scheme '{ctx.scheme_name}'",
            [ctx.env_name("USERNAME"), ctx.env_name("PASSWORD")],
        )
    return ResolvedHttpAuth(
        scheme_name=ctx.scheme_name,
        scheme=HttpScheme.basic,
        username=credentials.username,
        password=credentials.password,
    )


def resolve_scopes(
    requested_scopes: List[str],
    env_scopes: Optional[List[str]],
    config_scopes: Optional[List[str]],
    flow: Dict[str, Any],
) -> List[str]:
    """Pick the scopes to request.

    Order: environment, API configuration, requirement, all scopes of the flow.
    """
    for candidate in (env_scopes, config_scopes, requested_scopes):
        if candidate:
            return list(candidate)
    return list((flow.get("scopes") or {}).keys())


async def _resolve_oauth2(ctx: _SchemeContext) -> ResolvedAuthScheme:
    flow = (ctx.scheme.get("flows") or {}).get("clientCredentials")
    if not isinstance(flow, dict):
        raise SchemeUnresolved(
            f"Scheme '{ctx.scheme_name}' does not support clientCredentials flow"
        )

    from_env = read_oauth_credentials(ctx.api.name, ctx.scheme_name, ctx.env)
    if not from_env.client_id or not from_env.client_secret:
        raise SchemeUnresolved(
            f"Missing OAuth2 client credentials for '{ctx.scheme_name}'",
            [ctx.env_name("CLIENT_ID"), ctx.env_name("CLIENT_SECRET")],
        )

    oauth2_config = ctx.api.oauth2
    token_url = (
        from_env.token_url
        or (oauth2_config.token_url_override if oauth2_config else None)
        or flow.get("tokenUrl")
    )
    if not token_url:
        raise SchemeUnresolved(
            f"No OAuth2 token URL resolved for scheme '{ctx.scheme_name}'",
            [ctx.env_name("TOKEN_URL")],
        )

    auth_method = (
        from_env.token_auth_method
        or (oauth2_config.token_endpoint_auth_method if oauth2_config else None)
        or DEFAULT_TOKEN_AUTH_METHOD
    )
    scopes = resolve_scopes(
        ctx.requested_scopes,
        from_env.scopes,
        oauth2_config.scopes if oauth2_config else None,
        flow,
    )

    token = await ctx.token_cache.get_token(
        TokenRequest(
            cache_key=build_cache_key(
                ctx.api.name, ctx.scheme_name, from_env.client_id, token_url, auth_method, scopes
            ),
            token_url=token_url,
            client_id=from_env.client_id,
            client_secret=from_env.client_secret,
            scopes=scopes,
            token_endpoint_auth_method=auth_method,
        )
    )
    return ResolvedOAuth2Auth(scheme_name=ctx.scheme_name, token=token)


SCHEME_HANDLERS: Dict[str, Callable[[_SchemeContext], Awaitable[ResolvedAuthScheme]]] = {
    AuthSchemeType.apiKey.value: _resolve_api_key,
    AuthSchemeType.http.value: _resolve_http,
    AuthSchemeType.oauth2.value: _resolve_oauth2,
}


def security_requirements(
    api: "ApiDescriptor", endpoint: EndpointDefinition
) -> List[Dict[str, List[str]]]:
    """Get the effective security requirements of an endpoint."""
    if "security" in endpoint.operation and endpoint.operation["security"] is not None:
        return list(endpoint.operation["security"])
    return list(api.document.get("security") or [])


async def resolve_auth(
    api: "ApiDescriptor",
    endpoint: EndpointDefinition,
    token_cache: OAuthTokenCache,
    env: Mapping[str, str],
) -> ResolvedAuth:
    """Resolve the authentication to apply to a call.

    Args:
        api: The API the endpoint belongs to
        endpoint: The endpoint being invoked
        token_cache: Cache used for OAuth2 client-credentials tokens
        env: Environment mapping holding credentials

    Returns:
        The schemes of the first satisfiable requirement (may be empty)

    Raises:
        OpenApiMcpError: AUTH_ERROR when no requirement can be satisfied or a
            token grant fails; CONFIG_ERROR for malformed environment values
    """
    requirements = security_requirements(api, endpoint)
    if not requirements:
        return ResolvedAuth()

    security_schemes = api.security_schemes
    failures = []

    for requirement in requirements:
        if not requirement:
            # An empty requirement makes authentication optional
            return ResolvedAuth()

        resolved: List[ResolvedAuthScheme] = []
        missing_env: List[str] = []
        failed_reason = None

        for scheme_name, requested_scopes in requirement.items():
            scheme = security_schemes.get(scheme_name)
            try:
                if not isinstance(scheme, dict) or "$ref" in scheme:
                    raise SchemeUnresolved(
                        f"Security scheme '{scheme_name}' not found or unresolved"
                    )

                handler = SCHEME_HANDLERS.get(scheme.get("type"))
                if handler is None:
                    raise SchemeUnresolved(
                        f"Unsupported security scheme type '{scheme.get('type')}' for '{scheme_name}'"
                    )

                ctx = _SchemeContext(
                    api, scheme_name, scheme, list(requested_scopes or []), token_cache, env
                )
                resolved.append(await handler(ctx))
            except SchemeUnresolved as e:
                failed_reason = e.reason
                missing_env.extend(name for name in e.missing_env if name not in missing_env)
                break

        if failed_reason is None:
            auth_used = [scheme.scheme_name for scheme in resolved]
            logger.debug(f"Resolved auth for {endpoint.endpoint_id}: {auth_used}")
            return ResolvedAuth(auth_used=auth_used, schemes=resolved)

        failures.append(
            {
                "requirement": list(requirement.keys()),
                "reason": failed_reason,
                "missingEnv": missing_env,
            }
        )

    raise OpenApiMcpError(
        ErrorCode.AUTH_ERROR,
        f"Could not resolve authentication for '{api.name}'",
        {"endpointId": endpoint.endpoint_id, "failures": failures},
    )
