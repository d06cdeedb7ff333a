"""
Name: OpenAPI document loader and API registry.
Description: Loads OpenAPI 3.x documents from files or URLs, resolves local $ref references, validates the document version and resolves each API's base URL. Loaded APIs are held as read-only ApiDescriptor objects in an ApiRegistry with case-insensitive lookup.
"""

import copy
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional

from ..constants import DEFAULT_TIMEOUT_MS
from ..errors import ErrorCode, OpenApiMcpError
from ..utils import is_url, load_spec_from_file, load_spec_from_url
from .auth.env import read_api_base_url
from .endpoints import build_endpoint_index
from .models import ApiOauth2Config, EndpointDefinition, RetryConfig
from .pointer import get_by_json_pointer

if TYPE_CHECKING:
    from ..config import ApiConfig, RootConfig

logger = logging.getLogger(__name__)

_VERSION = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:[-+].*)?$")

BASE_URL_RESOLUTION_ORDER = [
    "env:<API>_BASE_URL",
    "config.baseUrl",
    "openapi.servers[0].url",
]


def dereference(document: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively resolve all local $ref references in an OpenAPI document.

    Circular references are broken by leaving the sibling keys of the
    repeated reference in place without the $ref. External or unresolvable
    references are kept unchanged.

    Args:
        document: A dictionary representing the OpenAPI document

    Returns:
        A new document with all resolvable references inlined
    """
    resolved_cache: Dict[str, Any] = {}

    def resolve(obj: Any, in_progress: List[str]) -> Any:
        if isinstance(obj, list):
            return [resolve(item, in_progress) for item in obj]
        if not isinstance(obj, dict):
            return obj

        ref = obj.get("$ref")
        if not isinstance(ref, str):
            return {key: resolve(value, in_progress) for key, value in obj.items()}

        if ref in resolved_cache:
            return copy.deepcopy(resolved_cache[ref])

        if ref in in_progress:
            # Circular reference
            return {key: value for key, value in obj.items() if key != "$ref"}

        if not ref.startswith("#"):
            return obj

        try:
            target = get_by_json_pointer(document, ref[1:])
        except OpenApiMcpError:
            logger.warning(f"Unresolvable reference: {ref}")
            return obj

        value = resolve(target, in_progress + [ref])
        resolved_cache[ref] = value
        return copy.deepcopy(value)

    return resolve(copy.deepcopy(document), [])


def check_openapi_version(document: Any, api_name: str) -> None:
    """Ensure a parsed document is OpenAPI 3.x or later.

    Raises:
        OpenApiMcpError: SCHEMA_ERROR for Swagger 2.0, a missing or malformed
            ``openapi`` field, or a major version below 3
    """
    if not isinstance(document, dict):
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR, f"Invalid OpenAPI document for '{api_name}'"
        )

    if document.get("swagger") is not None:
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR,
            f"Swagger {document['swagger']} documents are not supported for '{api_name}'",
            {"apiName": api_name},
        )

    version = document.get("openapi")
    if not version:
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR, f"OpenAPI 'openapi' field is missing in '{api_name}'"
        )

    match = _VERSION.match(str(version))
    if not match:
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR, f"Unsupported OpenAPI version format: {version}"
        )

    if int(match.group(1)) < 3:
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR, f"OpenAPI version must be 3.x (received {version})"
        )


def load_document(source: str, api_name: str) -> Dict[str, Any]:
    """Load, validate and dereference the document of one API.

    Args:
        source: File path or http(s) URL
        api_name: Name of the API, used in error messages

    Returns:
        The dereferenced document

    Raises:
        OpenApiMcpError: SCHEMA_ERROR when the document cannot be read or is not OpenAPI 3.x
    """
    try:
        if is_url(source):
            parsed = load_spec_from_url(source)
        else:
            parsed = load_spec_from_file(source)
    except Exception as e:
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR,
            f"Failed to parse OpenAPI schema for '{api_name}'",
            {"apiName": api_name, "specSource": source, "cause": str(e) or e.__class__.__name__},
        )

    check_openapi_version(parsed, api_name)
    return dereference(parsed)


def resolve_base_url(
    api_name: str,
    configured: Optional[str],
    document: Dict[str, Any],
    env: Mapping[str, str],
) -> str:
    """Resolve the base URL: environment, then configuration, then servers[0]."""
    servers = document.get("servers") or []
    from_schema = servers[0].get("url") if servers and isinstance(servers[0], dict) else None

    base_url = read_api_base_url(api_name, env) or configured or from_schema
    if not base_url:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR,
            f"No base URL found for API '{api_name}'",
            {"resolutionOrder": BASE_URL_RESOLUTION_ORDER},
        )
    return base_url


class ApiDescriptor:
    """One loaded API: its configuration, document, base URL and endpoint index.

    Args:
        config: The API's configuration entry
        document: Dereferenced OpenAPI document
        base_url: Resolved base URL
        source: Where the document was loaded from
    """

    def __init__(
        self,
        config: "ApiConfig",
        document: Dict[str, Any],
        base_url: str,
        source: str = "",
    ):
        self.config = config
        self.document = document
        self.base_url = base_url
        self.source = source
        self.endpoints, self.endpoint_by_id = build_endpoint_index(document)
        self.auth_scheme_names = list(self.security_schemes.keys())

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def title(self) -> Optional[str]:
        return (self.document.get("info") or {}).get("title")

    @property
    def version(self) -> Optional[str]:
        return (self.document.get("info") or {}).get("version")

    @property
    def security_schemes(self) -> Dict[str, Any]:
        return (self.document.get("components") or {}).get("securitySchemes") or {}

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.config.headers or {})

    @property
    def timeout_ms(self) -> int:
        return self.config.timeout_ms or DEFAULT_TIMEOUT_MS

    @property
    def retry429(self) -> Optional[RetryConfig]:
        return self.config.retry429

    @property
    def oauth2(self) -> Optional[ApiOauth2Config]:
        return self.config.oauth2

    def get_endpoint(self, endpoint_id: str) -> EndpointDefinition:
        """Look up an endpoint by id.

        Raises:
            OpenApiMcpError: ENDPOINT_NOT_FOUND when the id is unknown
        """
        endpoint = self.endpoint_by_id.get(endpoint_id)
        if endpoint is None:
            raise OpenApiMcpError(
                ErrorCode.ENDPOINT_NOT_FOUND,
                f"Unknown endpoint '{endpoint_id}'",
                {"apiName": self.name},
            )
        return endpoint

    def __repr__(self) -> str:
        return f"ApiDescriptor({self.name!r}, endpoints={len(self.endpoints)})"


class ApiRegistry:
    """Loaded APIs keyed by lowercase name."""

    def __init__(self, apis: Optional[List[ApiDescriptor]] = None):
        self._by_name: Dict[str, ApiDescriptor] = {}
        for api in apis or []:
            self.add(api)

    def add(self, api: ApiDescriptor) -> None:
        self._by_name[api.name.lower()] = api

    def get(self, api_name: str) -> ApiDescriptor:
        """Look up an API by name, ignoring case.

        Raises:
            OpenApiMcpError: API_NOT_FOUND when no API has that name
        """
        api = self._by_name.get(api_name.lower())
        if api is None:
            raise OpenApiMcpError(ErrorCode.API_NOT_FOUND, f"Unknown API '{api_name}'")
        return api

    def __iter__(self) -> Iterator[ApiDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)


def load_api(config: "ApiConfig", env: Mapping[str, str]) -> ApiDescriptor:
    """Load one configured API.

    Args:
        config: The API's configuration entry
        env: Environment mapping

    Returns:
        The loaded API
    """
    source = config.spec_url or config.spec_path
    if not source:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR, f"No spec path or URL provided for API '{config.name}'"
        )

    logger.debug(f"Loading OpenAPI document for {config.name} from {source}")
    document = load_document(source, config.name)
    base_url = resolve_base_url(config.name, config.base_url, document, env)
    return ApiDescriptor(config, document, base_url, source)


def load_api_registry(config: "RootConfig", env: Mapping[str, str]) -> ApiRegistry:
    """Load every API of a root configuration into a registry."""
    registry = ApiRegistry()
    for api_config in config.apis:
        api = load_api(api_config, env)
        registry.add(api)
        logger.info(f"Loaded API {api.name}: {len(api.endpoints)} endpoints at {api.base_url}")
    return registry
