"""Common models for OpenAPI endpoints and requests."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


TokenAuthMethod = Literal["client_secret_basic", "client_secret_post"]
BodyType = Literal["json", "text", "binary", "empty"]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RetryConfig(CamelModel):
    """Retry configuration for 429 responses.

    This can be specified per API or per call. Unset fields fall through to
    the next layer (call -> API -> global defaults).
    """

    model_config = ConfigDict(extra="forbid")

    max_retries: Optional[int] = Field(
        default=None, ge=0, description="Maximum number of retries after a 429"
    )
    base_delay_ms: Optional[int] = Field(
        default=None, gt=0, description="Base delay for exponential backoff"
    )
    max_delay_ms: Optional[int] = Field(
        default=None, gt=0, description="Upper bound for any single delay"
    )
    jitter_ratio: Optional[float] = Field(
        default=None, ge=0, le=1, description="Multiplicative jitter ratio"
    )
    respect_retry_after: Optional[bool] = Field(
        default=None, description="Whether to honor the Retry-After header"
    )


class RetryPolicy(BaseModel):
    """Fully resolved retry policy for one call."""

    model_config = ConfigDict(frozen=True)

    max_retries: int
    base_delay_ms: int
    max_delay_ms: int
    jitter_ratio: float
    respect_retry_after: bool


class ApiOauth2Config(CamelModel):
    """OAuth2 overrides configured for an API."""

    model_config = ConfigDict(extra="forbid")

    token_url_override: Optional[str] = None
    scopes: Optional[List[str]] = None
    token_endpoint_auth_method: Optional[TokenAuthMethod] = None


class EndpointDefinition(BaseModel):
    """One (method, path) operation of an API."""

    model_config = ConfigDict(frozen=True)

    endpoint_id: str
    method: str  # lowercase http method
    path: str
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    operation: Dict[str, Any] = Field(default_factory=dict)
    path_item: Dict[str, Any] = Field(default_factory=dict)

    @property
    def parameters(self) -> List[Dict[str, Any]]:
        """Parameters declared on the path item followed by the operation."""
        declared = list(self.path_item.get("parameters") or []) + list(
            self.operation.get("parameters") or []
        )
        return [
            param for param in declared if isinstance(param, dict) and "$ref" not in param
        ]


class FileDescriptor(CamelModel):
    """A file to upload, loaded from exactly one source."""

    model_config = ConfigDict(extra="forbid")

    base64: Optional[str] = None
    text: Optional[str] = None
    path: Optional[str] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None


class EndpointRequest(CamelModel):
    """Caller input for one endpoint invocation."""

    model_config = ConfigDict(extra="forbid")

    path_params: Dict[str, Any] = Field(default_factory=dict)
    query: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    files: Dict[str, FileDescriptor] = Field(default_factory=dict)
    content_type: Optional[str] = None
    accept: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    retry429: Optional[RetryConfig] = None


class RequestSummary(CamelModel):
    """The outgoing request as echoed back to the caller."""

    url: str
    method: str
    redacted_headers: Dict[str, str]
    endpoint_id: str


class ResponseSummary(CamelModel):
    """The decoded upstream response."""

    status: int
    headers: Dict[str, str]
    body_type: BodyType
    body_json: Any = None
    body_text: Optional[str] = None
    body_base64: Optional[str] = None


_BODY_FIELDS = {"json": "bodyJson", "text": "bodyText", "binary": "bodyBase64"}


class RequestExecutionResult(CamelModel):
    """Result of one executed endpoint call."""

    request: RequestSummary
    response: ResponseSummary
    timing_ms: int
    auth_used: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary with camelCase keys.

        Only the body field matching ``bodyType`` is included.

        Returns:
            The result as a dictionary
        """
        data = self.model_dump(by_alias=True)
        response = data["response"]
        keep = _BODY_FIELDS.get(self.response.body_type)
        for key in _BODY_FIELDS.values():
            if key != keep:
                response.pop(key, None)
        return data
