"""OpenAPI document handling, auth negotiation and request execution."""

from .executor import RequestExecutor
from .models import EndpointDefinition, EndpointRequest, RequestExecutionResult
from .spec import ApiDescriptor, ApiRegistry, load_api_registry

__all__ = [
    "ApiDescriptor",
    "ApiRegistry",
    "EndpointDefinition",
    "EndpointRequest",
    "RequestExecutionResult",
    "RequestExecutor",
    "load_api_registry",
]
