"""
Name: Endpoint index.
Description: Builds a deterministic, collision-checked catalog of the operations declared in a dereferenced OpenAPI document. Each operation gets a stable endpoint id: its operationId when that is unique in the document, otherwise "METHOD /path".
"""

import re
from collections import Counter
from typing import Any, Dict, List, Tuple

from ..constants import HTTP_METHODS
from ..errors import ErrorCode, OpenApiMcpError
from .models import EndpointDefinition


_WHITESPACE = re.compile(r"\s+")


def normalize_path_for_id(path: str) -> str:
    """Strip whitespace and trailing slashes from a path; empty becomes '/'."""
    return _WHITESPACE.sub("", path).rstrip("/") or "/"


def _iter_operations(document: Dict[str, Any]):
    paths = document.get("paths") or {}
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if isinstance(operation, dict):
                yield path, method, operation, path_item


def build_endpoint_index(
    document: Dict[str, Any],
) -> Tuple[List[EndpointDefinition], Dict[str, EndpointDefinition]]:
    """Build the endpoint index of an OpenAPI document.

    Args:
        document: Dereferenced OpenAPI 3.x document

    Returns:
        Tuple of (endpoints sorted by path then method, endpoints keyed by id)

    Raises:
        OpenApiMcpError: SCHEMA_ERROR when two endpoints compute the same id
    """
    operation_id_counts = Counter(
        operation["operationId"]
        for _, _, operation, _ in _iter_operations(document)
        if operation.get("operationId")
    )

    endpoints: List[EndpointDefinition] = []
    endpoint_by_id: Dict[str, EndpointDefinition] = {}

    for path, method, operation, path_item in _iter_operations(document):
        operation_id = operation.get("operationId") or None
        if operation_id and operation_id_counts[operation_id] == 1:
            endpoint_id = operation_id
        else:
            endpoint_id = f"{method.upper()} {normalize_path_for_id(path)}"

        if endpoint_id in endpoint_by_id:
            raise OpenApiMcpError(
                ErrorCode.SCHEMA_ERROR,
                f"Endpoint ID collision for '{endpoint_id}'",
                {"path": path, "method": method},
            )

        endpoint = EndpointDefinition(
            endpoint_id=endpoint_id,
            method=method,
            path=path,
            operation_id=operation_id,
            summary=operation.get("summary"),
            description=operation.get("description"),
            tags=list(operation.get("tags") or []),
            operation=operation,
            path_item=path_item,
        )
        endpoint_by_id[endpoint_id] = endpoint
        endpoints.append(endpoint)

    endpoints.sort(key=lambda endpoint: (endpoint.path, endpoint.method))
    return endpoints, endpoint_by_id
