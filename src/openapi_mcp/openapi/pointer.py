"""JSON pointer (RFC 6901) lookup into an OpenAPI document."""

from typing import Any, Optional

from ..errors import ErrorCode, OpenApiMcpError


def get_by_json_pointer(root: Any, pointer: Optional[str] = None) -> Any:
    """Return the value a JSON pointer refers to.

    Args:
        root: Document to search
        pointer: Pointer such as ``/paths/~1pets/get``; empty returns the root

    Returns:
        The referenced value

    Raises:
        OpenApiMcpError: SCHEMA_ERROR when the pointer is malformed or does not resolve
    """
    if not pointer:
        return root

    if not pointer.startswith("/"):
        raise OpenApiMcpError(
            ErrorCode.SCHEMA_ERROR, "JSON pointer must start with '/'", {"pointer": pointer}
        )

    tokens = [part.replace("~1", "/").replace("~0", "~") for part in pointer[1:].split("/")]

    cursor = root
    for token in tokens:
        if isinstance(cursor, list):
            if not token.isdigit() or int(token) >= len(cursor):
                raise OpenApiMcpError(
                    ErrorCode.SCHEMA_ERROR,
                    "JSON pointer index out of bounds",
                    {"pointer": pointer, "token": token},
                )
            cursor = cursor[int(token)]
            continue

        if not isinstance(cursor, dict) or token not in cursor:
            raise OpenApiMcpError(
                ErrorCode.SCHEMA_ERROR,
                "JSON pointer target does not exist",
                {"pointer": pointer, "token": token},
            )
        cursor = cursor[token]

    return cursor
