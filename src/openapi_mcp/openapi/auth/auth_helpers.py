"""Authentication helpers for OpenAPI.

Resolved authentication schemes and how each one is applied to an outgoing
request (headers, query parameters or cookies).
"""

import base64
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple, Union

from fastapi.openapi.models import APIKeyIn
from pydantic import BaseModel, Field


class AuthSchemeType(str, Enum):
    """Types of authentication schemes."""

    apiKey = "apiKey"
    http = "http"
    oauth2 = "oauth2"


class HttpScheme(str, Enum):
    """HTTP authentication schemes."""

    bearer = "bearer"
    basic = "basic"


class ResolvedApiKeyAuth(BaseModel):
    """An API key placed in a header, query parameter or cookie."""

    type: Literal["apiKey"] = "apiKey"
    scheme_name: str
    in_: APIKeyIn
    name: str
    value: str


class ResolvedHttpAuth(BaseModel):
    """HTTP Bearer or Basic credentials."""

    type: Literal["http"] = "http"
    scheme_name: str
    scheme: HttpScheme
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def authorization(self) -> str:
        """Get the Authorization header value."""
        if self.scheme == HttpScheme.basic:
            raw = f"{self.username}:{self.password}"
            return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")
        return f"Bearer {self.token}"


class ResolvedOAuth2Auth(BaseModel):
    """An OAuth2 access token."""

    type: Literal["oauth2"] = "oauth2"
    scheme_name: str
    token: str

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token}"


ResolvedAuthScheme = Union[ResolvedApiKeyAuth, ResolvedHttpAuth, ResolvedOAuth2Auth]


class ResolvedAuth(BaseModel):
    """Outcome of auth negotiation for one call."""

    auth_used: List[str] = Field(default_factory=list)
    schemes: List[ResolvedAuthScheme] = Field(default_factory=list)


def set_header(headers: Dict[str, str], name: str, value: str) -> None:
    """Set a header in place, replacing any existing spelling of its name."""
    for key in [key for key in headers if key.lower() == name.lower()]:
        del headers[key]
    headers[name] = value


def set_query_param(
    query: List[Tuple[str, str]], name: str, value: str
) -> List[Tuple[str, str]]:
    """Replace every entry named ``name`` with a single new entry."""
    return [(key, item) for key, item in query if key != name] + [(name, value)]


def apply_auth(
    schemes: List[ResolvedAuthScheme],
    headers: Dict[str, str],
    query: List[Tuple[str, str]],
    cookies: Dict[str, str],
) -> List[Tuple[str, str]]:
    """Apply resolved schemes to the request parts.

    Headers and cookies are updated in place.

    Args:
        schemes: Resolved schemes in declaration order
        headers: Outgoing headers
        query: Outgoing query entries
        cookies: Outgoing cookie jar

    Returns:
        The updated query entries
    """
    for scheme in schemes:
        if isinstance(scheme, ResolvedApiKeyAuth):
            if scheme.in_ == APIKeyIn.header:
                set_header(headers, scheme.name, scheme.value)
            elif scheme.in_ == APIKeyIn.query:
                query = set_query_param(query, scheme.name, scheme.value)
            else:
                cookies[scheme.name] = scheme.value
            continue

        # HTTP and OAuth2 auth always go in the Authorization header
        set_header(headers, "authorization", scheme.authorization)

    return query
