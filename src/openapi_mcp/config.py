"""
Name: Configuration loading.
Description: Typed configuration for openapi-mcp. A YAML file lists the APIs to serve, each with its document source, optional base URL, static headers, timeout, OAuth2 overrides and 429 retry defaults.
"""

import logging
import os
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import ConfigDict, Field, ValidationError, model_validator

from .constants import DEFAULT_TIMEOUT_MS
from .errors import ErrorCode, OpenApiMcpError, from_validation_error
from .openapi.auth.env import normalize_env_segment
from .openapi.models import ApiOauth2Config, CamelModel, RetryConfig

logger = logging.getLogger(__name__)


class ApiConfig(CamelModel):
    """Configuration for an API."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    spec_path: Optional[str] = None
    spec_url: Optional[str] = None
    base_url: Optional[str] = None
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)
    oauth2: Optional[ApiOauth2Config] = None
    retry429: Optional[RetryConfig] = None

    @model_validator(mode="after")
    def check_spec_source(self) -> "ApiConfig":
        if bool(self.spec_path) == bool(self.spec_url):
            raise ValueError("Exactly one of specPath or specUrl must be set")
        return self


class RootConfig(CamelModel):
    """Top-level configuration file."""

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    apis: List[ApiConfig] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_names(self) -> "RootConfig":
        seen = {}
        for api in self.apis:
            key = normalize_env_segment(api.name)
            if key in seen:
                raise ValueError(
                    f"API names '{seen[key]}' and '{api.name}' collide after normalization"
                )
            seen[key] = api.name
        return self


def load_config(config_path: str) -> RootConfig:
    """Load and validate a configuration file.

    Relative ``specPath`` values are resolved against the directory of the
    configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        The validated configuration

    Raises:
        OpenApiMcpError: CONFIG_ERROR when the file is unreadable or invalid
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR,
            f"Unable to read config file '{config_path}'",
            {"cause": str(e)},
        )
    except yaml.YAMLError as e:
        raise OpenApiMcpError(
            ErrorCode.CONFIG_ERROR,
            f"Invalid YAML in config file '{config_path}'",
            {"cause": str(e)},
        )

    try:
        config = RootConfig.model_validate(raw if raw is not None else {})
    except ValidationError as e:
        raise from_validation_error(e, ErrorCode.CONFIG_ERROR, "config")

    config_dir = os.path.dirname(os.path.abspath(config_path))
    for api in config.apis:
        if not api.spec_path:
            continue
        spec_path = os.path.normpath(os.path.join(config_dir, api.spec_path))
        if not os.path.isfile(spec_path):
            raise OpenApiMcpError(
                ErrorCode.CONFIG_ERROR,
                f"Spec file for API '{api.name}' does not exist",
                {"specPath": spec_path},
            )
        api.spec_path = spec_path

    logger.debug(f"Loaded config with {len(config.apis)} APIs from {config_path}")
    return config
