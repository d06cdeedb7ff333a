"""Tests for configuration loading."""

import os
import tempfile
import unittest

from pydantic import ValidationError

from openapi_mcp.config import ApiConfig, RootConfig, load_config
from openapi_mcp.errors import ErrorCode, OpenApiMcpError

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


class TestConfigModels(unittest.TestCase):
    """Tests for ApiConfig and RootConfig validation."""

    def test_camel_case_keys(self):
        config = ApiConfig.model_validate(
            {
                "name": "petstore",
                "specUrl": "https://example.com/openapi.json",
                "baseUrl": "https://api.example.com",
                "timeoutMs": 1000,
                "oauth2": {"tokenUrlOverride": "https://auth", "scopes": ["a"]},
                "retry429": {"maxRetries": 3, "respectRetryAfter": False},
            }
        )
        self.assertEqual(config.spec_url, "https://example.com/openapi.json")
        self.assertEqual(config.timeout_ms, 1000)
        self.assertEqual(config.oauth2.token_url_override, "https://auth")
        self.assertEqual(config.retry429.max_retries, 3)
        self.assertFalse(config.retry429.respect_retry_after)

    def test_defaults(self):
        config = ApiConfig(name="petstore", spec_path="spec.yaml")
        self.assertEqual(config.timeout_ms, 30000)
        self.assertEqual(config.headers, {})
        self.assertIsNone(config.retry429)

    def test_exactly_one_spec_source(self):
        with self.assertRaises(ValidationError):
            ApiConfig(name="petstore")
        with self.assertRaises(ValidationError):
            ApiConfig(name="petstore", spec_path="a.yaml", spec_url="https://x/b.yaml")

    def test_invalid_values(self):
        invalid = [
            {"name": "", "specPath": "a.yaml"},
            {"name": "a", "specPath": "a.yaml", "timeoutMs": 0},
            {"name": "a", "specPath": "a.yaml", "retry429": {"maxRetries": -1}},
            {"name": "a", "specPath": "a.yaml", "retry429": {"jitterRatio": 2}},
            {"name": "a", "specPath": "a.yaml", "oauth2": {"tokenEndpointAuthMethod": "jwt"}},
            {"name": "a", "specPath": "a.yaml", "unknown": True},
        ]
        for raw in invalid:
            with self.assertRaises(ValidationError, msg=str(raw)):
                ApiConfig.model_validate(raw)

    def test_root_config(self):
        with self.assertRaises(ValidationError):
            RootConfig.model_validate({"version": 2, "apis": [{"name": "a", "specPath": "a"}]})
        with self.assertRaises(ValidationError):
            RootConfig.model_validate({"apis": []})

    def test_names_must_be_unique_after_normalization(self):
        with self.assertRaises(ValidationError):
            RootConfig.model_validate(
                {
                    "apis": [
                        {"name": "pet-store", "specPath": "a.yaml"},
                        {"name": "PET_STORE", "specPath": "b.yaml"},
                    ]
                }
            )


class TestLoadConfig(unittest.TestCase):
    """Tests for load_config."""

    def write_config(self, directory, text):
        path = os.path.join(directory, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_loads_fixture_and_resolves_spec_path(self):
        config = load_config(os.path.join(FIXTURES_DIR, "config.yaml"))

        api = config.apis[0]
        self.assertEqual(config.version, 1)
        self.assertEqual(api.name, "petstore")
        self.assertEqual(api.spec_path, os.path.join(os.path.abspath(FIXTURES_DIR), "petstore.yaml"))
        self.assertEqual(api.timeout_ms, 5000)
        self.assertEqual(api.headers, {"X-Client": "openapi-mcp"})
        self.assertEqual(api.retry429.max_retries, 2)

    def test_missing_file(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            load_config(os.path.join(FIXTURES_DIR, "missing.yaml"))
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_ERROR)

    def test_invalid_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, "apis: [unclosed")
            with self.assertRaises(OpenApiMcpError) as ctx:
                load_config(path)
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_ERROR)

    def test_validation_error_names_the_field(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(
                tmpdir, "apis:\n  - name: a\n    specUrl: https://x/a.yaml\n    timeoutMs: -1\n"
            )
            with self.assertRaises(OpenApiMcpError) as ctx:
                load_config(path)

        error = ctx.exception
        self.assertEqual(error.code, ErrorCode.CONFIG_ERROR)
        self.assertTrue(error.message.startswith("apis.0.timeoutMs:"), error.message)
        self.assertEqual(error.details["issues"][0]["path"], ["apis", 0, "timeoutMs"])

    def test_empty_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, "")
            with self.assertRaises(OpenApiMcpError) as ctx:
                load_config(path)
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_ERROR)

    def test_missing_spec_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, "apis:\n  - name: a\n    specPath: nope.yaml\n")
            with self.assertRaises(OpenApiMcpError) as ctx:
                load_config(path)
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_ERROR)
        self.assertTrue(ctx.exception.details["specPath"].endswith("nope.yaml"))


if __name__ == "__main__":
    unittest.main()
