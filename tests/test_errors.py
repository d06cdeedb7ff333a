import json
import unittest

from pydantic import ValidationError

from openapi_mcp.errors import ErrorCode, OpenApiMcpError, as_error_response, from_validation_error
from openapi_mcp.openapi.models import EndpointRequest


class TestErrors(unittest.TestCase):
    """Tests for the structured error type."""

    def test_to_dict(self):
        error = OpenApiMcpError(ErrorCode.AUTH_ERROR, "nope", {"failures": []})
        self.assertEqual(
            error.to_dict(), {"code": "AUTH_ERROR", "message": "nope", "details": {"failures": []}}
        )
        self.assertEqual(str(error), "nope")

    def test_details_are_optional(self):
        error = OpenApiMcpError("API_NOT_FOUND", "missing")
        self.assertEqual(error.code, ErrorCode.API_NOT_FOUND)
        self.assertEqual(error.to_dict(), {"code": "API_NOT_FOUND", "message": "missing"})

    def test_as_error_response(self):
        error = OpenApiMcpError(ErrorCode.SCHEMA_ERROR, "bad", {"pointer": "/x"})
        self.assertEqual(as_error_response(error), error.to_dict())

        payload = as_error_response(RuntimeError("unexpected"))
        self.assertEqual(payload, {"code": "REQUEST_ERROR", "message": "unexpected"})
        self.assertEqual(as_error_response(KeyError())["message"], "KeyError")
        json.dumps(payload)

    def test_from_validation_error(self):
        with self.assertRaises(ValidationError) as ctx:
            EndpointRequest.model_validate({"timeoutMs": 0})

        error = from_validation_error(ctx.exception, ErrorCode.REQUEST_ERROR, "arguments")
        self.assertEqual(error.code, ErrorCode.REQUEST_ERROR)
        self.assertTrue(error.message.startswith("timeoutMs:"))
        self.assertEqual(error.details["issues"][0]["path"], ["timeoutMs"])


if __name__ == "__main__":
    unittest.main()
