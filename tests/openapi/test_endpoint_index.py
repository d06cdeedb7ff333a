"""Tests for the endpoint index."""

import unittest

from fixtures.sample_specs import petstore_spec

from openapi_mcp.errors import ErrorCode, OpenApiMcpError
from openapi_mcp.openapi.endpoints import build_endpoint_index, normalize_path_for_id


class TestNormalizePath(unittest.TestCase):
    """Tests for normalize_path_for_id."""

    def test_strips_trailing_slashes_and_whitespace(self):
        self.assertEqual(normalize_path_for_id("/reports/"), "/reports")
        self.assertEqual(normalize_path_for_id("/a b//"), "/ab")

    def test_empty_becomes_root(self):
        self.assertEqual(normalize_path_for_id(""), "/")
        self.assertEqual(normalize_path_for_id("/"), "/")


class TestBuildEndpointIndex(unittest.TestCase):
    """Tests for build_endpoint_index."""

    def setUp(self):
        self.endpoints, self.by_id = build_endpoint_index(petstore_spec())

    def test_unique_operation_ids_are_used_verbatim(self):
        for endpoint_id in ("listPets", "createPet", "getPet", "deletePet", "uploadPhoto"):
            self.assertIn(endpoint_id, self.by_id)
            self.assertEqual(self.by_id[endpoint_id].operation_id, endpoint_id)

    def test_missing_operation_id_falls_back_to_method_and_path(self):
        self.assertIn("GET /health", self.by_id)
        self.assertIsNone(self.by_id["GET /health"].operation_id)

    def test_shared_operation_id_falls_back_for_both(self):
        self.assertIn("GET /reports", self.by_id)
        self.assertIn("GET /reports/daily", self.by_id)
        self.assertNotIn("report", self.by_id)
        self.assertEqual(self.by_id["GET /reports"].operation_id, "report")

    def test_sorted_by_path_then_method(self):
        order = [(endpoint.path, endpoint.method) for endpoint in self.endpoints]
        self.assertEqual(
            order,
            [
                ("/health", "get"),
                ("/pets", "get"),
                ("/pets", "post"),
                ("/pets/{petId}", "delete"),
                ("/pets/{petId}", "get"),
                ("/pets/{petId}/photo", "post"),
                ("/reports/", "get"),
                ("/reports/daily", "get"),
            ],
        )
        self.assertEqual(len(self.endpoints), len(self.by_id))

    def test_endpoint_carries_operation_and_path_item(self):
        endpoint = self.by_id["getPet"]
        self.assertEqual(endpoint.method, "get")
        self.assertEqual(endpoint.path, "/pets/{petId}")
        self.assertEqual(endpoint.tags, ["pets"])
        self.assertEqual(endpoint.summary, "Get a pet")
        self.assertEqual([param["name"] for param in endpoint.parameters], ["petId"])

    def test_n_unique_operations_give_n_entries(self):
        spec = {
            "openapi": "3.0.0",
            "paths": {
                f"/items/{index}": {"get": {"operationId": f"op{index}"}} for index in range(5)
            },
        }
        endpoints, by_id = build_endpoint_index(spec)
        self.assertEqual(len(endpoints), 5)
        self.assertEqual(sorted(by_id), [f"op{index}" for index in range(5)])

    def test_colliding_ids_raise_schema_error(self):
        spec = {
            "openapi": "3.0.0",
            "paths": {
                "/a": {"get": {"operationId": "GET /b"}},
                "/b": {"get": {}},
            },
        }
        with self.assertRaises(OpenApiMcpError) as ctx:
            build_endpoint_index(spec)
        self.assertEqual(ctx.exception.code, ErrorCode.SCHEMA_ERROR)
        self.assertEqual(ctx.exception.details, {"path": "/b", "method": "get"})

    def test_non_operation_keys_are_ignored(self):
        spec = {
            "openapi": "3.0.0",
            "paths": {"/a": {"summary": "x", "parameters": [], "get": {"operationId": "a"}}},
        }
        endpoints, _ = build_endpoint_index(spec)
        self.assertEqual([endpoint.endpoint_id for endpoint in endpoints], ["a"])


if __name__ == "__main__":
    unittest.main()
