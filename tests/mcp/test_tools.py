"""Tests for the MCP tool handlers."""

import json
import unittest
from urllib.parse import parse_qs

import httpx

from fixtures.sample_specs import RecordingSleep, make_api, mock_client

from openapi_mcp.errors import ErrorCode, OpenApiMcpError
from openapi_mcp.mcp import tools
from openapi_mcp.mcp.tools import ToolContext, to_string_map
from openapi_mcp.openapi import ApiRegistry, RequestExecutor
from openapi_mcp.openapi.auth import OAuthTokenCache


class TestToStringMap(unittest.TestCase):
    def test_values_are_stringified(self):
        self.assertEqual(
            to_string_map({"a": 1, "b": True, "c": None, "d": "x"}),
            {"a": "1", "b": "true", "d": "x"},
        )
        self.assertEqual(to_string_map(None), {})


class ToolTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup: one pet store API answered by a mock transport."""

    def setUp(self):
        self.api = make_api()
        self.requests = []
        self.responses = []

        def handler(request):
            self.requests.append(request)
            if self.responses:
                return self.responses.pop(0)
            return httpx.Response(200, json={"id": 1})

        self.client = mock_client(handler)
        token_cache = OAuthTokenCache(client=self.client)
        executor = RequestExecutor(token_cache, client=self.client, sleep=RecordingSleep())
        self.context = ToolContext(
            ApiRegistry([self.api]),
            token_cache,
            executor,
            {"PETSTORE_APIKEYAUTH_API_KEY": "secret-key", "PETSTORE_BEARERAUTH_TOKEN": "tok"},
        )

    async def asyncTearDown(self):
        await self.client.aclose()


class TestListApis(ToolTestCase):

    async def test_list_apis(self):
        result = await tools.list_apis(self.context)
        self.assertEqual(
            result,
            {
                "apis": [
                    {
                        "name": "petstore",
                        "title": "Pet Store",
                        "version": "1.0.0",
                        "baseUrl": "https://api.example.com/v1",
                        "specSource": "inline.yaml",
                        "authSchemes": [
                            "ApiKeyAuth",
                            "QueryKey",
                            "CookieAuth",
                            "BearerAuth",
                            "BasicAuth",
                            "OAuthCC",
                        ],
                    }
                ]
            },
        )


class TestListApiEndpoints(ToolTestCase):

    async def ids(self, **kwargs):
        result = await tools.list_api_endpoints(self.context, "petstore", **kwargs)
        return [endpoint["endpointId"] for endpoint in result["endpoints"]]

    async def test_lists_all_in_order(self):
        result = await tools.list_api_endpoints(self.context, "PetStore")
        self.assertEqual(len(result["endpoints"]), 8)
        self.assertNotIn("nextCursor", result)
        self.assertEqual(
            result["endpoints"][1],
            {
                "endpointId": "listPets",
                "method": "get",
                "path": "/pets",
                "operationId": "listPets",
                "summary": "List pets",
                "tags": ["pets"],
            },
        )

    async def test_filters(self):
        self.assertEqual(await self.ids(method="DELETE"), ["deletePet"])
        self.assertEqual(await self.ids(tag="admin"), ["deletePet"])
        self.assertEqual(await self.ids(path_contains="photo"), ["uploadPhoto"])
        self.assertEqual(await self.ids(method="post", tag="pets"), ["createPet"])

    async def test_search_matches_any_term(self):
        self.assertEqual(await self.ids(search=["UPLOAD", "health"]), ["GET /health", "uploadPhoto"])
        self.assertEqual(await self.ids(search=["  "]), await self.ids())
        self.assertEqual(await self.ids(search=["nothing-matches"]), [])

    async def test_paging(self):
        first = await tools.list_api_endpoints(self.context, "petstore", limit=3)
        self.assertEqual(len(first["endpoints"]), 3)
        self.assertEqual(first["nextCursor"], "3")

        second = await tools.list_api_endpoints(
            self.context, "petstore", limit=3, cursor=first["nextCursor"]
        )
        third = await tools.list_api_endpoints(
            self.context, "petstore", limit=3, cursor=second["nextCursor"]
        )
        self.assertEqual(len(third["endpoints"]), 2)
        self.assertNotIn("nextCursor", third)

        ids = [
            endpoint["endpointId"]
            for page in (first, second, third)
            for endpoint in page["endpoints"]
        ]
        self.assertEqual(ids, await self.ids())

    async def test_invalid_cursor_starts_over(self):
        self.assertEqual(await self.ids(cursor="bogus"), await self.ids())
        self.assertEqual(await self.ids(cursor="-4"), await self.ids())
        self.assertEqual(await self.ids(cursor="100"), [])

    async def test_invalid_limit(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            await tools.list_api_endpoints(self.context, "petstore", limit=0)
        self.assertEqual(ctx.exception.code, ErrorCode.REQUEST_ERROR)

    async def test_unknown_api(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            await tools.list_api_endpoints(self.context, "missing")
        self.assertEqual(ctx.exception.code, ErrorCode.API_NOT_FOUND)


class TestGetApiEndpoint(ToolTestCase):

    async def test_describes_endpoint(self):
        result = await tools.get_api_endpoint(self.context, "petstore", "createPet")
        self.assertEqual(result["method"], "post")
        self.assertEqual(result["requestBody"], {"required": True, "contentTypes": ["application/json"]})
        self.assertEqual(result["security"], [{"BearerAuth": []}])
        self.assertEqual(result["responses"], {"201": {"description": "Created"}})
        self.assertEqual(result["parameters"], [])

    async def test_parameters_include_path_item_level(self):
        result = await tools.get_api_endpoint(self.context, "petstore", "deletePet")
        self.assertEqual(
            result["parameters"],
            [{"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}}],
        )
        self.assertEqual(result["requestBody"], {"required": False, "contentTypes": []})

    async def test_unknown_endpoint(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            await tools.get_api_endpoint(self.context, "petstore", "nope")
        self.assertEqual(ctx.exception.code, ErrorCode.ENDPOINT_NOT_FOUND)


class TestGetApiSchema(ToolTestCase):

    async def test_whole_document_and_pointer(self):
        result = await tools.get_api_schema(self.context, "petstore")
        self.assertEqual(result["pointer"], "")
        self.assertEqual(result["schema"]["info"]["title"], "Pet Store")

        result = await tools.get_api_schema(
            self.context, "petstore", "/components/schemas/Pet/properties/tags/items"
        )
        self.assertEqual(result["apiName"], "petstore")
        self.assertEqual(
            result["schema"], {"type": "object", "properties": {"name": {"type": "string"}}}
        )

    async def test_bad_pointer(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            await tools.get_api_schema(self.context, "petstore", "/nope")
        self.assertEqual(ctx.exception.code, ErrorCode.SCHEMA_ERROR)


class TestMakeEndpointRequest(ToolTestCase):

    async def test_executes_request(self):
        result = await tools.make_endpoint_request(
            self.context,
            "petstore",
            "listPets",
            query={"limit": 2},
            headers={"X-Trace": 1, "X-Debug": True, "X-Skip": None},
        )

        request = self.requests[0]
        self.assertEqual(parse_qs(request.url.query.decode()), {"limit": ["2"]})
        self.assertEqual(request.headers["x-trace"], "1")
        self.assertEqual(request.headers["x-debug"], "true")
        self.assertNotIn("x-skip", request.headers)

        self.assertEqual(result["response"]["status"], 200)
        self.assertEqual(result["response"]["bodyType"], "json")
        self.assertEqual(result["response"]["bodyJson"], {"id": 1})
        self.assertEqual(result["authUsed"], ["ApiKeyAuth"])
        self.assertEqual(result["request"]["redactedHeaders"]["X-API-Key"], "<redacted>")
        json.dumps(result)

    async def test_body_and_retry_options(self):
        self.responses.extend([httpx.Response(429), httpx.Response(201, text="created")])
        result = await tools.make_endpoint_request(
            self.context,
            "petstore",
            "createPet",
            body={"name": "Rex"},
            retry429={"maxRetries": 1, "jitterRatio": 0},
        )
        self.assertEqual(len(self.requests), 2)
        self.assertEqual(json.loads(self.requests[1].content), {"name": "Rex"})
        self.assertEqual(result["response"]["status"], 201)
        self.assertEqual(result["response"]["bodyType"], "text")
        self.assertEqual(result["response"]["bodyText"], "created")

    async def test_invalid_arguments(self):
        for kwargs in (
            {"timeout_ms": 0},
            {"retry429": {"maxRetries": -1}},
            {"files": {"a": {"unknown": "x"}}},
        ):
            with self.assertRaises(OpenApiMcpError) as ctx:
                await tools.make_endpoint_request(self.context, "petstore", "listPets", **kwargs)
            self.assertEqual(ctx.exception.code, ErrorCode.REQUEST_ERROR, kwargs)
        self.assertEqual(self.requests, [])

    async def test_unknown_endpoint(self):
        with self.assertRaises(OpenApiMcpError) as ctx:
            await tools.make_endpoint_request(self.context, "petstore", "missing")
        self.assertEqual(ctx.exception.code, ErrorCode.ENDPOINT_NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
