import os
import unittest
from io import StringIO
from unittest.mock import MagicMock, patch

from openapi_mcp.constants import DEFAULT_HOST, DEFAULT_PORT
from openapi_mcp.main import list_command, main, serve_command

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")
CONFIG_PATH = os.path.join(FIXTURES_DIR, "config.yaml")


class TestMainCLI(unittest.TestCase):

    @patch("openapi_mcp.main.serve_command")
    def test_serve_command_defaults(self, mock_serve_command):
        """Test the 'serve' command with default options."""
        with patch("sys.argv", ["openapi-mcp", "serve", "--config", "config.yaml"]):
            main()
        mock_serve_command.assert_called_once()
        called_args = mock_serve_command.call_args[0][0]
        self.assertEqual(called_args.config, "config.yaml")
        self.assertEqual(called_args.transport, "stdio")
        self.assertEqual(called_args.host, DEFAULT_HOST)
        self.assertEqual(called_args.port, DEFAULT_PORT)
        self.assertIsNone(called_args.env_file)
        self.assertFalse(called_args.debug)

    @patch("openapi_mcp.main.serve_command")
    def test_serve_command_sse(self, mock_serve_command):
        """Test the 'serve' command over SSE."""
        test_args = [
            "serve",
            "--config",
            "config.yaml",
            "--transport",
            "sse",
            "--port",
            "9000",
            "--env-file",
            ".env.test",
            "--debug",
        ]
        with patch("sys.argv", ["openapi-mcp"] + test_args):
            main()
        called_args = mock_serve_command.call_args[0][0]
        self.assertEqual(called_args.transport, "sse")
        self.assertEqual(called_args.port, 9000)
        self.assertEqual(called_args.env_file, ".env.test")
        self.assertTrue(called_args.debug)

    @patch("openapi_mcp.main.list_command")
    def test_list_command(self, mock_list_command):
        """Test the 'list' command."""
        with patch("sys.argv", ["openapi-mcp", "list", "--config", "config.yaml"]):
            main()
        mock_list_command.assert_called_once()
        self.assertEqual(mock_list_command.call_args[0][0].config, "config.yaml")

    def test_config_is_required(self):
        with patch("sys.argv", ["openapi-mcp", "serve"]), patch("sys.stderr", new_callable=StringIO):
            with self.assertRaises(SystemExit):
                main()

    @patch("sys.stdout", new_callable=StringIO)
    def test_no_command_prints_help(self, mock_stdout):
        with patch("sys.argv", ["openapi-mcp"]):
            main()
        self.assertIn("usage:", mock_stdout.getvalue())


class TestCommands(unittest.TestCase):

    def args(self, **overrides):
        args = MagicMock()
        args.config = CONFIG_PATH
        args.env_file = None
        args.debug = False
        args.transport = "stdio"
        args.host = DEFAULT_HOST
        args.port = DEFAULT_PORT
        for key, value in overrides.items():
            setattr(args, key, value)
        return args

    @patch("openapi_mcp.main.setup_environment")
    @patch("sys.stdout", new_callable=StringIO)
    def test_list_command_prints_endpoints(self, mock_stdout, mock_setup):
        mock_setup.return_value = {"PETSTORE_BASE_URL": "http://localhost:9000"}

        list_command(self.args())

        output = mock_stdout.getvalue()
        self.assertIn("Found 1 API(s):", output)
        self.assertIn("  - petstore (http://localhost:9000)", output)
        self.assertIn("    listPets: GET /pets", output)
        self.assertIn("    getPet: GET /pets/{petId}", output)

    @patch("openapi_mcp.main.setup_environment")
    @patch("sys.stderr", new_callable=StringIO)
    def test_config_errors_exit_with_payload(self, mock_stderr, mock_setup):
        mock_setup.return_value = {}

        with self.assertRaises(SystemExit) as ctx:
            list_command(self.args(config=os.path.join(FIXTURES_DIR, "missing.yaml")))

        self.assertEqual(ctx.exception.code, 1)
        self.assertIn('"code": "CONFIG_ERROR"', mock_stderr.getvalue())

    @patch("openapi_mcp.main.run_server")
    @patch("openapi_mcp.main.setup_environment")
    def test_serve_command_builds_context(self, mock_setup, mock_run_server):
        mock_setup.return_value = {"PETSTORE_BASE_URL": "http://localhost:9000"}

        serve_command(self.args(transport="sse", port=9100, env_file=".env.test"))

        mock_setup.assert_called_once_with(".env.test", debug=False)
        mock_run_server.assert_called_once()
        context = mock_run_server.call_args[0][0]
        self.assertEqual([api.name for api in context.registry], ["petstore"])
        self.assertIs(context.executor.token_cache, context.token_cache)
        self.assertEqual(context.env, {"PETSTORE_BASE_URL": "http://localhost:9000"})
        self.assertEqual(mock_run_server.call_args[1]["transport"], "sse")
        self.assertEqual(mock_run_server.call_args[1]["port"], 9100)


if __name__ == "__main__":
    unittest.main()
