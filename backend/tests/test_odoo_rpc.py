from __future__ import annotations

import unittest
from pathlib import Path
from unittest.mock import MagicMock
import sys

import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from bizops.services.odoo_rpc import OdooAuthError, OdooClient, OdooRpcError


def _response(payload=None, status_code: int = 200, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


def _result(value) -> MagicMock:
    return _response({"jsonrpc": "2.0", "id": 1, "result": value})


class OdooClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = MagicMock()
        self.client = OdooClient(
            url="http://odoo.test/",
            db="demo",
            username="bot@example.com",
            api_key="secret",
            timeout=3,
            session=self.session,
        )

    def test_search_read_logs_in_once_and_sends_execute_kw(self) -> None:
        self.session.post.side_effect = [_result(7), _result([{"id": 1}]), _result([{"id": 2}])]

        first = self.client.search_read("crm.lead", [["active", "=", True]], fields=["id"], limit=5, order="id desc")
        second = self.client.search_read("crm.lead", [])

        self.assertEqual(first, [{"id": 1}])
        self.assertEqual(second, [{"id": 2}])
        self.assertEqual(self.session.post.call_count, 3)
        login_call, first_call = self.session.post.call_args_list[:2]
        self.assertEqual(login_call.args[0], "http://odoo.test/jsonrpc")
        self.assertEqual(login_call.kwargs["json"]["params"]["method"], "login")
        params = first_call.kwargs["json"]["params"]
        self.assertEqual(params["service"], "object")
        self.assertEqual(params["method"], "execute_kw")
        self.assertEqual(
            params["args"],
            [
                "demo",
                7,
                "secret",
                "crm.lead",
                "search_read",
                [[["active", "=", True]]],
                {"offset": 0, "fields": ["id"], "limit": 5, "order": "id desc"},
            ],
        )
        self.assertEqual(first_call.kwargs["timeout"], 3)

    def test_failed_login_is_auth_error(self) -> None:
        self.session.post.return_value = _result(False)
        with self.assertRaises(OdooAuthError):
            self.client.search_count("crm.lead", [])

    def test_remote_error_carries_model(self) -> None:
        fault = {
            "jsonrpc": "2.0",
            "id": 2,
            "error": {
                "message": "Odoo Server Error",
                "data": {"name": "builtins.KeyError", "message": "Object helpdesk.ticket doesn't exist"},
            },
        }
        self.session.post.side_effect = [_result(7), _response(fault)]
        with self.assertRaises(OdooRpcError) as ctx:
            self.client.search_read("helpdesk.ticket", [])
        self.assertNotIsInstance(ctx.exception, OdooAuthError)
        self.assertEqual(ctx.exception.model, "helpdesk.ticket")
        self.assertIn("doesn't exist", str(ctx.exception))

    def test_access_denied_is_auth_error(self) -> None:
        fault = {"error": {"message": "Odoo Server Error", "data": {"name": "odoo.exceptions.AccessDenied", "message": "Access Denied"}}}
        self.session.post.return_value = _response(fault)
        with self.assertRaises(OdooAuthError):
            self.client.authenticate()

    def test_http_error_status(self) -> None:
        self.session.post.return_value = _response(status_code=502, text="bad gateway")
        with self.assertRaises(OdooRpcError) as ctx:
            self.client.version()
        self.assertIn("502", str(ctx.exception))

    def test_connection_errors_are_retried(self) -> None:
        self.session.post.side_effect = [requests.exceptions.ConnectionError("reset"), _result({"server_version": "17.0"})]
        self.assertEqual(self.client.version(), {"server_version": "17.0"})
        self.assertEqual(self.session.post.call_count, 2)

    def test_unconfigured_client_refuses_calls(self) -> None:
        client = OdooClient(url="", db="", username="", api_key="", session=self.session)
        self.assertFalse(client.configured)
        with self.assertRaises(OdooRpcError):
            client.search_count("crm.lead", [])
        self.session.post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
