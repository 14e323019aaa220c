import json
from unittest import IsolatedAsyncioTestCase, mock

import requests

from .client import RemoteGateway
from .errors import AuthenticationError, ConflictError, TransportError, ValidationError
from .session import MemorySessionStore


def _response(status: int, payload=None) -> mock.Mock:
    response = mock.Mock(status_code=status)
    response.content = json.dumps(payload).encode() if payload is not None else b""
    response.text = response.content.decode()
    response.json.return_value = payload
    return response


class RemoteGatewayTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = MemorySessionStore()
        self.http = mock.Mock(spec=requests.Session)
        self.gateway = RemoteGateway(self.store, base_url="http://api.test/api/", timeout=3, http=self.http)

    def _last_call(self):
        args, kwargs = self.http.request.call_args
        return args, kwargs

    async def test_check_user_sends_stored_token(self):
        self.store.set("alice", "tok-1", expires_at=0)
        self.http.request.return_value = _response(200, {"user_exists": True, "authenticated": False})

        result = await self.gateway.check_user("Alice")

        self.assertTrue(result.user_exists)
        args, kwargs = self._last_call()
        self.assertEqual(args, ("POST", "http://api.test/api/players/check-user"))
        self.assertEqual(kwargs["json"], {"username": "Alice"})
        self.assertEqual(kwargs["headers"], {"Authorization": "Bearer tok-1"})
        self.assertEqual(kwargs["timeout"], 3)

    async def test_login_sends_no_token(self):
        user = {"id": "p1", "username": "alice", "role": "user", "lowest_time": None}
        self.http.request.return_value = _response(200, {"user": user, "token": "tok", "expires_at": 10.0})

        result = await self.gateway.login("alice", "pw")

        self.assertEqual(result.token, "tok")
        self.assertEqual(self._last_call()[1]["headers"], {})

    async def test_connection_failure_is_a_transport_error(self):
        self.http.request.side_effect = requests.ConnectionError("refused")

        with self.assertLogs("riddlegame.client", level="WARNING"):
            with self.assertRaises(TransportError) as ctx:
                await self.gateway.leaderboard()

        self.assertEqual(str(ctx.exception), "Failed to fetch leaderboard.")
        self.assertIn("refused", ctx.exception.details)

    async def test_server_errors_map_back_to_domain_errors(self):
        self.http.request.return_value = _response(401, {"detail": "Invalid password"})
        with self.assertRaisesRegex(AuthenticationError, "Invalid password"):
            await self.gateway.login("alice", "nope")

        self.http.request.return_value = _response(409, {"detail": "Username 'alice' already exists."})
        with self.assertRaises(ConflictError):
            await self.gateway.signup("alice", "pw")

        self.http.request.return_value = _response(400, {"detail": "Invalid riddle.", "details": ["hint must not be empty"]})
        with self.assertRaises(ValidationError) as ctx:
            await self.gateway.create_riddle("alice", {})
        self.assertEqual(ctx.exception.details, ["hint must not be empty"])

    async def test_schema_errors_keep_the_field_problems(self):
        problems = [{"loc": ["body", "password"], "msg": "Field required"}]
        self.http.request.return_value = _response(422, {"detail": problems})

        with self.assertRaises(ValidationError) as ctx:
            await self.gateway.signup("alice", "")

        self.assertEqual(str(ctx.exception), "Failed to sign up.")
        self.assertEqual(ctx.exception.details, problems)

    async def test_unexpected_status_is_a_transport_error(self):
        self.http.request.return_value = _response(500, {"detail": "boom"})

        with self.assertRaises(TransportError) as ctx:
            await self.gateway.record_time("p1", 12.0)

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.details, "boom")

    async def test_riddles_for_passes_the_filter(self):
        self.http.request.return_value = _response(200, [])

        self.assertEqual(await self.gateway.riddles_for("p1", "easy", unsolved=False), [])

        args, kwargs = self._last_call()
        self.assertEqual(args[1], "http://api.test/api/players/p1/riddles")
        self.assertEqual(kwargs["params"], {"difficulty": "easy", "unsolved": "false"})

    async def test_logout_clears_token_even_when_already_rejected(self):
        self.store.set("alice", "tok-1", expires_at=100.0)
        self.http.request.return_value = _response(401, {"detail": "Token has expired"})

        await self.gateway.logout("alice")

        self.assertIsNone(self.store.get("alice"))

    async def test_logout_transport_failure_still_clears_token(self):
        self.store.set("alice", "tok-1", expires_at=100.0)
        self.http.request.side_effect = requests.Timeout("slow")

        with self.assertRaises(TransportError):
            await self.gateway.logout("alice")

        self.assertIsNone(self.store.get("alice"))
