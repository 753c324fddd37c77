"""Tests for AssistantResponder."""

import json

import httpx
import pytest

from nativeiq.assistant import NO_INFORMATION_RESPONSE, AssistantResponder
from nativeiq.errors import AssistantError
from nativeiq.models import ChatTurn

ENDPOINT = "http://assistant.test/api/chat"


def make_responder(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AssistantResponder(client, ENDPOINT, user_id="user_alice", **kwargs)


class TestResponderSuccess:
    """Tests for successful endpoint calls."""

    async def test_returns_endpoint_message(self):
        """Test a successful completion."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"message": "Revenue is up.", "usage": {}})

        reply = await make_responder(handler).respond("revenue?", [])

        assert reply.content == "Revenue is up."
        assert not reply.is_fallback
        assert requests[0].headers["X-User-Id"] == "user_alice"
        assert json.loads(requests[0].content) == {"message": "revenue?", "history": []}

    async def test_history_window_and_system_prompt(self):
        """Test that only the last turns and the system prompt are sent."""
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"message": "ok"})

        history = [ChatTurn(role="user", content=f"turn {i}") for i in range(6)]
        responder = make_responder(handler, history_window=2, system_prompt="Be brief")
        await responder.respond("now", history)

        assert payloads[0]["history"] == [
            {"role": "user", "content": "turn 4"},
            {"role": "user", "content": "turn 5"},
        ]
        assert payloads[0]["systemPrompt"] == "Be brief"


class TestResponderFallback:
    """Tests for failures answered from the fallback table."""

    async def test_error_status_uses_error_body(self):
        """Test that the error envelope's code is kept."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500,
                json={"error": {"code": "SERVER_CONFIG", "message": "no key", "details": {}}},
            )

        reply = await make_responder(handler).respond("revenue", [])

        assert reply.is_fallback
        assert reply.content.startswith("Total revenue")
        assert isinstance(reply.error, AssistantError)
        assert reply.error.code == "SERVER_CONFIG"
        assert reply.error.status == 500

    async def test_error_status_without_envelope(self):
        """Test a bare error response."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        reply = await make_responder(handler).respond("hello", [])

        assert reply.content == NO_INFORMATION_RESPONSE
        assert reply.error.code == "HTTP_ERROR"

    async def test_timeout(self):
        """Test that a timeout falls back with code TIMEOUT."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        reply = await make_responder(handler, timeout=5).respond("hello", [])

        assert reply.is_fallback
        assert reply.error.code == "TIMEOUT"
        assert reply.error.retryable

    async def test_transport_error(self):
        """Test that connection failures fall back."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        reply = await make_responder(handler).respond("hello", [])
        assert reply.error.code == "TRANSPORT_ERROR"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"usage": {}}),
            httpx.Response(200, json={"message": "   "}),
            httpx.Response(200, json=["message"]),
        ],
    )
    async def test_malformed_response(self, response):
        """Test that unusable bodies fall back with BAD_RESPONSE."""

        def handler(request: httpx.Request) -> httpx.Response:
            return response

        reply = await make_responder(handler).respond("hello", [])
        assert reply.error.code == "BAD_RESPONSE"

    async def test_custom_fallback(self):
        """Test injecting a fallback function."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        responder = make_responder(handler, fallback=lambda prompt: f"offline: {prompt}")
        reply = await responder.respond("hello", [])
        assert reply.content == "offline: hello"
