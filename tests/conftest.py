"""Shared pytest fixtures and configuration for pytest."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import pytest

from riotplan.mcp.protocol import PROTOCOL_VERSION

SERVER_URL = "http://riotplan.test"

Responder = Callable[[dict[str, Any], httpx.Request], "httpx.Response | Awaitable[httpx.Response]"]


def jsonrpc_result(request_id: Any, result: Any, **headers: str) -> httpx.Response:
    return httpx.Response(
        200, json={"jsonrpc": "2.0", "id": request_id, "result": result}, headers=headers
    )


def jsonrpc_error(request_id: Any, code: int, message: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}},
    )


def text_result(text: str, is_error: bool = False) -> dict[str, Any]:
    """A tools/call result with a single text content item."""
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class FakeMCPServer:
    """In-process RiotPlan server behind httpx.MockTransport.

    - initialize issues a fresh session id (sess-1, sess-2, ...)
    - notifications (null id) are answered 202 with an empty body
    - tools/call is routed to ``tools[name](arguments)``
    - other methods answer ``results[method]`` or a registered responder
    - GET /mcp pops ``stream_responses`` (405 once they run out)
    """

    result_response = staticmethod(jsonrpc_result)
    error_response = staticmethod(jsonrpc_error)
    text_result = staticmethod(text_result)

    def __init__(self) -> None:
        self.posts: list[dict[str, Any]] = []
        self.post_headers: list[httpx.Headers] = []
        self.stream_requests: list[httpx.Request] = []
        self.other_requests: list[httpx.Request] = []
        self.results: dict[str, Any] = {}
        self.tools: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {}
        self.responders: dict[str, Responder] = {}
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.stream_responses: list[httpx.Response | Exception] = []
        self.health_status = 200
        self.handshake_delay = 0.0
        self.session_counter = 0
        self.session_id: str | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def methods(self) -> list[str]:
        return [post["method"] for post in self.posts]

    def count(self, method: str) -> int:
        return self.methods().count(method)

    def tool_calls(self) -> list[dict[str, Any]]:
        return [post["params"] for post in self.posts if post["method"] == "tools/call"]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/health":
            return httpx.Response(self.health_status)
        if request.method == "GET" and path == "/mcp":
            self.stream_requests.append(request)
            if self.stream_responses:
                response = self.stream_responses.pop(0)
                if isinstance(response, Exception):
                    raise response
                return response
            return httpx.Response(405)
        if (request.method, path) in self.routes:
            self.other_requests.append(request)
            return self.routes[(request.method, path)](request)

        body = json.loads(request.content)
        self.posts.append(body)
        self.post_headers.append(request.headers)
        method = body["method"]

        if method in self.responders:
            response = self.responders[method](body, request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response
        if method == "initialize":
            if self.handshake_delay:
                await asyncio.sleep(self.handshake_delay)
            self.session_counter += 1
            self.session_id = f"sess-{self.session_counter}"
            return jsonrpc_result(
                body["id"],
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {}, "resources": {"subscribe": True}},
                    "serverInfo": {"name": "riotplan", "version": "1.0.0"},
                },
                **{"mcp-session-id": self.session_id},
            )
        if body.get("id") is None:
            return httpx.Response(202)
        if method == "tools/call":
            name = body["params"]["name"]
            if name not in self.tools:
                return jsonrpc_error(body["id"], -32601, f"Unknown tool: {name}")
            return jsonrpc_result(body["id"], self.tools[name](body["params"]["arguments"]))
        return jsonrpc_result(body["id"], self.results.get(method, {}))


@pytest.fixture
def server() -> FakeMCPServer:
    return FakeMCPServer()
