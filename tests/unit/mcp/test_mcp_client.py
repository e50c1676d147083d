"""Unit tests for MCPClient request dispatch and session recovery."""

import asyncio

import httpx
import pytest

from riotplan.config.schema import ClientConfig
from riotplan.core.errors import RiotPlanError
from riotplan.mcp.client import MCPClient
from riotplan.mcp.errors import ProtocolError, TransportError
from riotplan.mcp.protocol import RESOURCE_CHANGED


def make_client(server, **config) -> MCPClient:
    return MCPClient(
        ClientConfig(server_url="http://riotplan.test", **config),
        http_transport=server.transport,
    )


async def wait_for(predicate, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestConstruction:
    """Tests for the accepted config forms."""

    def test_url_string(self):
        client = MCPClient("http://localhost:4000/")
        assert client.config.server_url == "http://localhost:4000"
        assert client.transport.base_url == "http://localhost:4000"

    def test_defaults(self):
        client = MCPClient()
        assert client.config.server_url == "http://127.0.0.1:3002"
        assert not client.is_initialized
        assert client.session_id is None


class TestSendRequest:
    """Tests for send_request()."""

    @pytest.mark.asyncio
    async def test_handshake_before_first_request(self, server):
        server.results["tools/list"] = {"tools": [{"name": "riotplan_status"}]}
        async with make_client(server) as client:
            result = await client.send_request("tools/list")

        assert result == {"tools": [{"name": "riotplan_status"}]}
        assert server.methods() == ["initialize", "notifications/initialized", "tools/list"]

    @pytest.mark.asyncio
    async def test_request_envelope(self, server):
        async with make_client(server) as client:
            await client.send_request("tools/list")
            await client.send_request("resources/list", {"cursor": "c"})

        first, second = server.posts[2], server.posts[3]
        assert first["jsonrpc"] == "2.0"
        assert "params" not in first
        assert second["params"] == {"cursor": "c"}
        assert isinstance(first["id"], str) and first["id"]
        assert first["id"] != second["id"]

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_share_handshake(self, server):
        server.handshake_delay = 0.01
        async with make_client(server) as client:
            await asyncio.gather(*(client.send_request("tools/list") for _ in range(4)))

        assert server.count("initialize") == 1
        assert server.count("tools/list") == 4

    @pytest.mark.asyncio
    async def test_session_id_sent_on_later_requests(self, server):
        def handler(body, request):
            return server.result_response(body["id"], {}, **{"mcp-session-id": "abc123"})

        server.responders["initialize"] = handler
        async with make_client(server) as client:
            await client.send_request("tools/list")
            assert client.session_id == "abc123"

        assert server.post_headers[-1]["Mcp-Session-Id"] == "abc123"

    @pytest.mark.asyncio
    async def test_rotated_session_id_used_next(self, server):
        def rotate(body, request):
            return server.result_response(body["id"], {}, **{"mcp-session-id": "rotated"})

        server.responders["ping"] = rotate
        async with make_client(server) as client:
            await client.send_request("ping")
            await client.send_request("tools/list")
            assert client.session_id == "rotated"

        assert server.post_headers[-1]["mcp-session-id"] == "rotated"

    @pytest.mark.asyncio
    async def test_sse_framed_result(self, server):
        def sse(body, request):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=b'event: message\ndata: {"jsonrpc":"2.0","id":"1","result":{"ok":true}}\n\n',
            )

        server.responders["tools/list"] = sse
        async with make_client(server) as client:
            assert await client.send_request("tools/list") == {"ok": True}

    @pytest.mark.asyncio
    async def test_jsonrpc_error_raises_protocol_error(self, server):
        server.responders["tools/list"] = lambda body, request: server.error_response(
            body["id"], -32601, "Method not found"
        )
        async with make_client(server) as client:
            with pytest.raises(ProtocolError) as exc_info:
                await client.send_request("tools/list")

        assert exc_info.value.message == "Method not found"
        assert exc_info.value.code == -32601
        assert server.count("initialize") == 1

    @pytest.mark.asyncio
    async def test_error_without_message(self, server):
        server.responders["x"] = lambda body, request: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -1}}
        )
        async with make_client(server) as client:
            with pytest.raises(ProtocolError, match="MCP request failed"):
                await client.send_request("x")

    @pytest.mark.asyncio
    async def test_other_http_errors_not_retried(self, server):
        server.responders["tools/list"] = lambda body, request: httpx.Response(500, text="boom")
        async with make_client(server) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.send_request("tools/list")

        assert exc_info.value.status_code == 500
        assert server.count("tools/list") == 1
        assert server.count("initialize") == 1


class TestSessionRecovery:
    """Tests for recover-and-retry on session loss."""

    @pytest.mark.asyncio
    async def test_404_recovers_and_retries_once(self, server):
        def expire_first_session(body, request):
            if request.headers.get("mcp-session-id") == "sess-1":
                return httpx.Response(404, text="Not Found")
            return server.result_response(body["id"], {"tools": []})

        server.responders["tools/list"] = expire_first_session
        async with make_client(server) as client:
            result = await client.send_request("tools/list")
            assert client.session_id == "sess-2"
            assert client.session.recovery_count == 1

        assert result == {"tools": []}
        assert server.methods() == [
            "initialize",
            "notifications/initialized",
            "tools/list",
            "initialize",
            "notifications/initialized",
            "tools/list",
        ]

    @pytest.mark.asyncio
    async def test_second_session_error_surfaces(self, server):
        server.responders["tools/list"] = lambda body, request: httpx.Response(404, text="gone")
        async with make_client(server) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.send_request("tools/list")

        assert exc_info.value.status_code == 404
        assert server.count("tools/list") == 2
        assert server.count("initialize") == 2

    @pytest.mark.asyncio
    async def test_session_not_found_jsonrpc_error_recovers(self, server):
        def expire_first_session(body, request):
            if request.headers.get("mcp-session-id") == "sess-1":
                return server.error_response(body["id"], -32000, "Bad Request: Session not found")
            return server.result_response(body["id"], {"ok": True})

        server.responders["tools/list"] = expire_first_session
        async with make_client(server) as client:
            assert await client.send_request("tools/list") == {"ok": True}

        assert server.count("initialize") == 2

    @pytest.mark.asyncio
    async def test_concurrent_session_errors_single_recovery(self, server):
        server.handshake_delay = 0.01
        arrived = asyncio.Event()
        rejected: list[str] = []

        async def expire_first_session(body, request):
            if request.headers.get("mcp-session-id") == "sess-1":
                rejected.append(body["id"])
                if len(rejected) < 2:
                    await arrived.wait()
                else:
                    arrived.set()
                return httpx.Response(404, text="Not Found")
            return server.result_response(body["id"], {"ok": True})

        server.responders["tools/list"] = expire_first_session
        async with make_client(server) as client:
            results = await asyncio.gather(
                client.send_request("tools/list"), client.send_request("tools/list")
            )
            assert client.session.recovery_count == 1

        assert results == [{"ok": True}, {"ok": True}]
        assert server.count("initialize") == 2
        assert server.count("tools/list") == 4

    @pytest.mark.asyncio
    async def test_stale_session_error_retries_without_second_recovery(self, server):
        slow_arrived = asyncio.Event()
        release_slow = asyncio.Event()

        async def expire_first_session(body, request):
            if request.headers.get("mcp-session-id") != "sess-1":
                return server.result_response(body["id"], {"which": body["params"]["which"]})
            if body["params"]["which"] == "slow":
                slow_arrived.set()
                await release_slow.wait()
            return httpx.Response(404, text="Not Found")

        server.responders["tools/list"] = expire_first_session
        async with make_client(server) as client:
            await client.initialize()
            slow = asyncio.create_task(client.send_request("tools/list", {"which": "slow"}))
            await slow_arrived.wait()

            assert await client.send_request("tools/list", {"which": "fast"}) == {"which": "fast"}
            assert client.session_id == "sess-2"

            release_slow.set()
            assert await slow == {"which": "slow"}
            assert client.session.recovery_count == 1

        assert server.count("initialize") == 2

    @pytest.mark.asyncio
    async def test_stream_404_recovers_and_reopens_stream(self, server):
        server.stream_responses.append(httpx.Response(404))
        recovered: list[str] = []
        async with make_client(server) as client:
            client.on_session_recovered(lambda: recovered.append(client.session_id))
            await client.initialize()

            await wait_for(
                lambda: client.session.recovery_count == 1 and len(server.stream_requests) == 2
            )

            assert client.session_id == "sess-2"
            assert recovered == ["sess-2"]

        assert server.count("initialize") == 2
        assert [r.headers["mcp-session-id"] for r in server.stream_requests] == [
            "sess-1",
            "sess-2",
        ]

    @pytest.mark.asyncio
    async def test_recovery_listener_called(self, server):
        server.responders["tools/list"] = lambda body, request: (
            httpx.Response(404)
            if request.headers.get("mcp-session-id") == "sess-1"
            else server.result_response(body["id"], {})
        )
        calls: list[str] = []
        async with make_client(server) as client:
            remove = client.on_session_recovered(lambda: calls.append("recovered"))
            await client.send_request("tools/list")
            remove()

        assert calls == ["recovered"]

    @pytest.mark.asyncio
    async def test_initialize_is_not_retried(self, server):
        server.responders["initialize"] = lambda body, request: httpx.Response(404)
        async with make_client(server) as client:
            with pytest.raises(TransportError):
                await client.send_request("tools/list")

        assert server.count("initialize") == 1


class TestToolCalls:
    """Tests for call_tool() and the isError convention."""

    @pytest.mark.asyncio
    async def test_call_tool_envelope(self, server):
        server.tools["riotplan_status"] = lambda args: server.text_result("ok")
        async with make_client(server) as client:
            result = await client.call_tool("riotplan_status", {"planId": "p1"})
            await client.call_tool("riotplan_status")

        assert result == {"content": [{"type": "text", "text": "ok"}]}
        assert server.tool_calls() == [
            {"name": "riotplan_status", "arguments": {"planId": "p1"}},
            {"name": "riotplan_status", "arguments": {}},
        ]

    @pytest.mark.asyncio
    async def test_is_error_raises_with_first_text(self, server):
        server.tools["riotplan_status"] = lambda args: server.text_result(
            "Plan not found", is_error=True
        )
        async with make_client(server) as client:
            with pytest.raises(ProtocolError) as exc_info:
                await client.call_tool("riotplan_status", {"planId": "missing"})

        assert exc_info.value.message == "Plan not found"

    @pytest.mark.asyncio
    async def test_is_error_without_text(self, server):
        server.tools["riotplan_status"] = lambda args: {"content": [], "isError": True}
        async with make_client(server) as client:
            with pytest.raises(ProtocolError, match="MCP tool call failed"):
                await client.call_tool("riotplan_status")

    @pytest.mark.asyncio
    async def test_fallback_used_when_primary_fails(self, server):
        def status(args):
            if "planId" in args:
                return server.text_result("planId unsupported", is_error=True)
            return server.text_result("from path")

        server.tools["riotplan_status"] = status
        async with make_client(server) as client:
            result = await client.call_tool_with_fallback(
                "riotplan_status", {"planId": "p1"}, {"path": "p1"}
            )

        assert result["content"][0]["text"] == "from path"

    @pytest.mark.asyncio
    async def test_fallback_failure_raises_primary_error(self, server):
        def status(args):
            if "planId" in args:
                return server.text_result("Plan p1 does not exist", is_error=True)
            return server.text_result("path is required", is_error=True)

        server.tools["riotplan_status"] = status
        async with make_client(server) as client:
            with pytest.raises(ProtocolError) as exc_info:
                await client.call_tool_with_fallback(
                    "riotplan_status", {"planId": "p1"}, {"path": "p1"}
                )

        assert exc_info.value.message == "Plan p1 does not exist"


class TestNotificationsAndResources:
    """Tests for outgoing notifications and resource helpers."""

    @pytest.mark.asyncio
    async def test_send_notification_has_null_id(self, server):
        async with make_client(server) as client:
            await client.initialize()
            await client.send_notification("notifications/cancelled", {"requestId": "x"})

        sent = server.posts[-1]
        assert sent == {
            "jsonrpc": "2.0",
            "id": None,
            "method": "notifications/cancelled",
            "params": {"requestId": "x"},
        }
        assert server.post_headers[-1]["mcp-session-id"] == "sess-1"

    @pytest.mark.asyncio
    async def test_read_resource_returns_first_text(self, server):
        server.results["resources/read"] = {
            "contents": [{"uri": "riotplan://plan/p1", "text": '{"name": "p1"}'}]
        }
        async with make_client(server) as client:
            text = await client.read_resource("riotplan://plan/p1")

        assert text == '{"name": "p1"}'
        assert server.posts[-1]["params"] == {"uri": "riotplan://plan/p1"}

    @pytest.mark.asyncio
    async def test_read_resource_empty(self, server):
        server.results["resources/read"] = {"contents": []}
        async with make_client(server) as client:
            assert await client.read_resource("riotplan://plan/p1") == ""

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, server):
        async with make_client(server) as client:
            await client.subscribe_resource("riotplan://plan/p1")
            await client.unsubscribe_resource("riotplan://plan/p1")

        assert server.methods()[-2:] == ["resources/subscribe", "resources/unsubscribe"]

    @pytest.mark.asyncio
    async def test_on_notification_registers_on_channel(self, server):
        async with make_client(server) as client:
            remove = client.on_notification(RESOURCE_CHANGED, lambda params: None)
            assert client.session.channel.handler_count(RESOURCE_CHANGED) == 1
            remove()
            assert client.session.channel.handler_count(RESOURCE_CHANGED) == 0


class TestHealthAndLifecycle:
    """Tests for health_check() and close()."""

    @pytest.mark.asyncio
    async def test_health_true_on_200(self, server):
        async with make_client(server) as client:
            assert await client.health_check() is True
        assert server.posts == []

    @pytest.mark.asyncio
    async def test_health_false_on_other_status(self, server):
        server.health_status = 503
        async with make_client(server) as client:
            assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_health_false_on_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out")

        client = MCPClient("http://riotplan.test", http_transport=httpx.MockTransport(handler))
        assert await client.health_check() is False
        await client.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_clears_handlers(self, server):
        client = make_client(server)
        await client.initialize()
        client.on_notification(RESOURCE_CHANGED, lambda params: None)

        await client.close()
        await client.close()

        assert client.is_closed
        assert client.session_id is None
        assert not client.transport.is_connected
        assert client.session.channel.handler_count(RESOURCE_CHANGED) == 0

    @pytest.mark.asyncio
    async def test_requests_after_close_raise(self, server):
        client = make_client(server, reconnect_delay=0.01)
        await client.initialize()
        await client.close()
        posts = len(server.posts)
        streams = len(server.stream_requests)

        with pytest.raises(RiotPlanError, match="Client is closed"):
            await client.send_request("tools/list")
        with pytest.raises(RiotPlanError, match="Client is closed"):
            await client.send_notification("notifications/cancelled")
        assert await client.health_check() is False
        await asyncio.sleep(0.05)

        assert len(server.posts) == posts
        assert len(server.stream_requests) == streams
        assert client.session_id is None
        assert not client.transport.is_connected

    @pytest.mark.asyncio
    async def test_response_arriving_after_close_does_not_reopen_stream(self, server):
        arrived = asyncio.Event()
        release = asyncio.Event()

        async def slow(body, request):
            arrived.set()
            await release.wait()
            return server.result_response(body["id"], {}, **{"mcp-session-id": "sess-1"})

        server.responders["tools/list"] = slow
        client = make_client(server, reconnect_delay=0.01)
        await client.initialize()
        pending = asyncio.create_task(client.send_request("tools/list"))
        await arrived.wait()

        await client.close()
        streams = len(server.stream_requests)
        release.set()
        await asyncio.gather(pending, return_exceptions=True)
        await asyncio.sleep(0.05)

        assert len(server.stream_requests) == streams
        assert client.session_id is None
        assert not client.session.channel.is_running
