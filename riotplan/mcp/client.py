"""MCP client implementation.

The MCPClient is the single entry point for JSON-RPC traffic:
1. Ensure the initialize handshake ran (once, shared by concurrent callers)
2. POST the request envelope with the current session id
3. Capture a new or rotated session id from the response
4. Unwrap the result, or raise on JSON-RPC errors and isError tool results
5. On session loss, recover and retry exactly once

Server-pushed notifications arrive on a separate stream managed by the
session (see riotplan.mcp.notifications).

Usage:
    async with MCPClient("http://127.0.0.1:3002") as client:
        unsubscribe = client.on_notification(RESOURCE_CHANGED, print)
        result = await client.call_tool("riotplan_list_plans", {"filter": "all"})
"""

import logging
from collections.abc import Callable
from typing import Any

import httpx

from riotplan.config.schema import ClientConfig
from riotplan.core.errors import RiotPlanError
from riotplan.mcp.errors import ProtocolError, TransportError, is_session_error
from riotplan.mcp.notifications import NotificationHandler
from riotplan.mcp.protocol import (
    MCP_ENDPOINT,
    MCPClientInfo,
    MCPServerInfo,
    MCPToolResult,
    build_notification,
    build_request,
)
from riotplan.mcp.session import RecoveryListener, SessionManager
from riotplan.mcp.transport import HTTPTransport

logger = logging.getLogger(__name__)


class MCPClient:
    """Client for the RiotPlan HTTP MCP server.

    Each instance owns its own session, stream and connection pool, so
    several clients (even against different servers) can coexist.
    """

    def __init__(
        self,
        config: ClientConfig | str | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize MCP client.

        Args:
            config: A ClientConfig, a bare server URL, or None for defaults.
            http_transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        if config is None:
            config = ClientConfig()
        elif isinstance(config, str):
            config = ClientConfig(server_url=config)
        self._config = config
        self._transport = HTTPTransport(
            config.server_url,
            headers=config.headers,
            timeout=config.request_timeout,
            http_transport=http_transport,
        )
        self._session = SessionManager(
            self._transport,
            client_info=MCPClientInfo(config.client_name, config.client_version),
            path=MCP_ENDPOINT,
            reconnect_delay=config.reconnect_delay,
        )
        self._closed = False

    async def __aenter__(self) -> "MCPClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Requests

    async def initialize(self) -> None:
        """Perform the initialize handshake now instead of on first request."""
        await self._session.ensure_initialized()

    async def send_request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a JSON-RPC request and return its result.

        Args:
            method: RPC method name.
            params: Method parameters (omitted from the envelope if None).

        Returns:
            The 'result' field from the response.

        Raises:
            ProtocolError: The server returned a JSON-RPC error or an
                isError tool result.
            TransportError: The HTTP exchange failed.
            RiotPlanError: The client is closed.
        """
        return await self._dispatch(method, params, retryable=True)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RiotPlanError("Client is closed")

    async def _dispatch(self, method: str, params: dict[str, Any] | None, retryable: bool) -> Any:
        self._ensure_open()
        if method != "initialize":
            await self._session.ensure_initialized()

        request = build_request(method, params)
        session_id = self._session.session_id
        logger.debug("MCP request: method=%s, id=%s", method, request["id"])

        try:
            response = await self._transport.post_json(
                MCP_ENDPOINT, request, session_id=session_id
            )
        except TransportError as e:
            if retryable and is_session_error(e):
                return await self._recover_and_retry(method, params, session_id, e)
            raise

        self._session.observe(response.headers)

        error = response.data.get("error")
        if error:
            if not isinstance(error, dict):
                error = {}
            exc = ProtocolError(
                error.get("message") or "MCP request failed",
                code=error.get("code"),
                data=error.get("data"),
            )
            if retryable and is_session_error(exc):
                return await self._recover_and_retry(method, params, session_id, exc)
            logger.debug("MCP error for %s: %s", method, exc.message)
            raise exc

        result = response.data.get("result")
        if isinstance(result, dict) and result.get("isError") is True:
            text = MCPToolResult.from_dict(result).first_text()
            raise ProtocolError(text or "MCP tool call failed")
        return result

    async def _recover_and_retry(
        self,
        method: str,
        params: dict[str, Any] | None,
        sent_session_id: str | None,
        cause: RiotPlanError,
    ) -> Any:
        current = self._session.session_id
        if self._session.is_recovering or current is None or current == sent_session_id:
            logger.info("Session error during %s (%s); recovering", method, cause.message)
            await self._session.recover()
        else:
            # Another caller already replaced the session this request was sent with
            logger.debug("Session error during %s on stale session; retrying", method)
        return await self._dispatch(method, params, retryable=False)

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a fire-and-forget notification (null id).

        Raises:
            TransportError: The HTTP exchange failed.
        """
        self._ensure_open()
        await self._transport.post_json(
            MCP_ENDPOINT,
            build_notification(method, params),
            session_id=self._session.session_id,
        )

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Invoke a tool and return its raw result dict."""
        return await self.send_request(
            "tools/call", {"name": name, "arguments": arguments or {}}
        )

    async def call_tool_with_fallback(
        self,
        name: str,
        primary: dict[str, Any],
        fallback: dict[str, Any],
    ) -> Any:
        """Invoke a tool, retrying once with an alternate argument shape.

        Servers disagree on some argument names (e.g. planId vs path). If the
        fallback also fails, the primary error is raised since it is the one
        that describes the real problem.
        """
        try:
            return await self.call_tool(name, primary)
        except RiotPlanError as primary_error:
            logger.debug("Tool %s failed with primary arguments: %s", name, primary_error)
            try:
                return await self.call_tool(name, fallback)
            except RiotPlanError:
                raise primary_error from None

    # Resources

    async def read_resource(self, uri: str) -> str:
        """Read a resource and return the text of its first content item."""
        result = await self.send_request("resources/read", {"uri": uri})
        contents = result.get("contents") if isinstance(result, dict) else None
        if isinstance(contents, list) and contents and isinstance(contents[0], dict):
            text = contents[0].get("text")
            if isinstance(text, str):
                return text
        return ""

    async def subscribe_resource(self, uri: str) -> None:
        await self.send_request("resources/subscribe", {"uri": uri})

    async def unsubscribe_resource(self, uri: str) -> None:
        await self.send_request("resources/unsubscribe", {"uri": uri})

    # Callbacks

    def on_notification(self, method: str, handler: NotificationHandler) -> Callable[[], None]:
        """Register a handler for a pushed notification method.

        Returns:
            A function that removes exactly this handler.
        """
        return self._session.channel.subscribe(method, handler)

    def on_session_recovered(self, listener: RecoveryListener) -> Callable[[], None]:
        """Register a callback run after each successful session recovery.

        Returns:
            A function that removes exactly this listener.
        """
        return self._session.add_recovery_listener(listener)

    # Health and lifecycle

    async def health_check(self) -> bool:
        """Return True only if GET /health answers 200 within the timeout."""
        if self._closed:
            return False
        try:
            status = await self._transport.get_status(timeout=self._config.health_timeout)
        except httpx.HTTPError as e:
            logger.debug("Health check failed: %s", e)
            return False
        return status == 200

    async def close(self) -> None:
        """Stop the notification stream, drop handlers and close connections."""
        if self._closed:
            return
        self._closed = True
        await self._session.close()
        await self._transport.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def transport(self) -> HTTPTransport:
        return self._transport

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def session_id(self) -> str | None:
        """Current session id (None before the handshake)."""
        return self._session.session_id

    @property
    def is_initialized(self) -> bool:
        """Check if client has completed initialization."""
        return self._session.is_initialized

    @property
    def server_info(self) -> MCPServerInfo | None:
        """Get server information (available after initialization)."""
        return self._session.server_info

    @property
    def is_closed(self) -> bool:
        return self._closed
