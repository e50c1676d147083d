"""MCP (Model Context Protocol) client over Streamable HTTP.

This package provides the protocol core used by riotplan: session handshake
and recovery, JSON-RPC dispatch over HTTP POST (plain JSON or SSE-framed
answers), and the server-pushed notification stream.

Usage:
    from riotplan.mcp import MCPClient, RESOURCE_CHANGED

    async with MCPClient("http://127.0.0.1:3002") as client:
        client.on_notification(RESOURCE_CHANGED, lambda params: print(params))
        result = await client.call_tool("riotplan_list_plans", {"filter": "all"})
"""

from riotplan.mcp.client import MCPClient
from riotplan.mcp.errors import ProtocolError, TransportError, is_session_error
from riotplan.mcp.notifications import NotificationChannel
from riotplan.mcp.protocol import (
    PROTOCOL_VERSION,
    RESOURCE_CHANGED,
    MCPClientInfo,
    MCPServerInfo,
    MCPToolResult,
)
from riotplan.mcp.session import SessionManager
from riotplan.mcp.transport import HTTPResponse, HTTPTransport, RawResponse

__all__ = [
    "HTTPResponse",
    "HTTPTransport",
    "MCPClient",
    "MCPClientInfo",
    "MCPServerInfo",
    "MCPToolResult",
    "NotificationChannel",
    "PROTOCOL_VERSION",
    "ProtocolError",
    "RESOURCE_CHANGED",
    "RawResponse",
    "SessionManager",
    "TransportError",
    "is_session_error",
]
