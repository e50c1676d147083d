"""MCP protocol types and envelope builders.

Defines the wire constants and data structures used to talk to the RiotPlan
HTTP MCP server. MCP builds on JSON-RPC 2.0 with additional semantics for
tools, resources and server-pushed notifications.

MCP Spec: https://modelcontextprotocol.io/specification/2024-11-05
"""

import secrets
from dataclasses import dataclass, field
from typing import Any

from riotplan import __version__

# MCP protocol version sent in the initialize handshake
PROTOCOL_VERSION = "2024-11-05"

JSONRPC_VERSION = "2.0"

# All JSON-RPC traffic and the notification stream share one path
MCP_ENDPOINT = "/mcp"
HEALTH_ENDPOINT = "/health"

# Request header carrying the session; responses are matched case-insensitively
SESSION_HEADER = "Mcp-Session-Id"

# Well-known push notification: a server-side resource changed
RESOURCE_CHANGED = "notifications/resource_changed"
INITIALIZED_NOTIFICATION = "notifications/initialized"


def new_request_id() -> str:
    """Return a random request id.

    Ids only correlate log lines: every POST is answered within its own
    HTTP round-trip, so no pending-request table is kept.
    """
    return secrets.token_hex(6)


def build_request(
    method: str,
    params: dict[str, Any] | None = None,
    request_id: str | int | None = None,
) -> dict[str, Any]:
    """Build a JSON-RPC request envelope.

    Args:
        method: RPC method name.
        params: Method parameters. Omitted from the envelope if None.
        request_id: Explicit id. A fresh random id is generated if None.

    Returns:
        The request dict, ready for JSON serialization.
    """
    request: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id if request_id is not None else new_request_id(),
        "method": method,
    }
    if params is not None:
        request["params"] = params
    return request


def build_notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a fire-and-forget notification envelope (null id)."""
    notification: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": None,
        "method": method,
    }
    if params is not None:
        notification["params"] = params
    return notification


@dataclass
class MCPClientInfo:
    """Client information sent during initialization.

    Attributes:
        name: Client name.
        version: Client version.
    """

    name: str = "riotplan-python"
    version: str = __version__

    def to_dict(self) -> dict[str, str]:
        """Convert to dict for MCP protocol."""
        return {"name": self.name, "version": self.version}


def initialize_params(client_info: MCPClientInfo) -> dict[str, Any]:
    """Parameters for the initialize handshake (no client capabilities)."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {},
        "clientInfo": client_info.to_dict(),
    }


@dataclass
class MCPServerInfo:
    """Server information from MCP initialization.

    Attributes:
        name: Server name.
        version: Server version.
        protocol_version: Protocol version the server agreed to.
        capabilities: Server capabilities (tools, resources, etc).
    """

    name: str
    version: str
    protocol_version: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPServerInfo":
        """Create from initialize response."""
        server_info = data.get("serverInfo") or {}
        return cls(
            name=server_info.get("name", "unknown"),
            version=server_info.get("version", "unknown"),
            protocol_version=data.get("protocolVersion"),
            capabilities=data.get("capabilities") or {},
        )


@dataclass
class MCPToolResult:
    """Result from an MCP tool invocation.

    Attributes:
        content: List of content items from the tool (text, images, resources).
        is_error: Whether the tool reported a business-level failure.
    """

    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    def first_text(self) -> str | None:
        """Text of the first content item, if it is a non-empty text item."""
        if not self.content:
            return None
        first = self.content[0]
        if not isinstance(first, dict) or first.get("type") != "text":
            return None
        text = first.get("text")
        return text if isinstance(text, str) and text else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPToolResult":
        """Create from a tools/call result."""
        content = data.get("content")
        return cls(
            content=content if isinstance(content, list) else [],
            is_error=data.get("isError") is True,
        )
