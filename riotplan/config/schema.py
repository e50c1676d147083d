"""Pydantic models for riotplan client configuration."""

from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from riotplan import __version__

DEFAULT_SERVER_URL = "http://127.0.0.1:3002"


class ClientConfig(BaseModel):
    """Configuration for a RiotPlan MCP client.

    Example in riotplan.json:
        {
            "server_url": "http://127.0.0.1:3002",
            "request_timeout": 30,
            "headers": {"Authorization": "Bearer ..."}
        }
    """

    model_config = ConfigDict(extra="forbid")

    server_url: str = DEFAULT_SERVER_URL
    """Base URL of the server. JSON-RPC traffic goes to <server_url>/mcp."""

    request_timeout: float = Field(default=30.0, gt=0)
    """Timeout in seconds for JSON-RPC POST requests."""

    transfer_timeout: float = Field(default=120.0, gt=0)
    """Default timeout in seconds for plan download/upload."""

    health_timeout: float = Field(default=5.0, gt=0)
    """Timeout in seconds for the /health check."""

    reconnect_delay: float = Field(default=3.0, ge=0)
    """Fixed delay in seconds before reopening a notification stream the server closed."""

    headers: dict[str, str] = Field(default_factory=dict)
    """Extra headers sent with every request (e.g., for auth)."""

    client_name: str = "riotplan-python"
    """Client name reported in the initialize handshake."""

    client_version: str = __version__
    """Client version reported in the initialize handshake."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    """Logging level used by the command line tool."""

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Require an http(s) URL with a host and drop any trailing slash."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"server_url must use http or https, got {v!r}")
        if not parsed.netloc:
            raise ValueError(f"server_url has no host: {v!r}")
        return v.strip().rstrip("/")
