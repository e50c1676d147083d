"""HTTP transport for the RiotPlan MCP server.

MCP over Streamable HTTP uses:
- POST <base>/mcp for every JSON-RPC request and notification. The server
  answers either with plain JSON or with a single SSE-framed JSON message.
- GET <base>/mcp for the long-lived notification stream.
- GET <base>/health for liveness.

Raw requests outside the JSON-RPC envelope (plan download/upload) go through
raw_request().
"""

import json
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

import httpx

from riotplan.mcp.errors import TransportError
from riotplan.mcp.protocol import HEALTH_ENDPOINT, SESSION_HEADER
from riotplan.mcp.sse import parse_sse_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 30.0
DEFAULT_TRANSFER_TIMEOUT: float = 120.0
DEFAULT_HEALTH_TIMEOUT: float = 5.0

# Maximum size kept from an error body to prevent memory exhaustion
MAX_ERROR_BODY_SIZE: int = 10 * 1024  # 10 KB

ACCEPT_JSON_OR_SSE = "application/json, text/event-stream"

_FILENAME_STAR_PATTERN = re.compile(r"filename\*\s*=\s*(?:UTF-8|utf-8)?''([^;]+)")
_FILENAME_PATTERN = re.compile(r'filename\s*=\s*"?([^";]+)"?')


@dataclass
class HTTPResponse:
    """A decoded JSON-RPC response together with its HTTP metadata.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers (case-insensitive mapping).
        data: The decoded JSON-RPC message.
    """

    status_code: int
    headers: httpx.Headers
    data: dict[str, Any]

    @property
    def session_id(self) -> str | None:
        """Session id announced by the server, if any."""
        return self.headers.get(SESSION_HEADER)


@dataclass
class RawResponse:
    """Undecoded response from raw_request().

    Attributes:
        status_code: HTTP status code.
        headers: Response headers.
        content: Raw body bytes.
    """

    status_code: int
    headers: httpx.Headers
    content: bytes

    @property
    def filename(self) -> str | None:
        """Filename announced in Content-Disposition, if any.

        RFC 5987 ``filename*=UTF-8''...`` wins over plain ``filename=``.
        """
        disposition = self.headers.get("content-disposition")
        if not disposition:
            return None
        match = _FILENAME_STAR_PATTERN.search(disposition)
        if match:
            return unquote(match.group(1).strip())
        match = _FILENAME_PATTERN.search(disposition)
        if match:
            return match.group(1).strip()
        return None

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.content)


def _error_body(content: bytes) -> str:
    return content[:MAX_ERROR_BODY_SIZE].decode("utf-8", errors="replace")


class HTTPTransport:
    """HTTP connection to one RiotPlan server.

    The underlying httpx.AsyncClient is created lazily on first use and
    reused for every request until close().

    Attributes:
        base_url: Base URL of the server (e.g., http://127.0.0.1:3002).
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize HTTPTransport.

        Args:
            base_url: Base URL of the server.
            headers: Additional HTTP headers sent on every request (e.g., auth).
            timeout: Default request timeout in seconds.
            http_transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=False,
                headers=self._headers,
                transport=self._http_transport,
            )
        return self._client

    def url(self, path: str) -> str:
        """Absolute URL for a server-relative path."""
        return self.base_url + path

    async def post_json(
        self,
        path: str,
        body: dict[str, Any],
        session_id: str | None = None,
    ) -> HTTPResponse:
        """POST a JSON body and decode the JSON-RPC answer.

        A 202 Accepted (used for notifications) becomes {"result": {}}.

        Args:
            path: Server-relative path (e.g., "/mcp").
            body: JSON-serializable request body.
            session_id: Current session id, sent as Mcp-Session-Id when set.

        Returns:
            The decoded response with its headers.

        Raises:
            TransportError: On socket failure, non-2xx status, or an
                undecodable body.
        """
        data = json.dumps(body, separators=(",", ":")).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": ACCEPT_JSON_OR_SSE,
            "Content-Length": str(len(data)),
        }
        if session_id:
            headers[SESSION_HEADER] = session_id

        client = self._ensure_client()
        try:
            response = await client.post(self.url(path), content=data, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP request failed: {e}") from e

        if response.status_code == 202 and not response.content:
            return HTTPResponse(response.status_code, response.headers, {"result": {}})

        if not response.is_success:
            text = _error_body(response.content)
            raise TransportError(
                f"HTTP {response.status_code}: {text}",
                status_code=response.status_code,
                body=text,
            )

        content_type = response.headers.get("content-type", "")
        text = response.text
        if "text/event-stream" in content_type:
            message = parse_sse_response(text)
        else:
            try:
                message = json.loads(text)
            except json.JSONDecodeError as e:
                raise TransportError(
                    f"Failed to parse response: {e}",
                    status_code=response.status_code,
                    body=text[:MAX_ERROR_BODY_SIZE],
                ) from e
            if not isinstance(message, dict):
                raise TransportError(
                    f"Expected JSON object in response, got {type(message).__name__}",
                    status_code=response.status_code,
                )

        return HTTPResponse(response.status_code, response.headers, message)

    async def raw_request(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
        files: dict[str, Any] | None = None,
        timeout: float = DEFAULT_TRANSFER_TIMEOUT,
    ) -> RawResponse:
        """Issue a request outside the JSON-RPC envelope.

        Args:
            method: HTTP method (GET, POST).
            path: Server-relative path.
            headers: Extra request headers.
            content: Optional binary body.
            files: Optional multipart files (httpx ``files=`` format).
            timeout: Request timeout in seconds.

        Raises:
            TransportError: On socket failure or non-2xx status.
        """
        client = self._ensure_client()
        try:
            response = await client.request(
                method,
                self.url(path),
                headers=headers,
                content=content,
                files=files,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP {method} {path} failed: {e}") from e

        if not response.is_success:
            text = _error_body(response.content)
            raise TransportError(
                f"HTTP {response.status_code}: {text}",
                status_code=response.status_code,
                body=text,
            )
        return RawResponse(response.status_code, response.headers, response.content)

    async def get_status(
        self,
        path: str = HEALTH_ENDPOINT,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
    ) -> int:
        """GET a path and return only the status code.

        Raises:
            httpx.HTTPError: On socket failure or timeout.
        """
        client = self._ensure_client()
        response = await client.get(self.url(path), timeout=timeout)
        return response.status_code

    @asynccontextmanager
    async def stream(
        self,
        path: str,
        session_id: str | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a long-lived SSE GET stream.

        The response is yielded unread; the caller checks the status and
        iterates the body. No read timeout applies.
        """
        headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        if session_id:
            headers[SESSION_HEADER] = session_id

        client = self._ensure_client()
        async with client.stream(
            "GET",
            self.url(path),
            headers=headers,
            timeout=httpx.Timeout(self._timeout, read=None),
        ) as response:
            yield response

    async def close(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client exists and is open."""
        if self._client is None:
            return False
        return not self._client.is_closed
