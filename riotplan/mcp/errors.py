"""Error types for the MCP client core.

TransportError covers everything below JSON-RPC (HTTP status, body decoding,
socket failures). ProtocolError covers well-formed JSON-RPC errors and the
tool-call isError convention. Session loss is a classification over both.
"""

from typing import Any

from riotplan.core.errors import RiotPlanError

SESSION_NOT_FOUND = "session not found"


class TransportError(RiotPlanError):
    """Error in the HTTP transport layer.

    Attributes:
        status_code: HTTP status, if the server answered at all.
        body: Raw (possibly truncated) response body text.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolError(RiotPlanError):
    """Error reported by the server through JSON-RPC or a tool result.

    Attributes:
        code: JSON-RPC error code (None for tool-call errors).
        data: Optional error data supplied by the server.
    """

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


def is_session_error(error: BaseException) -> bool:
    """Check whether an error means the server no longer knows our session.

    True for an HTTP 404 from the transport, or any riotplan error whose
    message contains "session not found" (case-insensitive).
    """
    if isinstance(error, TransportError) and error.status_code == 404:
        return True
    if isinstance(error, RiotPlanError):
        return SESSION_NOT_FOUND in error.message.lower()
    return False
