"""Server-Sent Events parsing.

Two uses share this module:
- A POST may answer with a single SSE-framed JSON-RPC response
  (parse_sse_response).
- The long-lived notification stream delivers many frames separated by
  blank lines (SSEFrameBuffer + parse_event_frame).

Only "data:" lines matter. Their payloads are concatenated and decoded as
one JSON document; "event:", "id:" and ":" comment lines are ignored.
"""

import json
import logging
from typing import Any

from riotplan.mcp.errors import TransportError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
FRAME_DELIMITER = "\n\n"


def extract_data(payload: str) -> str | None:
    """Concatenate the data: lines of an SSE payload.

    Args:
        payload: Raw SSE text (one frame or a whole buffered body).

    Returns:
        The concatenated data, or None if no data: line is present.
    """
    parts: list[str] = []
    found = False
    for line in payload.splitlines():
        if line.startswith(DATA_PREFIX):
            found = True
            parts.append(line[len(DATA_PREFIX):].strip())
    if not found:
        return None
    return "".join(parts)


def parse_sse_response(body: str) -> dict[str, Any]:
    """Parse a buffered SSE body returned from a POST as one JSON-RPC response.

    Raises:
        TransportError: If no data: line is present or the data isn't a JSON object.
    """
    data = extract_data(body)
    if data is None:
        raise TransportError("SSE response contained no data lines", body=body[:500])
    try:
        message = json.loads(data)
    except json.JSONDecodeError as e:
        raise TransportError(f"Failed to parse SSE response: {e}", body=body[:500]) from e
    if not isinstance(message, dict):
        raise TransportError(
            f"Expected JSON object in SSE response, got {type(message).__name__}"
        )
    return message


def parse_event_frame(frame: str) -> dict[str, Any] | None:
    """Parse one notification-stream frame.

    Frames without data (heartbeats, comments) and frames whose data is not a
    JSON object return None instead of raising.
    """
    data = extract_data(frame)
    if not data:
        return None
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON SSE frame: %s", data[:200])
        return None
    if not isinstance(message, dict):
        return None
    return message


class SSEFrameBuffer:
    """Accumulates stream text and yields complete frames as they arrive.

    CRLF line endings are normalized so "\\r\\n\\r\\n" delimits frames too.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return every frame completed by it."""
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")
        frames: list[str] = []
        while FRAME_DELIMITER in self._buffer:
            frame, self._buffer = self._buffer.split(FRAME_DELIMITER, 1)
            if frame.strip():
                frames.append(frame)
        return frames

    @property
    def pending(self) -> str:
        """Text received after the last complete frame."""
        return self._buffer
