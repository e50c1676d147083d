"""Server-pushed notification channel.

The channel keeps one GET stream open against the MCP endpoint while a
session exists and dispatches every {"method", "params"} frame to the
handlers registered for that method.

Lifecycle:
- start() tears down any previous stream and opens a new one, but only when
  a session id is known.
- A server close while the session is still set reopens the stream after a
  fixed delay (idle proxies routinely drop long-lived connections).
- A 404 on open means the session is gone; the session-lost callback runs in
  its own task.
- A transport error drops the stream without retrying; the next session
  event starts it again.
- stop() cancels the stream and never reconnects; close() also clears
  handlers.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from riotplan.mcp.callbacks import CallbackRegistry
from riotplan.mcp.protocol import MCP_ENDPOINT
from riotplan.mcp.sse import SSEFrameBuffer, parse_event_frame

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY: float = 3.0

NotificationHandler = Callable[[dict[str, Any]], Any]


class NotificationChannel:
    """Supervises the SSE notification stream for one client."""

    def __init__(
        self,
        open_stream: Callable[[str, str | None], Any],
        session_id: Callable[[], str | None],
        on_session_lost: Callable[[], Awaitable[Any]],
        path: str = MCP_ENDPOINT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        """Initialize the channel.

        Args:
            open_stream: Async context manager factory ``(path, session_id)``
                yielding an httpx.Response (HTTPTransport.stream).
            session_id: Returns the current session id, or None.
            on_session_lost: Called when the server rejects the stream with 404.
            path: Server-relative stream path.
            reconnect_delay: Seconds to wait before reopening a closed stream.
        """
        self._open_stream = open_stream
        self._session_id = session_id
        self._on_session_lost = on_session_lost
        self._path = path
        self._reconnect_delay = reconnect_delay
        self._handlers: dict[str, CallbackRegistry[NotificationHandler]] = {}
        self._stream_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

    # Handler registry

    def subscribe(self, method: str, handler: NotificationHandler) -> Callable[[], None]:
        """Register a handler for a notification method.

        Handlers run in registration order with the notification params.
        Coroutine functions are scheduled as tasks.

        Returns:
            A function that removes exactly this registration.
        """
        registry = self._handlers.setdefault(method, CallbackRegistry())
        return registry.add(handler)

    def handler_count(self, method: str) -> int:
        registry = self._handlers.get(method)
        return len(registry) if registry else 0

    def dispatch(self, message: dict[str, Any]) -> None:
        """Deliver a parsed frame to the handlers for its method.

        Frames without a method are ignored. A failing handler is logged and
        does not prevent later handlers from running.
        """
        method = message.get("method")
        if not isinstance(method, str):
            return
        registry = self._handlers.get(method)
        if not registry:
            return
        params = message.get("params")
        if not isinstance(params, dict):
            params = {}
        for handler in registry.snapshot():
            try:
                result = handler(params)
            except Exception:
                logger.warning("Notification handler for %s raised", method, exc_info=True)
                continue
            if inspect.isawaitable(result):
                self._spawn(result, f"notification handler for {method}")

    # Stream lifecycle

    @property
    def is_running(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """(Re)open the stream for the current session.

        Any existing stream is torn down first. Without a session id, or
        once the channel is closed, this only tears down.
        """
        self.stop()
        if self._closed or not self._session_id():
            return
        self._stream_task = asyncio.create_task(self._run(), name="riotplan-notifications")

    def stop(self) -> None:
        """Tear down the live stream without reconnecting."""
        task = self._stream_task
        self._stream_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.debug("Notification stream stopped")

    async def close(self) -> None:
        """Stop the stream, drop all handlers and cancel background work."""
        self._closed = True
        task = self._stream_task
        self.stop()
        self._handlers.clear()
        pending = [t for t in self._background if not t.done()]
        for t in pending:
            t.cancel()
        if task is not None:
            pending.append(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()

    async def _run(self) -> None:
        me = asyncio.current_task()
        try:
            while True:
                session_id = self._session_id()
                if not session_id:
                    return
                if not await self._consume(session_id):
                    return
                if not self._session_id():
                    return
                logger.info(
                    "Notification stream closed by server; reconnecting in %.1fs",
                    self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)
        except httpx.HTTPError as e:
            logger.warning("Notification stream failed: %s", e)
        finally:
            if self._stream_task is me:
                self._stream_task = None

    async def _consume(self, session_id: str) -> bool:
        """Read one stream connection to its end.

        Returns:
            True if the server closed an established stream (reconnect),
            False if the stream was rejected (do not reconnect).
        """
        async with self._open_stream(self._path, session_id) as response:
            if response.status_code != 200:
                logger.warning(
                    "Notification stream rejected with HTTP %d", response.status_code
                )
                if response.status_code == 404:
                    self._spawn(self._on_session_lost(), "session recovery")
                return False

            logger.debug("Notification stream opened")
            buffer = SSEFrameBuffer()
            async for chunk in response.aiter_text():
                for frame in buffer.feed(chunk):
                    message = parse_event_frame(frame)
                    if message is not None:
                        self.dispatch(message)
        logger.debug("Notification stream ended")
        return True

    def _spawn(self, awaitable: Awaitable[Any], what: str) -> None:
        async def runner() -> None:
            try:
                await awaitable
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("%s failed", what.capitalize(), exc_info=True)

        task = asyncio.create_task(runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
