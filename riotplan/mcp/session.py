"""MCP session lifecycle.

The SessionManager owns everything that is per-session state for one client:
the server-issued session id, whether the initialize handshake completed,
the notification channel bound to the session, and the recovery guard.

States:
    uninitialized --initialize()--> initialized
    initialized --recover()--> (session cleared, channel torn down)
        --initialize()--> initialized, recovery listeners notified

The session id may be rotated by any response; the channel starts the first
time an id is observed after being unset.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

from riotplan.mcp.callbacks import CallbackRegistry
from riotplan.mcp.errors import ProtocolError
from riotplan.mcp.notifications import DEFAULT_RECONNECT_DELAY, NotificationChannel
from riotplan.mcp.protocol import (
    INITIALIZED_NOTIFICATION,
    MCP_ENDPOINT,
    SESSION_HEADER,
    MCPClientInfo,
    MCPServerInfo,
    build_notification,
    build_request,
    initialize_params,
)
from riotplan.mcp.transport import HTTPTransport

logger = logging.getLogger(__name__)

RecoveryListener = Callable[[], Any]


class SessionManager:
    """Handshake, session id tracking and one-at-a-time recovery.

    Attributes:
        channel: The notification channel bound to the current session.
    """

    def __init__(
        self,
        transport: HTTPTransport,
        client_info: MCPClientInfo | None = None,
        path: str = MCP_ENDPOINT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        self._transport = transport
        self._client_info = client_info or MCPClientInfo()
        self._path = path
        self._session_id: str | None = None
        self._initialized = False
        self._server_info: MCPServerInfo | None = None
        self._init_lock = asyncio.Lock()
        self._recovering = False
        self._recovery_done = asyncio.Event()
        self._recovery_done.set()
        self._recovery_count = 0
        self._closed = False
        self._listeners: CallbackRegistry[RecoveryListener] = CallbackRegistry()
        self.channel = NotificationChannel(
            transport.stream,
            session_id=lambda: self._session_id,
            on_session_lost=self.recover,
            path=path,
            reconnect_delay=reconnect_delay,
        )

    @property
    def session_id(self) -> str | None:
        """Current server-issued session id, if any."""
        return self._session_id

    @property
    def is_initialized(self) -> bool:
        """Check if the initialize handshake has completed."""
        return self._initialized

    @property
    def is_recovering(self) -> bool:
        return self._recovering

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def recovery_count(self) -> int:
        """Number of recoveries that completed successfully."""
        return self._recovery_count

    @property
    def server_info(self) -> MCPServerInfo | None:
        """Server information from the last handshake."""
        return self._server_info

    def observe(self, headers: Mapping[str, str]) -> None:
        """Capture a session id announced in response headers.

        The id is replaced in place on rotation. When no id was held before,
        the notification channel is started for the new session. Responses
        arriving after close() are ignored.
        """
        new_id = headers.get(SESSION_HEADER)
        if self._closed or not new_id or new_id == self._session_id:
            return
        first = self._session_id is None
        self._session_id = new_id
        if first:
            logger.debug("Session established: %s", new_id)
            self.channel.start()
        else:
            logger.debug("Session id rotated: %s", new_id)

    async def ensure_initialized(self) -> None:
        """Run the handshake unless it already completed.

        Concurrent callers share one handshake.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if not self._initialized:
                await self._handshake()

    async def initialize(self) -> None:
        """Run the initialize handshake unconditionally."""
        async with self._init_lock:
            await self._handshake()

    async def _handshake(self) -> None:
        request = build_request(
            "initialize", initialize_params(self._client_info), request_id="init-1"
        )
        logger.debug("Sending initialize handshake")
        response = await self._transport.post_json(
            self._path, request, session_id=self._session_id
        )
        self.observe(response.headers)

        error = response.data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else None
            raise ProtocolError(
                f"MCP initialization failed: {message or 'unknown error'}",
                code=error.get("code") if isinstance(error, dict) else None,
            )

        result = response.data.get("result")
        self._server_info = MCPServerInfo.from_dict(result if isinstance(result, dict) else {})
        self._initialized = True
        logger.debug(
            "Initialized with %s %s", self._server_info.name, self._server_info.version
        )

        await self._notify_initialized()

    async def _notify_initialized(self) -> None:
        # The handshake already succeeded; a failed notification must not undo it.
        try:
            await self._transport.post_json(
                self._path,
                build_notification(INITIALIZED_NOTIFICATION),
                session_id=self._session_id,
            )
        except Exception as e:
            logger.warning("Failed to send %s: %s", INITIALIZED_NOTIFICATION, e)

    def reset(self) -> None:
        """Forget the session and tear down its notification stream."""
        self._session_id = None
        self._initialized = False
        self.channel.stop()

    async def recover(self) -> bool:
        """Re-establish a lost session.

        Only one recovery runs at a time. A caller arriving while one is in
        flight waits for it to finish instead of starting another.

        Returns:
            True if this call performed the recovery, False if it waited on
            one already running or the session is closed.

        Raises:
            RiotPlanError: If the new handshake fails.
        """
        if self._closed:
            return False
        if self._recovering:
            logger.debug("Session recovery already in progress; waiting")
            await self._recovery_done.wait()
            return False

        self._recovering = True
        self._recovery_done.clear()
        try:
            logger.info("Session lost; re-initializing")
            self.reset()
            await self.initialize()
            self._recovery_count += 1
            logger.info("Session recovered")
            await self._notify_recovered()
        finally:
            self._recovering = False
            self._recovery_done.set()
        return True

    def add_recovery_listener(self, listener: RecoveryListener) -> Callable[[], None]:
        """Register a no-argument callback run after each successful recovery.

        Returns:
            A function that removes exactly this registration.
        """
        return self._listeners.add(listener)

    async def _notify_recovered(self) -> None:
        for listener in self._listeners.snapshot():
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("Session recovery listener raised", exc_info=True)

    async def close(self) -> None:
        """Drop the session, its stream, all handlers and all listeners."""
        self._closed = True
        self._session_id = None
        self._initialized = False
        self._listeners.clear()
        await self.channel.close()
