"""
Connection Lifecycle Controller.

Handles accept, close, transport error and shutdown, keeping the
registry consistent. Close and error converge on one cleanup sequence:
remove from registry, notify remaining peers, rebroadcast status.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from assist_hub.components.broadcast.fanout import FanOutReport, now_ms
from assist_hub.components.core.constants import (
    HubConstants,
    MSG_SERVER_SHUTDOWN,
    MSG_USER_DISCONNECTED,
    SHUTDOWN_MESSAGE,
    WSCloseCode,
)
from assist_hub.components.core.errors import TransportError
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.broadcast.fanout import PeerFanOut
    from assist_hub.components.broadcast.status import StatusBroadcaster
    from assist_hub.components.connection.registry import ConnectionRegistry, Session
    from assist_hub.components.core.channel import Channel

logger = get_logger(__name__)


class ConnectionLifecycle:
    """
    Manages the lifecycle of hub connections.

    Responsibilities:
    - Register accepted channels
    - Tear down closed or failed channels exactly once
    - Notify every session and close every channel on shutdown
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        fanout: "PeerFanOut",
        status: "StatusBroadcaster",
        shutdown_grace: float = HubConstants.SHUTDOWN_GRACE,
        close_timeout: float = HubConstants.SEND_TIMEOUT,
    ) -> None:
        """
        Initialize lifecycle manager with dependencies.

        Args:
            registry: Live session registry
            fanout: Per-peer isolated sender
            status: Status snapshot broadcaster
            shutdown_grace: Seconds to wait after the shutdown notice
            close_timeout: Per-channel close timeout during shutdown
        """
        self._registry = registry
        self._fanout = fanout
        self._status = status
        self._shutdown_grace = shutdown_grace
        self._close_timeout = close_timeout
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        """Whether shutdown has been initiated."""
        return self._shutdown

    async def accept(self, channel: "Channel", remote_address: str | None = None) -> "Session":
        """
        Register a newly accepted channel.

        Raises:
            ConnectionError: If shutdown has started.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        session = await self._registry.register(channel, remote_address)
        logger.info(
            f"New client connected from {session.remote_address}",
            session_id=session.session_id,
        )
        return session

    async def close(self, channel: "Channel", reason: str = "client_disconnect") -> "Session | None":
        """
        Clean up after a channel closed.

        Idempotent: a channel that is no longer registered is ignored.
        """
        session = await self._registry.remove(channel)
        if session is None:
            return None

        logger.info(
            f"Client disconnected: {session.role_label}",
            session_id=session.session_id,
            ip=session.remote_address,
            reason=reason,
        )
        await self.notify_disconnected(session)
        await self._status.broadcast()
        return session

    async def fail(self, channel: "Channel", error: BaseException) -> "Session | None":
        """Clean up after a transport error; same path as close."""
        session = await self._registry.lookup(channel)
        wrapped = error if isinstance(error, TransportError) else TransportError(str(error))
        logger.warning(
            f"WebSocket error for {session.role_label if session else 'unknown'}",
            error=type(error).__name__,
            message=str(wrapped),
        )
        return await self.close(channel, reason="transport_error")

    async def notify_disconnected(self, session: "Session") -> FanOutReport:
        """Send user_disconnected for ``session`` to every remaining session."""
        notice = {
            "type": MSG_USER_DISCONNECTED,
            "userId": session.session_id,
            "role": session.role,
            "timestamp": now_ms(),
        }
        remaining = await self._registry.filter(lambda s: s is not session)
        return await self._fanout.send_json(remaining, notice, "disconnect notice")

    async def shutdown(self, grace: float | None = None) -> int:
        """
        Notify every session, close every channel, then wait for sends to flush.

        The grace delay is best-effort. Calling shutdown twice is a no-op.

        Returns:
            Number of sessions that were open when shutdown started.
        """
        if self._shutdown:
            return 0
        self._shutdown = True
        logger.info("Server shutting down...")

        # Cleared first so close events from the endpoints find nothing to notify
        sessions = await self._registry.clear()

        notice = {
            "type": MSG_SERVER_SHUTDOWN,
            "message": SHUTDOWN_MESSAGE,
            "timestamp": now_ms(),
        }
        report = await self._fanout.send_json(sessions, notice, "shutdown notice")

        await asyncio.gather(
            *(self._close_channel(s) for s in sessions),
            return_exceptions=True,
        )

        logger.info(
            "Shutdown notice sent",
            sessions=len(sessions),
            delivered=report.delivered,
            failed=report.failed,
        )

        delay = self._shutdown_grace if grace is None else grace
        if delay > 0:
            await asyncio.sleep(delay)
        return len(sessions)

    async def _close_channel(self, session: "Session") -> None:
        try:
            await asyncio.wait_for(
                session.channel.close(code=WSCloseCode.GOING_AWAY, reason="Server shutdown"),
                timeout=self._close_timeout,
            )
        except Exception as e:
            logger.debug("Failed to close channel during shutdown", error=str(e))
