"""
Liveness Reaper.

Periodically evicts sessions that have gone silent. This is the only
mechanism that catches a half-open connection that never produced a
close or error event.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TYPE_CHECKING

from assist_hub.components.core.constants import HubConstants, WSCloseCode
from assist_hub.components.core.errors import StaleConnection
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.broadcast.status import StatusBroadcaster
    from assist_hub.components.connection.registry import ConnectionRegistry, Session

logger = get_logger(__name__)


class LivenessReaper:
    """
    Evicts sessions whose last activity is older than the heartbeat timeout.

    Each sweep closes the stale channels, removes them from the registry,
    notifies the remaining peers, and triggers at most one status
    broadcast for the whole sweep.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        status: "StatusBroadcaster",
        disconnect_notifier: Callable[["Session"], Awaitable[object]],
        timeout_seconds: float = HubConstants.HEARTBEAT_TIMEOUT,
        interval_seconds: float = HubConstants.REAPER_INTERVAL,
        close_timeout: float = HubConstants.SEND_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._status = status
        self._notify_disconnected = disconnect_notifier
        self._timeout = timeout_seconds
        self._interval = interval_seconds
        self._close_timeout = close_timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def interval(self) -> float:
        return self._interval

    async def sweep(self) -> int:
        """
        Run one eviction pass.

        Returns:
            Number of sessions evicted.
        """
        now = self._registry.clock()
        candidates = await self._registry.stale(self._timeout, now)
        if not candidates:
            return 0

        evicted = await self._registry.evict(candidates)
        for session in evicted:
            reason = StaleConnection(session.session_id, now - session.last_seen)
            logger.info(
                f"Removing stale connection: {session.role_label}",
                session_id=session.session_id,
                reason=str(reason),
            )

        # Half-open peers may never finish the close handshake
        await asyncio.gather(
            *(self._close_channel(s) for s in evicted),
            return_exceptions=True,
        )

        for session in evicted:
            await self._notify_disconnected(session)

        if evicted:
            logger.info(f"Cleaned up {len(evicted)} stale connections")
            await self._status.broadcast()

        return len(evicted)

    async def _close_channel(self, session: "Session") -> None:
        try:
            await asyncio.wait_for(
                session.channel.close(code=WSCloseCode.GOING_AWAY, reason="Heartbeat timeout"),
                timeout=self._close_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out closing stale connection",
                session_id=session.session_id,
                timeout=self._close_timeout,
            )
        except Exception as e:
            logger.debug("Failed to close stale connection", error=str(e))

    async def run(self) -> None:
        """Sweep every ``interval`` seconds until cancelled."""
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in liveness sweep", error=str(e), exc_info=True)
