"""
Relay Hub.

Thin composition root that wires the hub components around one
registry:
- ConnectionRegistry: live sessions
- PeerFanOut: per-peer isolated delivery
- StatusBroadcaster / StatusReporter: client_status fan-out, periodic log
- MessageRouter: inbound classification and relays
- ConnectionLifecycle: accept, close, error, shutdown
- LivenessReaper: stale session eviction

Every component receives its dependencies explicitly; there is no
module-level connection state.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from assist_hub.components.broadcast.fanout import PeerFanOut
from assist_hub.components.broadcast.status import StatusBroadcaster, StatusReporter
from assist_hub.components.connection.lifecycle import ConnectionLifecycle
from assist_hub.components.connection.reaper import LivenessReaper
from assist_hub.components.connection.registry import ConnectionRegistry, Session
from assist_hub.components.core.channel import Channel
from assist_hub.components.events.router import MessageRouter, RouteResult
from shared.config.logging import get_logger
from shared.config.settings import Settings, settings as default_settings

logger = get_logger(__name__)


class RelayHub:
    """
    Real-time relay between User and Aid endpoints.

    Usage:
        hub = RelayHub()
        session = await hub.accept(channel)
        await hub.handle(channel, payload)
        await hub.close(channel)
    """

    def __init__(
        self,
        config: Settings | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.settings = config or default_settings

        self.registry = ConnectionRegistry(clock) if clock else ConnectionRegistry()
        self.fanout = PeerFanOut(send_timeout=self.settings.send_timeout)
        self.status = StatusBroadcaster(self.registry, self.fanout)
        self.reporter = StatusReporter(self.registry)

        self.lifecycle = ConnectionLifecycle(
            registry=self.registry,
            fanout=self.fanout,
            status=self.status,
            shutdown_grace=self.settings.shutdown_grace,
            close_timeout=self.settings.send_timeout,
        )

        self.router = MessageRouter(
            registry=self.registry,
            fanout=self.fanout,
            status=self.status,
            audio_relay_enabled=self.settings.audio_relay_enabled,
            verbose_relay_logging=self.settings.verbose_relay_logging,
            strict_roles=self.settings.strict_roles,
            frame_log_interval=self.settings.frame_log_interval,
            idle_frame_log_interval=self.settings.idle_frame_log_interval,
        )

        self.reaper = LivenessReaper(
            registry=self.registry,
            status=self.status,
            disconnect_notifier=self.lifecycle.notify_disconnected,
            timeout_seconds=self.settings.heartbeat_timeout,
            interval_seconds=self.settings.reaper_interval,
            close_timeout=self.settings.send_timeout,
        )

        self._tasks: list[asyncio.Task] = []

    # =========================================================================
    # Connection events
    # =========================================================================

    async def accept(self, channel: Channel, remote_address: str | None = None) -> Session:
        return await self.lifecycle.accept(channel, remote_address)

    async def handle(self, channel: Channel, payload: str | bytes) -> RouteResult:
        return await self.router.dispatch(channel, payload)

    async def close(self, channel: Channel, reason: str = "client_disconnect") -> Session | None:
        return await self.lifecycle.close(channel, reason)

    async def fail(self, channel: Channel, error: BaseException) -> Session | None:
        return await self.lifecycle.fail(channel, error)

    async def shutdown(self, grace: float | None = None) -> int:
        return await self.lifecycle.shutdown(grace)

    @property
    def is_shutdown(self) -> bool:
        return self.lifecycle.is_shutdown

    # =========================================================================
    # Background tasks
    # =========================================================================

    def start_background_tasks(self) -> None:
        """Start the reaper and the status report loops on the running loop."""
        if self._tasks:
            logger.warning("Background tasks already running")
            return
        self._tasks = [
            asyncio.create_task(self.reaper.run(), name="liveness_reaper"),
            asyncio.create_task(self._status_report_loop(), name="status_report"),
        ]

    async def stop_background_tasks(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _status_report_loop(self) -> None:
        interval = self.settings.status_report_interval
        while True:
            try:
                await asyncio.sleep(interval)
                await self.reporter.report()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in status report", error=str(e))

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_stats(self) -> dict[str, Any]:
        counts = await self.registry.counts()
        return {
            "users": counts.users,
            "aids": counts.aids,
            "audioConnections": counts.audio_connections,
            "totalClients": counts.total_clients,
            "statusBroadcasts": self.status.broadcast_count,
            "shuttingDown": self.is_shutdown,
        }
