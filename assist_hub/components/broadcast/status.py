"""
Status Broadcaster.

Computes aggregate counts from the registry at trigger time and sends a
client_status snapshot to every open session. Snapshots are not cached:
a burst of triggers may send several overlapping snapshots, which
receivers treat idempotently.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from assist_hub.components.broadcast.fanout import FanOutReport, PeerFanOut, now_ms
from assist_hub.components.core.constants import MSG_CLIENT_STATUS
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.connection.registry import ConnectionRegistry, StatusCounts

logger = get_logger(__name__)


def status_payload(counts: "StatusCounts") -> dict[str, Any]:
    return {
        "type": MSG_CLIENT_STATUS,
        "users": counts.users,
        "aids": counts.aids,
        "audioConnections": counts.audio_connections,
        "totalClients": counts.total_clients,
        "timestamp": now_ms(),
    }


class StatusBroadcaster:
    """Fans out client_status snapshots."""

    def __init__(self, registry: "ConnectionRegistry", fanout: PeerFanOut) -> None:
        self._registry = registry
        self._fanout = fanout
        self._broadcasts = 0

    @property
    def broadcast_count(self) -> int:
        """Number of snapshots sent since startup."""
        return self._broadcasts

    async def broadcast(self) -> FanOutReport:
        counts = await self._registry.counts()
        payload = status_payload(counts)

        logger.info(
            "Broadcasting status",
            users=counts.users,
            aids=counts.aids,
            audio=counts.audio_connections,
            total=counts.total_clients,
        )

        recipients = await self._registry.snapshot()
        report = await self._fanout.send_json(recipients, payload, "status")
        self._broadcasts += 1
        return report


class StatusReporter:
    """
    Periodic server status report.

    Log-only: writes the aggregate counts and one line per session.
    Nothing is sent to clients.
    """

    def __init__(self, registry: "ConnectionRegistry") -> None:
        self._registry = registry

    async def report(self) -> "StatusCounts":
        counts = await self._registry.counts()
        logger.info(
            "Server status",
            total=counts.total_clients,
            users=counts.users,
            aids=counts.aids,
            audio=counts.audio_connections,
        )

        for session in await self._registry.snapshot():
            logger.info(
                f"{session.role_label} - Session: {session.session_id}",
                audio="ON" if session.audio_enabled else "OFF",
                ip=session.remote_address,
            )
        return counts
