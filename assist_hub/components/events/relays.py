"""
Relays.

Each relay stamps metadata onto a message and forwards it to the
sessions that should see it:

- FrameRelay: binary video frames, User -> every Aid
- AnnotationRelay: drawing and clear, to the role-complement
- SignalingRelay: WebRTC offer/answer/ice_candidate, to the role-complement
- AudioCallRelay: call start/end and audio status, to the role-complement

Role-complement means every open session whose role differs from the
sender's, Unassigned sessions included, so a third role would join the
relay without code changes.
"""

from __future__ import annotations

import time
from typing import Callable, TYPE_CHECKING

from assist_hub.components.broadcast.fanout import FanOutReport
from assist_hub.components.core.constants import HubConstants, MessageKind, Role
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.broadcast.fanout import PeerFanOut
    from assist_hub.components.broadcast.status import StatusBroadcaster
    from assist_hub.components.connection.registry import ConnectionRegistry, Session
    from assist_hub.components.events.types import HubMessage

logger = get_logger(__name__)


class LogThrottle:
    """Allows one log line per ``interval`` seconds."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._interval = interval
        self._clock = clock
        self._last: float | None = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self._interval:
            self._last = now
            return True
        return False


class RelayBase:
    """Shared role-complement delivery for the relays."""

    def __init__(
        self,
        registry: "ConnectionRegistry",
        fanout: "PeerFanOut",
        verbose: bool = True,
    ) -> None:
        self._registry = registry
        self._fanout = fanout
        self._verbose = verbose

    async def complement_of(self, sender: "Session") -> list["Session"]:
        """Open sessions whose role differs from the sender's."""
        return await self._registry.filter(
            lambda s: s is not sender and s.role != sender.role and s.is_open
        )

    async def relay_to_complement(
        self,
        sender: "Session",
        message: dict,
        label: str,
    ) -> FanOutReport:
        targets = await self.complement_of(sender)
        if not targets:
            logger.info(f"No target clients found for {label} from {sender.role_label}")
            return FanOutReport()

        log = logger.info if self._verbose else logger.debug
        for target in targets:
            log(f"Relaying {label} from {sender.role_label} to {target.role_label}")

        return await self._fanout.send_json(targets, message, label)


class FrameRelay(RelayBase):
    """
    Forwards binary video frames from a User to every open Aid.

    Frames are neither queued nor retried. Both the relay and the
    no-recipient drop are logged at reduced frequency.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        fanout: "PeerFanOut",
        verbose: bool = True,
        log_interval: float = HubConstants.FRAME_LOG_INTERVAL,
        idle_log_interval: float = HubConstants.IDLE_FRAME_LOG_INTERVAL,
    ) -> None:
        super().__init__(registry, fanout, verbose)
        self._relay_throttle = LogThrottle(log_interval)
        self._idle_throttle = LogThrottle(idle_log_interval)

    async def relay(self, sender: "Session", frame: bytes) -> FanOutReport:
        aids = await self._registry.filter(
            lambda s: s is not sender and s.role == Role.AID and s.is_open
        )
        if not aids:
            if self._idle_throttle.ready():
                logger.info("No Aid clients available to receive video frame")
            return FanOutReport()

        if self._relay_throttle.ready():
            logger.info(
                f"Relaying video frame from User to {len(aids)} Aid(s): {len(frame)} bytes"
            )
        return await self._fanout.send_bytes(aids, frame, "video frame")


class AnnotationRelay(RelayBase):
    """3D drawings and clear commands."""

    async def drawing(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        points = message.fields.get("points") or []
        logger.info(f"Received 3D drawing from {sender.role_label}: {len(points)} points")
        return await self.relay_to_complement(
            sender, message.stamped(sender.session_id, is_3d=True), "3D drawing"
        )

    async def clear(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        logger.info(f"Received clear command from {sender.role_label}")
        return await self.relay_to_complement(
            sender, message.stamped(sender.session_id), "clear command"
        )


class SignalingRelay(RelayBase):
    """WebRTC handshake messages, passed through verbatim plus stamping."""

    LABELS = {
        MessageKind.OFFER: "WebRTC Offer",
        MessageKind.ANSWER: "WebRTC Answer",
        MessageKind.ICE_CANDIDATE: "ICE Candidate",
    }

    async def forward(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        label = self.LABELS.get(message.kind, message.raw_type)
        logger.info(f"{label} from {sender.role_label}", session_id=sender.session_id)
        return await self.relay_to_complement(
            sender, message.stamped(sender.session_id), message.raw_type
        )


class AudioCallRelay(RelayBase):
    """Audio call start/end and status updates."""

    def __init__(
        self,
        registry: "ConnectionRegistry",
        fanout: "PeerFanOut",
        status: "StatusBroadcaster",
        verbose: bool = True,
    ) -> None:
        super().__init__(registry, fanout, verbose)
        self._status = status

    async def start(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        logger.info(f"Audio call started by {sender.role_label}", session_id=sender.session_id)
        await self._registry.set_audio(sender.channel, True)
        report = await self.relay_to_complement(
            sender, message.stamped(sender.session_id), "audio call start"
        )
        await self._status.broadcast()
        return report

    async def end(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        logger.info(f"Audio call ended by {sender.role_label}", session_id=sender.session_id)
        await self._registry.set_audio(sender.channel, False)
        report = await self.relay_to_complement(
            sender, message.stamped(sender.session_id), "audio call end"
        )
        await self._status.broadcast()
        return report

    async def status_update(self, sender: "Session", message: "HubMessage") -> FanOutReport:
        status = message.fields.get("status")
        logger.info(f"Audio status from {sender.role_label}: {status}")
        return await self.relay_to_complement(
            sender, message.stamped(sender.session_id), f"audio status: {status}"
        )
