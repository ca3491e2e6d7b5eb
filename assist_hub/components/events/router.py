"""
Message Router - classifies inbound payloads and dispatches them.

Usage:
    router = MessageRouter(registry, fanout, status)
    result = await router.dispatch(channel, payload)

Order of classification:
1. ``ROLE:<value>`` control token -> role assignment
2. binary payload from a User -> video frame relay
3. anything else -> structured message, dispatched by ``type``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from assist_hub.components.broadcast.fanout import FanOutReport, now_ms
from assist_hub.components.core.constants import (
    AUDIO_KINDS,
    HubConstants,
    MSG_HEARTBEAT_ACK,
    MessageKind,
    ROLE_CONFIRMED_PREFIX,
    ROLE_PREFIX,
    Role,
    SIGNALING_KINDS,
)
from assist_hub.components.core.errors import MalformedPayload
from assist_hub.components.events.relays import (
    AnnotationRelay,
    AudioCallRelay,
    FrameRelay,
    SignalingRelay,
)
from assist_hub.components.events.types import HubMessage, parse_message
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.broadcast.fanout import PeerFanOut
    from assist_hub.components.broadcast.status import StatusBroadcaster
    from assist_hub.components.connection.registry import ConnectionRegistry, Session
    from assist_hub.components.core.channel import Channel

logger = get_logger(__name__)

_ROLE_PREFIX_BYTES = ROLE_PREFIX.encode()


@dataclass
class RouteResult:
    """Outcome of routing one inbound payload."""

    action: str
    report: FanOutReport | None = None
    error: str | None = None

    @property
    def delivered(self) -> int:
        return self.report.delivered if self.report else 0


class MessageRouter:
    """
    Routes inbound payloads to the relays.

    With ``audio_relay_enabled=False`` the signaling and audio kinds are
    treated as unknown, which gives the plain drawing/video hub.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        fanout: "PeerFanOut",
        status: "StatusBroadcaster",
        audio_relay_enabled: bool = True,
        verbose_relay_logging: bool = True,
        strict_roles: bool = False,
        frame_log_interval: float = HubConstants.FRAME_LOG_INTERVAL,
        idle_frame_log_interval: float = HubConstants.IDLE_FRAME_LOG_INTERVAL,
    ) -> None:
        self._registry = registry
        self._fanout = fanout
        self._status = status
        self._audio_relay_enabled = audio_relay_enabled
        self._strict_roles = strict_roles

        self.frames = FrameRelay(
            registry,
            fanout,
            verbose_relay_logging,
            log_interval=frame_log_interval,
            idle_log_interval=idle_frame_log_interval,
        )
        self.annotations = AnnotationRelay(registry, fanout, verbose_relay_logging)
        self.signaling = SignalingRelay(registry, fanout, verbose_relay_logging)
        self.audio = AudioCallRelay(registry, fanout, status, verbose_relay_logging)

    async def dispatch(self, channel: "Channel", payload: str | bytes) -> RouteResult:
        """
        Route one inbound payload. Never raises.

        Unregistered channels are ignored.
        """
        session = await self._registry.touch(channel)
        if session is None:
            return RouteResult(action="ignored")

        try:
            role = _role_token(payload)
            if role is not None:
                return await self._assign_role(session, role)

            if isinstance(payload, bytes) and session.role == Role.USER:
                report = await self.frames.relay(session, payload)
                return RouteResult(action="frame", report=report)

            message = parse_message(payload)
            return await self._route_message(session, message)

        except MalformedPayload as e:
            logger.warning(
                f"Error processing message from {session.role_label}",
                error="MalformedPayload",
                reason=e.reason,
                message_type=e.message_type,
            )
            return RouteResult(action="malformed", error=e.reason)
        except Exception as e:
            logger.error(
                f"Error processing message from {session.role_label}",
                error=type(e).__name__,
                message=str(e),
                exc_info=True,
            )
            return RouteResult(action="error", error=str(e))

    async def _assign_role(self, session: "Session", role: str) -> RouteResult:
        await self._registry.assign_role(session.channel, role)
        logger.info(
            f"Client assigned role: {role}",
            session_id=session.session_id,
            ip=session.remote_address,
        )
        if self._strict_roles and role not in Role.KNOWN:
            logger.warning(
                "Client declared a role outside the relay policy",
                role=role,
                known_roles=sorted(Role.KNOWN),
            )

        await self._fanout.reply_text(session, f"{ROLE_CONFIRMED_PREFIX}{role}", "role confirmation")
        await self._status.broadcast()
        return RouteResult(action="role")

    async def _route_message(self, session: "Session", message: HubMessage) -> RouteResult:
        kind = message.kind
        if kind in AUDIO_KINDS and not self._audio_relay_enabled:
            kind = MessageKind.UNKNOWN

        if kind is MessageKind.DRAWING:
            report = await self.annotations.drawing(session, message)
        elif kind is MessageKind.CLEAR:
            report = await self.annotations.clear(session, message)
        elif kind in SIGNALING_KINDS:
            report = await self.signaling.forward(session, message)
        elif kind is MessageKind.AUDIO_CALL_START:
            report = await self.audio.start(session, message)
        elif kind is MessageKind.AUDIO_CALL_END:
            report = await self.audio.end(session, message)
        elif kind is MessageKind.AUDIO_STATUS:
            report = await self.audio.status_update(session, message)
        elif kind is MessageKind.HEARTBEAT:
            ack = {"type": MSG_HEARTBEAT_ACK, "timestamp": now_ms()}
            await self._fanout.reply_json(session, ack, "heartbeat ack")
            return RouteResult(action="heartbeat")
        else:
            logger.info(f"Unknown message type from {session.role_label}: {message.raw_type}")
            return RouteResult(action="unknown")

        return RouteResult(action=kind.value, report=report)


def _role_token(payload: str | bytes) -> str | None:
    """
    Extract the role from a ``ROLE:<value>`` control token.

    Only the first colon splits; everything after it is the role.
    """
    if isinstance(payload, bytes):
        if not payload.startswith(_ROLE_PREFIX_BYTES):
            return None
        payload = payload.decode("utf-8", errors="replace")
    elif not payload.startswith(ROLE_PREFIX):
        return None
    return payload.partition(":")[2]
