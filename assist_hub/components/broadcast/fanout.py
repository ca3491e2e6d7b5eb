"""
Peer Fan-out.

Sends one payload to many sessions. Every per-peer send runs
concurrently under its own timeout; a failure is captured as a
PeerSendFailure in the report and never stops delivery to the others.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, TYPE_CHECKING

from assist_hub.components.core.channel import Channel
from assist_hub.components.core.constants import HubConstants
from assist_hub.components.core.errors import PeerSendFailure
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from assist_hub.components.connection.registry import Session

logger = get_logger(__name__)


def now_ms() -> int:
    """Wall-clock timestamp in epoch milliseconds, as used on the wire."""
    return int(time.time() * 1000)


def encode_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), default=str)


@dataclass
class FanOutReport:
    """Result of one fan-out."""

    attempted: int = 0
    delivered: int = 0
    failures: list[PeerSendFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return not self.failures


class PeerFanOut:
    """
    Best-effort delivery to a set of sessions.

    Closed channels are skipped, not counted as failures.
    """

    def __init__(self, send_timeout: float = HubConstants.SEND_TIMEOUT) -> None:
        self._send_timeout = send_timeout

    async def send_json(
        self,
        recipients: Iterable[Session],
        payload: dict[str, Any],
        label: str = "message",
    ) -> FanOutReport:
        """Serialize once and send the text to every open recipient."""
        text = encode_json(payload)
        return await self._fan_out(recipients, lambda ch: ch.send_text(text), label)

    async def send_text(
        self,
        recipients: Iterable[Session],
        text: str,
        label: str = "message",
    ) -> FanOutReport:
        return await self._fan_out(recipients, lambda ch: ch.send_text(text), label)

    async def send_bytes(
        self,
        recipients: Iterable[Session],
        data: bytes,
        label: str = "frame",
    ) -> FanOutReport:
        return await self._fan_out(recipients, lambda ch: ch.send_bytes(data), label)

    async def reply_json(self, session: Session, payload: dict[str, Any], label: str) -> bool:
        """Send to a single session. Returns True on delivery."""
        report = await self.send_json([session], payload, label)
        return report.delivered == 1

    async def reply_text(self, session: Session, text: str, label: str) -> bool:
        report = await self.send_text([session], text, label)
        return report.delivered == 1

    async def _fan_out(
        self,
        recipients: Iterable[Session],
        send: Callable[[Channel], Awaitable[None]],
        label: str,
    ) -> FanOutReport:
        targets = [s for s in recipients if s.is_open]
        report = FanOutReport(attempted=len(targets))
        if not targets:
            return report

        results = await asyncio.gather(
            *(self._deliver(session, send) for session in targets),
            return_exceptions=True,
        )

        for session, result in zip(targets, results):
            if result is None:
                report.delivered += 1
                continue
            if isinstance(result, PeerSendFailure):
                failure = result
            else:
                failure = PeerSendFailure(session.session_id, session.role, result)
            report.failures.append(failure)
            logger.warning(f"Error relaying {label}", **failure.as_log_context())

        return report

    async def _deliver(
        self,
        session: Session,
        send: Callable[[Channel], Awaitable[None]],
    ) -> PeerSendFailure | None:
        try:
            await asyncio.wait_for(send(session.channel), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            return PeerSendFailure(session.session_id, session.role, "timeout")
        except Exception as e:
            return PeerSendFailure(session.session_id, session.role, e)
        return None
