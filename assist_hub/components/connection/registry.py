"""
Connection Registry.

Owns the live mapping of channel -> Session. Every mutation and every
snapshot runs under one asyncio.Lock, so relays never observe a
half-removed entry. Sends happen on snapshots, outside the lock.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from assist_hub.components.core.channel import Channel
from assist_hub.components.core.constants import Role
from shared.config.logging import get_logger

logger = get_logger(__name__)


def generate_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False, slots=True)
class Session:
    """
    Per-connection state.

    Attributes:
        channel: Owned duplex handle used for outbound sends.
        session_id: Opaque id, stable for the connection's lifetime.
        remote_address: Peer address captured at connect time.
        role: Declared role, None until the client sends ROLE:<value>.
        last_seen: Monotonic time of the last inbound message.
        audio_enabled: True between audio_call_start and audio_call_end.
        connected_at: Wall-clock connect time.
    """

    channel: Channel
    session_id: str
    remote_address: str
    role: str | None = None
    last_seen: float = 0.0
    audio_enabled: bool = False
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def role_label(self) -> str:
        return self.role or "unknown"

    @property
    def is_open(self) -> bool:
        return self.channel.is_open


@dataclass(frozen=True, slots=True)
class StatusCounts:
    """Aggregate counts over the registry at one instant."""

    users: int
    aids: int
    audio_connections: int
    total_clients: int


class ConnectionRegistry:
    """
    Registry of live sessions keyed by channel identity.

    Usage:
        registry = ConnectionRegistry()
        session = await registry.register(channel, "10.0.0.7:51234")
        await registry.assign_role(channel, "Aid")
        aids = await registry.filter(lambda s: s.role == "Aid")
        await registry.remove(channel)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: dict[Channel, Session] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, channel: object) -> bool:
        return channel in self._sessions

    async def register(self, channel: Channel, remote_address: str | None = None) -> Session:
        """
        Create and store a Session for a newly accepted channel.

        Registering the same channel twice returns the existing Session.
        """
        async with self._lock:
            existing = self._sessions.get(channel)
            if existing is not None:
                logger.warning(
                    "Channel already registered",
                    session_id=existing.session_id,
                )
                return existing

            session = Session(
                channel=channel,
                session_id=generate_session_id(),
                remote_address=remote_address or channel.remote_address,
                last_seen=self._clock(),
            )
            self._sessions[channel] = session
            return session

    async def lookup(self, channel: Channel) -> Session | None:
        async with self._lock:
            return self._sessions.get(channel)

    async def remove(self, channel: Channel) -> Session | None:
        """Remove a channel's Session. Returns None if it was not registered."""
        async with self._lock:
            return self._sessions.pop(channel, None)

    async def clear(self) -> list[Session]:
        """Remove every Session and return them."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            return sessions

    async def touch(self, channel: Channel) -> Session | None:
        """Record inbound activity. Returns the Session, or None if unregistered."""
        async with self._lock:
            session = self._sessions.get(channel)
            if session is not None:
                session.last_seen = self._clock()
            return session

    async def assign_role(self, channel: Channel, role: str) -> Session | None:
        """Set the Session's role; each declaration overwrites the previous one."""
        async with self._lock:
            session = self._sessions.get(channel)
            if session is not None:
                session.role = role
            return session

    async def set_audio(self, channel: Channel, enabled: bool) -> Session | None:
        async with self._lock:
            session = self._sessions.get(channel)
            if session is not None:
                session.audio_enabled = enabled
            return session

    async def snapshot(self) -> list[Session]:
        """Copy of all Sessions; safe to iterate while others are removed."""
        async with self._lock:
            return list(self._sessions.values())

    async def filter(self, predicate: Callable[[Session], bool]) -> list[Session]:
        async with self._lock:
            return [s for s in self._sessions.values() if predicate(s)]

    async def stale(self, threshold: float, now: float | None = None) -> list[Session]:
        """Sessions whose last activity is more than ``threshold`` seconds old."""
        now = self._clock() if now is None else now
        return await self.filter(lambda s: now - s.last_seen > threshold)

    async def evict(self, sessions: list[Session]) -> list[Session]:
        """
        Remove the given Sessions atomically.

        Returns only those still registered, so a session closed meanwhile
        is not reported twice.
        """
        async with self._lock:
            removed = []
            for session in sessions:
                if self._sessions.get(session.channel) is session:
                    del self._sessions[session.channel]
                    removed.append(session)
            return removed

    async def counts(self) -> StatusCounts:
        async with self._lock:
            sessions = list(self._sessions.values())
        return StatusCounts(
            users=sum(1 for s in sessions if s.role == Role.USER),
            aids=sum(1 for s in sessions if s.role == Role.AID),
            audio_connections=sum(1 for s in sessions if s.audio_enabled),
            total_clients=len(sessions),
        )
