"""
Pytest configuration and fixtures for relay hub tests.
"""

import asyncio
import json

import pytest

from assist_hub.hub import RelayHub
from shared.config.settings import Settings


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """
    In-memory duplex channel.

    Records everything the hub sends; can be switched to fail or hang on send.
    """

    def __init__(self, remote_address: str = "127.0.0.1:50000"):
        self._remote_address = remote_address
        self._open = True
        self.sent: list[str | bytes] = []
        self.closed_with: tuple[int, str] | None = None
        self.fail_sends = False
        self.hang_sends = False

    def __repr__(self) -> str:
        return f"FakeChannel({self._remote_address})"

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def remote_address(self) -> str:
        return self._remote_address

    async def send_text(self, data: str) -> None:
        await self._before_send()
        self.sent.append(data)

    async def send_bytes(self, data: bytes) -> None:
        await self._before_send()
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._open = False
        self.closed_with = (code, reason)

    async def _before_send(self) -> None:
        if self.hang_sends:
            await asyncio.sleep(3600)
        if self.fail_sends:
            raise ConnectionError("peer went away")
        if not self._open:
            raise RuntimeError("channel closed")

    # Helpers for assertions

    @property
    def texts(self) -> list[str]:
        return [item for item in self.sent if isinstance(item, str)]

    @property
    def frames(self) -> list[bytes]:
        return [item for item in self.sent if isinstance(item, bytes)]

    def messages(self, message_type: str | None = None) -> list[dict]:
        """Decoded JSON messages, optionally filtered by ``type``."""
        decoded = [json.loads(t) for t in self.texts if t.startswith("{")]
        if message_type is None:
            return decoded
        return [m for m in decoded if m.get("type") == message_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hub_settings():
    """Settings with no shutdown delay and short timers."""
    return Settings(
        shutdown_grace=0.0,
        send_timeout=0.2,
        heartbeat_timeout=60.0,
        reaper_interval=30.0,
        frame_log_interval=3.0,
        idle_frame_log_interval=5.0,
    )


@pytest.fixture
def hub(hub_settings, clock):
    return RelayHub(hub_settings, clock=clock)


@pytest.fixture
def make_channel():
    counter = iter(range(50001, 60000))

    def _make() -> FakeChannel:
        return FakeChannel(remote_address=f"10.0.0.2:{next(counter)}")

    return _make


async def connect(hub: RelayHub, channel: FakeChannel, role: str | None = None):
    """Accept a channel, optionally declare a role, and drop the handshake traffic."""
    session = await hub.accept(channel)
    if role is not None:
        await hub.handle(channel, f"ROLE:{role}")
    return session
