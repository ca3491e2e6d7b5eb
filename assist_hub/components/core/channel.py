"""
Duplex channel abstraction.

The hub never talks to a transport directly. Each connection is wrapped
in a Channel; the registry keys sessions by channel identity and every
outbound payload goes through it.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from assist_hub.components.core.constants import WSCloseCode

logger = logging.getLogger(__name__)


@runtime_checkable
class Channel(Protocol):
    """Outbound half of a connection, as seen by the hub."""

    @property
    def is_open(self) -> bool: ...

    @property
    def remote_address(self) -> str: ...

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None: ...


def is_ws_connected(ws: WebSocket) -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette WebSockets expose only CONNECTING, CONNECTED and DISCONNECTED,
    so a connection may appear connected briefly after a disconnect started.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class WebSocketChannel:
    """Channel backed by a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        client = websocket.client
        self._remote_address = f"{client.host}:{client.port}" if client else "unknown"

    def __repr__(self) -> str:
        return f"WebSocketChannel({self._remote_address})"

    @property
    def is_open(self) -> bool:
        return is_ws_connected(self.websocket)

    @property
    def remote_address(self) -> str:
        return self._remote_address

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def send_bytes(self, data: bytes) -> None:
        await self.websocket.send_bytes(data)

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        """Close the socket; closing an already closed socket is a no-op."""
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as e:
            logger.debug("Close on finished socket: %s", str(e))
