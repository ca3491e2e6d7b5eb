"""
WebSocket endpoint.

One instance per accepted connection. Runs the receive loop and hands
every frame to the hub; whatever ends the loop, the lifecycle cleanup
runs exactly once in ``finally``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from assist_hub.components.core.channel import WebSocketChannel
from assist_hub.components.core.constants import WSCloseCode
from assist_hub.components.core.errors import TransportError
from shared.config.logging import get_logger
from shared.infrastructure.correlation import bind_session_id, unbind_session_id

if TYPE_CHECKING:
    from assist_hub.hub import RelayHub

logger = get_logger(__name__)


class HubEndpoint:
    """
    Connection handler for the relay hub.

    Usage:
        endpoint = HubEndpoint(websocket, hub)
        await endpoint.run()
    """

    def __init__(self, websocket: WebSocket, hub: "RelayHub") -> None:
        self.websocket = websocket
        self.hub = hub
        self.channel = WebSocketChannel(websocket)

    async def run(self) -> None:
        """
        Handle the complete lifecycle:
        1. Accept and register
        2. Message loop
        3. Cleanup on close or transport error
        """
        if self.hub.is_shutdown:
            await self.websocket.close(code=WSCloseCode.GOING_AWAY, reason="Server shutting down")
            return

        await self.websocket.accept()
        try:
            session = await self.hub.accept(self.channel)
        except ConnectionError as e:
            logger.info("Connection rejected", reason=str(e))
            await self.channel.close(code=WSCloseCode.GOING_AWAY, reason=str(e))
            return

        token = bind_session_id(session.session_id)
        error: BaseException | None = None
        try:
            await self._message_loop()
        except WebSocketDisconnect:
            pass
        except Exception as e:
            error = TransportError(f"{type(e).__name__}: {e}")
        finally:
            if error is not None:
                await self.hub.fail(self.channel, error)
            else:
                await self.hub.close(self.channel)
            unbind_session_id(token)

    async def _message_loop(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

            text = message.get("text")
            if text is not None:
                await self.hub.handle(self.channel, text)
                continue

            data = message.get("bytes")
            if data is not None:
                await self.hub.handle(self.channel, data)
