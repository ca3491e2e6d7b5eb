"""
Core definitions shared by all hub components.
"""

from assist_hub.components.core.channel import Channel, WebSocketChannel, is_ws_connected
from assist_hub.components.core.constants import (
    HubConstants,
    MessageKind,
    Role,
    WSCloseCode,
)
from assist_hub.components.core.errors import (
    HubError,
    MalformedPayload,
    PeerSendFailure,
    StaleConnection,
    TransportError,
)

__all__ = [
    "Channel",
    "WebSocketChannel",
    "is_ws_connected",
    "HubConstants",
    "MessageKind",
    "Role",
    "WSCloseCode",
    "HubError",
    "MalformedPayload",
    "PeerSendFailure",
    "StaleConnection",
    "TransportError",
]
