"""
Inbound message handling: envelope parsing, routing and relays.
"""

from assist_hub.components.events.types import HubMessage, parse_message
from assist_hub.components.events.router import MessageRouter, RouteResult

__all__ = [
    "HubMessage",
    "parse_message",
    "MessageRouter",
    "RouteResult",
]
