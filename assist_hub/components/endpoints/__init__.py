"""
WebSocket endpoint handlers.
"""

from assist_hub.components.endpoints.handler import HubEndpoint

__all__ = ["HubEndpoint"]
