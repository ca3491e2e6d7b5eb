"""
Connection management: registry, lifecycle and liveness reaper.
"""

from assist_hub.components.connection.registry import (
    ConnectionRegistry,
    Session,
    StatusCounts,
)
from assist_hub.components.connection.lifecycle import ConnectionLifecycle
from assist_hub.components.connection.reaper import LivenessReaper

__all__ = [
    "ConnectionRegistry",
    "Session",
    "StatusCounts",
    "ConnectionLifecycle",
    "LivenessReaper",
]
