"""
Outbound delivery: per-peer fan-out and status snapshots.
"""

from assist_hub.components.broadcast.fanout import FanOutReport, PeerFanOut, now_ms
from assist_hub.components.broadcast.status import StatusBroadcaster, StatusReporter

__all__ = [
    "FanOutReport",
    "PeerFanOut",
    "now_ms",
    "StatusBroadcaster",
    "StatusReporter",
]
