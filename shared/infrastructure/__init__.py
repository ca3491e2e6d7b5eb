"""
Infrastructure helpers shared across the hub.
"""

from shared.infrastructure.correlation import (
    CorrelationIdFilter,
    bind_session_id,
    get_session_id,
    unbind_session_id,
)

__all__ = [
    "CorrelationIdFilter",
    "bind_session_id",
    "get_session_id",
    "unbind_session_id",
]
