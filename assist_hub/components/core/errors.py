"""
Relay hub error taxonomy.

None of these escape a single connection: the router, fan-out and
lifecycle code catch them, log them, and carry on.
"""

from __future__ import annotations

from typing import Any


class HubError(Exception):
    """Base class for relay hub errors."""


class MalformedPayload(HubError):
    """
    Structured message could not be parsed.

    Raised for invalid JSON, a non-object body, a missing or non-string
    ``type``, or a missing required field. The message is dropped and
    the connection stays open.
    """

    def __init__(self, reason: str, message_type: str | None = None):
        self.reason = reason
        self.message_type = message_type
        super().__init__(reason)


class PeerSendFailure(HubError):
    """
    Sending to one recipient during fan-out failed or timed out.

    Produced as a value by the fan-out, never raised out of it.
    """

    def __init__(self, session_id: str, role: str | None, cause: BaseException | str):
        self.session_id = session_id
        self.role = role
        self.cause = cause
        super().__init__(f"send to {session_id} failed: {cause}")

    def as_log_context(self) -> dict[str, Any]:
        return {
            "peer": self.session_id,
            "peer_role": self.role,
            "error": type(self.cause).__name__ if isinstance(self.cause, BaseException) else self.cause,
        }


class TransportError(HubError):
    """Channel-level error while receiving; cleaned up like a normal close."""


class StaleConnection(HubError):
    """Session went silent past the heartbeat timeout; evicted by the reaper."""

    def __init__(self, session_id: str, idle_seconds: float):
        self.session_id = session_id
        self.idle_seconds = idle_seconds
        super().__init__(f"session {session_id} idle for {idle_seconds:.1f}s")
