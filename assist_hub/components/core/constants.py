"""
Relay Hub Constants.

Wire tokens, message kinds, roles and close codes shared by all components.
"""

from enum import Enum, IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "HubConstants",
    "Role",
    "MessageKind",
    "SIGNALING_KINDS",
    "AUDIO_KINDS",
    "ROLE_PREFIX",
    "ROLE_CONFIRMED_PREFIX",
    "MSG_CLIENT_STATUS",
    "MSG_USER_DISCONNECTED",
    "MSG_SERVER_SHUTDOWN",
    "MSG_HEARTBEAT_ACK",
    "SHUTDOWN_MESSAGE",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the hub.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or stale connection evicted
    SERVER_ERROR = 1011  # Unexpected server error


class HubConstants:
    """
    Compile-time defaults for the hub timers.

    At runtime the hub reads ``shared.config.settings``; these values are
    used when a component is built without settings (tests, embedding).
    """

    # Seconds of silence after which a session is evicted
    HEARTBEAT_TIMEOUT: Final[float] = 60.0

    # Seconds between reaper sweeps
    REAPER_INTERVAL: Final[float] = 30.0

    # Seconds between periodic status log reports
    STATUS_REPORT_INTERVAL: Final[float] = 60.0

    # Per-peer send timeout during fan-out
    SEND_TIMEOUT: Final[float] = 5.0

    # Delay after the shutdown notice so pending sends can flush
    SHUTDOWN_GRACE: Final[float] = 1.0

    # Throttle windows for frame relay log lines
    FRAME_LOG_INTERVAL: Final[float] = 3.0
    IDLE_FRAME_LOG_INTERVAL: Final[float] = 5.0


class Role:
    """
    Roles that take part in relay policy.

    Clients may declare any role string; only these two are matched by
    the frame relay and counted in status snapshots.
    """

    USER: Final[str] = "User"
    AID: Final[str] = "Aid"

    KNOWN: Final[frozenset[str]] = frozenset({USER, AID})


class MessageKind(str, Enum):
    """
    Structured message kinds understood by the router.

    UNKNOWN is the fallback for any other ``type`` value; the raw string
    travels alongside it on the parsed message.
    """

    DRAWING = "drawing"
    CLEAR = "clear"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice_candidate"
    AUDIO_CALL_START = "audio_call_start"
    AUDIO_CALL_END = "audio_call_end"
    AUDIO_STATUS = "audio_status"
    HEARTBEAT = "heartbeat"
    UNKNOWN = "unknown"


# WebRTC handshake messages, passed through verbatim plus stamping
SIGNALING_KINDS: Final[frozenset[MessageKind]] = frozenset({
    MessageKind.OFFER,
    MessageKind.ANSWER,
    MessageKind.ICE_CANDIDATE,
})

# Kinds that only exist when the audio relay feature is enabled
AUDIO_KINDS: Final[frozenset[MessageKind]] = SIGNALING_KINDS | frozenset({
    MessageKind.AUDIO_CALL_START,
    MessageKind.AUDIO_CALL_END,
    MessageKind.AUDIO_STATUS,
})

# Control tokens
ROLE_PREFIX: Final[str] = "ROLE:"
ROLE_CONFIRMED_PREFIX: Final[str] = "ROLE_CONFIRMED:"

# Server-originated message types
MSG_CLIENT_STATUS: Final[str] = "client_status"
MSG_USER_DISCONNECTED: Final[str] = "user_disconnected"
MSG_SERVER_SHUTDOWN: Final[str] = "server_shutdown"
MSG_HEARTBEAT_ACK: Final[str] = "heartbeat_ack"

SHUTDOWN_MESSAGE: Final[str] = "Server is shutting down"
