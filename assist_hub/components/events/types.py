"""
Structured message envelope.

Parses inbound JSON into a tagged HubMessage. The kind is a closed enum;
any other ``type`` parses to MessageKind.UNKNOWN with the raw string kept
so the router can log it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError, model_validator

from assist_hub.components.broadcast.fanout import now_ms
from assist_hub.components.core.constants import MessageKind
from assist_hub.components.core.errors import MalformedPayload


class Envelope(BaseModel):
    """Minimum shape of every structured message: ``{type: str, ...}``."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    type: StrictStr

    @model_validator(mode="after")
    def check_finite_numbers(self) -> "Envelope":
        # Overflowing literals such as 1e400 parse to inf, which is not JSON
        if not _is_finite(self.model_extra or {}):
            raise ValueError("non-finite number")
        return self


def _is_finite(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_is_finite(v) for v in value.values())
    if isinstance(value, list):
        return all(_is_finite(v) for v in value)
    return True


class DrawingFields(BaseModel):
    model_config = ConfigDict(extra="allow")

    points: list[Any]


class AudioStatusFields(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: StrictStr


# Kinds with required fields beyond ``type``
REQUIRED_FIELDS: Mapping[MessageKind, type[BaseModel]] = MappingProxyType({
    MessageKind.DRAWING: DrawingFields,
    MessageKind.AUDIO_STATUS: AudioStatusFields,
})

_KINDS_BY_TYPE: Mapping[str, MessageKind] = MappingProxyType({
    kind.value: kind for kind in MessageKind if kind is not MessageKind.UNKNOWN
})


@dataclass(frozen=True, slots=True)
class HubMessage:
    """
    Parsed structured message.

    Attributes:
        kind: Message kind, UNKNOWN for unrecognized types.
        raw_type: The ``type`` string exactly as sent.
        fields: Every field of the original message, ``type`` included.
    """

    kind: MessageKind
    raw_type: str
    fields: Mapping[str, Any]

    def stamped(self, session_id: str, *, is_3d: bool = False) -> dict[str, Any]:
        """Copy of the message with server timestamp and sender session id."""
        message = dict(self.fields)
        message["timestamp"] = now_ms()
        message["sessionId"] = session_id
        if is_3d:
            message["is3D"] = True
        return message


def parse_message(payload: str | bytes) -> HubMessage:
    """
    Parse a structured message.

    Raises:
        MalformedPayload: Invalid JSON, not an object, missing or non-string
            ``type``, or a missing required field for the kind.
    """
    try:
        envelope = Envelope.model_validate_json(payload)
    except ValidationError as e:
        raise MalformedPayload(_first_error(e)) from e

    kind = _KINDS_BY_TYPE.get(envelope.type, MessageKind.UNKNOWN)
    fields = envelope.model_dump()

    required = REQUIRED_FIELDS.get(kind)
    if required is not None:
        try:
            required.model_validate(fields)
        except ValidationError as e:
            raise MalformedPayload(_first_error(e), message_type=envelope.type) from e

    return HubMessage(kind=kind, raw_type=envelope.type, fields=MappingProxyType(fields))


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{location}: {first.get('msg', 'invalid')}"
