"""
Inbound client frame classification.

Every frame received on the client socket is one of:

- binary  -> AudioFrame (raw bytes, passed through untouched)
- text    -> ControlEvent (JSON object with a string "type" field)

Whitespace-only text frames are ignored (classify_frame returns None).

Usage example:

    try:
        msg = classify_frame(data, is_binary=False)
    except FrameClassificationError as e:
        await channel.send_json(client_error(e.client_message))
        return

    if isinstance(msg, AudioFrame):
        await adapter.send_audio(msg.payload)
    elif isinstance(msg, ControlEvent):
        await adapter.send_event(msg.event)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from constants import TEXT_INVALID_SHAPE, TEXT_MALFORMED_PAYLOAD


# -------------------------
# Exceptions
# -------------------------

class FrameClassificationError(Exception):
    """
    Base class for per-message classification failures.

    Never fatal to the connection: the relay reports client_message to the
    client and keeps reading.
    """

    client_message: str = TEXT_INVALID_SHAPE


class MalformedPayload(FrameClassificationError):
    """Raised when a non-empty text frame is not parseable JSON."""

    client_message = TEXT_MALFORMED_PAYLOAD


class InvalidShape(FrameClassificationError):
    """
    Raised when parsed JSON is not an object with a string "type" field.

    Such payloads are never forwarded upstream.
    """

    client_message = TEXT_INVALID_SHAPE


# -------------------------
# Data types
# -------------------------

@dataclass(frozen=True)
class AudioFrame:
    """Raw client audio. No decoding or resampling is applied."""
    payload: bytes


@dataclass(frozen=True)
class ControlEvent:
    """
    Structured client event.

    event is the parsed JSON object exactly as sent; only its "type" field
    has been validated.
    """
    type: str
    event: dict[str, Any]


ClientMessage = AudioFrame | ControlEvent


# -------------------------
# Classification
# -------------------------

def _reject_constant(name: str) -> Any:
    # NaN / Infinity are not JSON and cannot be re-serialized upstream.
    raise ValueError(f"non-standard JSON constant {name!r}")


def classify_frame(data: bytes | str, *, is_binary: bool) -> ClientMessage | None:
    """
    Classify one inbound client frame.

    Returns:
        AudioFrame for binary frames, ControlEvent for valid JSON events,
        None for empty / whitespace-only text.

    Raises:
        MalformedPayload: text is not valid UTF-8 or not valid JSON.
        InvalidShape: JSON is not an object with a string "type".
    """
    if is_binary:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return AudioFrame(payload=bytes(data))

    if isinstance(data, str):
        text = data
    else:
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload("text frame is not valid UTF-8") from e

    text = text.strip()
    if not text:
        return None

    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the interpreter stack
        raise MalformedPayload(f"{type(e).__name__}: {e}") from e

    if not isinstance(parsed, dict):
        raise InvalidShape(f"expected JSON object, got {type(parsed).__name__}")

    event_type = parsed.get("type")
    if not isinstance(event_type, str):
        raise InvalidShape("missing string 'type' field")

    return ControlEvent(type=event_type, event=parsed)
