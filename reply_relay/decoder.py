"""Reply Relay — Message Decoder.

Parses raw queue payloads into RelayMessage instances. The wire format is
a JSON object with exactly two required fields:

    {"chat_id": <64-bit signed integer>, "text": <string>}

Types are checked strictly: numeric strings, floats and booleans are not
accepted as chat ids. Unknown extra fields are ignored, but a repeated
`chat_id` or `text` key is an error rather than last-one-wins.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from reply_relay.errors import DecodeError

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1
_FIELDS = ("chat_id", "text")


class _JSONObject(dict):
    """A decoded JSON object that remembers which keys appeared twice."""

    def __init__(self, pairs: list[tuple[str, Any]]) -> None:
        super().__init__(pairs)
        self.duplicates: set[str] = set()
        seen = set()
        for key, _ in pairs:
            if key in seen:
                self.duplicates.add(key)
            seen.add(key)


@dataclass(frozen=True)
class RelayMessage:
    """A decoded message ready to be forwarded.

    Attributes:
        chat_id: Telegram chat identifier of the recipient.
        text: Message body, sent as-is.
    """

    chat_id: int
    text: str


def decode_message(payload: bytes) -> RelayMessage:
    """Decode a raw payload into a RelayMessage.

    Args:
        payload: Raw message body from the broker.

    Returns:
        The decoded RelayMessage.

    Raises:
        DecodeError: If the payload is not UTF-8 JSON, not an object, or
            a required field is missing, repeated or has the wrong type.
    """
    try:
        data = json.loads(
            bytes(payload).decode("utf-8"), object_pairs_hook=_JSONObject,
        )
    except UnicodeDecodeError as e:
        raise DecodeError(f"payload is not valid UTF-8: {e.reason}", payload) from None
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"payload is not valid JSON: {e}", payload) from None

    if not isinstance(data, dict):
        raise DecodeError(
            f"expected a JSON object, got {_json_type(data)}", payload,
        )

    for key in _FIELDS:
        if key in data.duplicates:
            raise DecodeError(f"duplicate field '{key}'", payload)

    chat_id = _require(data, "chat_id", payload)
    if type(chat_id) is not int:
        raise DecodeError(
            f"field 'chat_id' must be an integer, got {_json_type(chat_id)}",
            payload,
        )
    if not _INT64_MIN <= chat_id <= _INT64_MAX:
        raise DecodeError("field 'chat_id' is out of the 64-bit range", payload)

    text = _require(data, "text", payload)
    if not isinstance(text, str):
        raise DecodeError(
            f"field 'text' must be a string, got {_json_type(text)}", payload,
        )

    return RelayMessage(chat_id=chat_id, text=text)


def _require(data: dict[str, Any], key: str, payload: bytes) -> Any:
    if key not in data:
        raise DecodeError(f"missing field '{key}'", payload)
    return data[key]


def _json_type(value: Any) -> str:
    """Name a decoded JSON value the way JSON would."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"
