"""Reply Relay — Error Taxonomy.

Fatal errors stop the relay loop (StartupError, ConsumerError, AckError).
Per-message errors (DecodeError, SendError) are logged and the message is
settled according to the acknowledgment policy.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""


class StartupError(RelayError):
    """A connection or credential could not be established at startup."""


class ConsumerError(RelayError):
    """The delivery stream failed or the broker connection closed unexpectedly."""


class AckError(RelayError):
    """A delivery could not be settled with the broker."""


class DecodeError(RelayError):
    """A payload is not a valid relay message.

    Attributes:
        reason: Short description of what is wrong with the payload.
        payload_excerpt: Bounded repr of the raw payload for the logs.
    """

    def __init__(self, reason: str, payload: bytes = b"") -> None:
        self.reason = reason
        self.payload_excerpt = _excerpt(payload)
        super().__init__(f"{reason} (payload: {self.payload_excerpt})")


class SendError(RelayError):
    """The notification API did not confirm a send.

    The message may or may not have been delivered; a timed out request
    is still reported here.

    Attributes:
        chat_id: The recipient of the failed send.
        cause: The underlying exception.
    """

    def __init__(self, chat_id: int, cause: Optional[BaseException]) -> None:
        self.chat_id = chat_id
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(f"Send to chat {chat_id} failed: {detail}")


_EXCERPT_LEN = 200


def _excerpt(payload: bytes) -> str:
    """Return a bounded repr of a payload."""
    if len(payload) <= _EXCERPT_LEN:
        return repr(payload)
    return f"{payload[:_EXCERPT_LEN]!r}... ({len(payload)} bytes)"
