"""Shared test fixtures for Reply Relay."""
import os
import tempfile

# Keep test runs from writing into the project's logs/ directory
os.environ.setdefault("REPLY_RELAY_LOG_DIR", tempfile.mkdtemp(prefix="reply-relay-logs-"))

import json
from dataclasses import dataclass, field
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reply_relay.errors import AckError, ConsumerError, SendError


def payload(**fields: Any) -> bytes:
    return json.dumps(fields).encode("utf-8")


@dataclass
class FakeEnvelope:
    body: bytes
    delivery_tag: int
    redelivered: bool = False
    settled: bool = False


class ScriptedConsumer:
    """In-memory consumer that yields a fixed list of payloads.

    Every pull and settle is appended to the shared ``events`` list so tests
    can assert the exact call sequence.
    """

    def __init__(
        self,
        bodies: list[bytes],
        events: list[tuple],
        stream_error: Optional[Exception] = None,
        fail_ack_on: tuple[int, ...] = (),
    ):
        self.items = [FakeEnvelope(body, tag) for tag, body in enumerate(bodies, 1)]
        self.events = events
        self.stream_error = stream_error
        self.fail_ack_on = set(fail_ack_on)
        self.closed = False

    async def envelopes(self):
        for envelope in self.items:
            self.events.append(("pull", envelope.delivery_tag))
            yield envelope
        if self.stream_error is not None:
            raise self.stream_error

    async def acknowledge(self, envelope):
        self._settle(envelope, "ack")

    async def reject(self, envelope, requeue):
        self._settle(envelope, "requeue" if requeue else "reject")

    def _settle(self, envelope, kind):
        if envelope.settled:
            raise AssertionError(f"delivery {envelope.delivery_tag} settled twice")
        envelope.settled = True
        self.events.append((kind, envelope.delivery_tag))
        if envelope.delivery_tag in self.fail_ack_on:
            raise AckError(f"channel closed while settling {envelope.delivery_tag}")


class ScriptedSender:
    """Records sends; fails for the configured chat ids."""

    def __init__(self, events: list[tuple], failing_chats: tuple[int, ...] = (),
                 crash_chats: tuple[int, ...] = ()):
        self.events = events
        self.failing_chats = set(failing_chats)
        self.crash_chats = set(crash_chats)

    async def send(self, chat_id, text):
        self.events.append(("send", chat_id, text))
        if chat_id in self.failing_chats:
            raise SendError(chat_id, RuntimeError("Bad Request: chat not found"))
        if chat_id in self.crash_chats:
            raise KeyError("unexpected")


@pytest.fixture
def events() -> list[tuple]:
    return []


@pytest.fixture
def make_consumer(events):
    def _make(bodies, **kwargs):
        return ScriptedConsumer(bodies, events, **kwargs)
    return _make


@pytest.fixture
def make_sender(events):
    def _make(**kwargs):
        return ScriptedSender(events, **kwargs)
    return _make


@pytest.fixture
def connection_lost() -> ConsumerError:
    return ConsumerError("Delivery stream failed: connection reset by peer")


# ── aio-pika fakes ────────────────────────────────────────

def make_message(body: bytes, tag: int) -> MagicMock:
    message = MagicMock()
    message.body = body
    message.delivery_tag = tag
    message.redelivered = False
    message.ack = AsyncMock()
    message.reject = AsyncMock()
    return message


class FakeQueueIterator:
    """Stands in for aio_pika's QueueIterator."""

    def __init__(self, messages, error=None):
        self.messages = list(messages)
        self.error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        if self.messages:
            return self.messages.pop(0)
        if self.error is not None:
            raise self.error
        raise StopAsyncIteration

    async def close(self):
        self.closed = True


@pytest.fixture
def broker():
    """Patched aio_pika.connect returning a mocked connection/channel/queue."""
    queue = MagicMock()
    channel = MagicMock()
    channel.set_qos = AsyncMock()
    channel.get_queue = AsyncMock(return_value=queue)
    connection = MagicMock()
    connection.is_closed = False
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()
    connection.close_callbacks = MagicMock()

    with patch("reply_relay.broker.consumer.aio_pika.connect",
               AsyncMock(return_value=connection)) as connect:
        yield MagicMock(connect=connect, connection=connection, channel=channel, queue=queue)
