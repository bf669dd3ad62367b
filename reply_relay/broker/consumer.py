"""Reply Relay — RabbitMQ Consumer.

Async consumer built on aio-pika. Yields one InboundEnvelope per delivery
and settles each delivery explicitly (manual acknowledgment).

Stream termination:
  - cancel() or close() called → iteration ends cleanly
  - connection/channel failure → ConsumerError
  - broker cancelled consumer  → ConsumerError

Usage:
    consumer = RabbitConsumer(config.rabbit)
    await consumer.connect()
    async for envelope in consumer.envelopes():
        ...
        await consumer.acknowledge(envelope)
    await consumer.close()

On shutdown, cancel() stops consumption but keeps the channel open so the
delivery in flight can still be acknowledged; close() then releases the
connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractQueueIterator,
)
from aio_pika.exceptions import AMQPError

from reply_relay.config import RabbitConfig
from reply_relay.errors import AckError, ConsumerError, StartupError
from reply_relay.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class InboundEnvelope:
    """One delivery from the queue.

    Attributes:
        body: Raw message payload.
        token: The broker message used to settle this delivery.
        delivery_tag: Channel-scoped delivery tag, for logging.
        redelivered: Whether the broker has delivered this message before.
    """

    body: bytes
    token: AbstractIncomingMessage = field(repr=False)
    delivery_tag: Optional[int] = None
    redelivered: bool = False
    settled: bool = field(default=False, init=False)

    @classmethod
    def from_message(cls, message: AbstractIncomingMessage) -> InboundEnvelope:
        return cls(
            body=message.body,
            token=message,
            delivery_tag=message.delivery_tag,
            redelivered=bool(message.redelivered),
        )


class RabbitConsumer:
    """Consumes a single RabbitMQ queue with manual acknowledgment.

    Attributes:
        config: RabbitConfig with address, queue name and consumer tag.
    """

    def __init__(self, config: RabbitConfig) -> None:
        """Initialize the consumer. Call connect() before consuming.

        Args:
            config: RabbitConfig from the app configuration.
        """
        self.config = config
        self._connection: Optional[AbstractConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._queue: Optional[AbstractQueue] = None
        self._iterator: Optional[AbstractQueueIterator] = None
        self._consumed = False
        self._stopping = False
        self._closed = False
        self._close_exc: Optional[BaseException] = None

    async def connect(self) -> None:
        """Connect to the broker and look up the queue.

        The queue must already exist; it is looked up passively.

        Raises:
            StartupError: If the broker is unreachable or the queue is missing.
        """
        try:
            self._connection = await aio_pika.connect(self.config.address)
            self._connection.close_callbacks.add(self._on_connection_close)
            self._channel = await self._connection.channel()
            await self._channel.set_qos(prefetch_count=self.config.prefetch_count)
            self._queue = await self._channel.get_queue(self.config.queue, ensure=True)
        except Exception as e:
            await self._close_connection()
            raise StartupError(
                f"Failed to consume queue '{self.config.queue}': {e}"
            ) from e

        if self._closed:
            # close() ran while connecting
            logger.info("Consumer closed during connect, releasing connection")
            await self._close_connection()
            return

        logger.info(
            "Connected to RabbitMQ, consuming '%s' as '%s'",
            self.config.queue, self.config.consumer_tag,
        )

    async def envelopes(self) -> AsyncIterator[InboundEnvelope]:
        """Yield deliveries in broker order until the stream ends.

        Can only be iterated once per consumer.

        Yields:
            One InboundEnvelope per delivery.

        Raises:
            ConsumerError: If the stream fails or ends without cancel()/close().
            RuntimeError: If called before connect() or a second time.
        """
        if self._consumed:
            raise RuntimeError("RabbitConsumer stream can only be consumed once")
        if self._stopping:
            self._consumed = True
            logger.info("Consumer stopped before consuming")
            return
        if self._queue is None:
            raise RuntimeError("RabbitConsumer.connect() must be called first")
        self._consumed = True

        try:
            async with self._queue.iterator(
                consumer_tag=self.config.consumer_tag,
            ) as iterator:
                self._iterator = iterator
                if self._stopping:
                    return
                async for message in iterator:
                    yield InboundEnvelope.from_message(message)
        except (AMQPError, ConnectionError) as e:
            if self._stopping:
                logger.debug("Consumer stream closed during shutdown: %s", e)
                return
            raise ConsumerError(f"Delivery stream failed: {e}") from e
        finally:
            self._iterator = None

        if self._stopping:
            logger.info("Consumer stream closed")
            return
        if self._close_exc is not None:
            raise ConsumerError(
                f"Broker connection closed: {self._close_exc}"
            ) from self._close_exc
        raise ConsumerError(f"Consumer '{self.config.consumer_tag}' was cancelled")

    async def acknowledge(self, envelope: InboundEnvelope) -> None:
        """Tell the broker the delivery is handled and must not be redelivered.

        Raises:
            AckError: If the delivery was already settled or the channel failed.
        """
        self._check_unsettled(envelope)
        envelope.settled = True
        try:
            await envelope.token.ack()
        except (AMQPError, ConnectionError, RuntimeError) as e:
            raise AckError(
                f"Ack of delivery {envelope.delivery_tag} failed: {e}"
            ) from e

    async def reject(self, envelope: InboundEnvelope, requeue: bool) -> None:
        """Negatively acknowledge a delivery.

        With requeue=False the broker drops the message, or routes it to
        the queue's dead-letter exchange if one is configured.

        Raises:
            AckError: If the delivery was already settled or the channel failed.
        """
        self._check_unsettled(envelope)
        envelope.settled = True
        try:
            await envelope.token.reject(requeue=requeue)
        except (AMQPError, ConnectionError, RuntimeError) as e:
            raise AckError(
                f"Reject of delivery {envelope.delivery_tag} failed: {e}"
            ) from e

    async def cancel(self) -> None:
        """Stop consuming; the channel stays open. Safe to call more than once.

        The stream ends cleanly once the delivery in flight, if any, has
        been handed back. That delivery can still be acknowledged.
        """
        if self._stopping:
            return
        self._stopping = True
        logger.info("Cancelling consumer '%s'", self.config.consumer_tag)

        if self._iterator is not None:
            try:
                await self._iterator.close()
            except Exception as e:
                logger.debug("Error closing queue iterator: %s", e)

    async def close(self) -> None:
        """Stop consuming and close the connection. Safe to call more than once."""
        self._closed = True
        await self.cancel()
        await self._close_connection()

    @property
    def is_closed(self) -> bool:
        return self._connection is None or self._connection.is_closed

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        self._channel = None
        if connection is None or connection.is_closed:
            return
        connection.close_callbacks.discard(self._on_connection_close)
        try:
            await connection.close()
        except Exception as e:
            logger.warning("Error closing RabbitMQ connection: %s", e)

    def _on_connection_close(self, sender: object, exc: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        self._close_exc = exc
        logger.error("RabbitMQ connection closed unexpectedly: %s", exc)

    @staticmethod
    def _check_unsettled(envelope: InboundEnvelope) -> None:
        if envelope.settled:
            raise AckError(f"Delivery {envelope.delivery_tag} was already settled")
