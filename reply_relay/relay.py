"""Reply Relay — Relay Loop.

Drives the consume → decode → send → settle cycle, one message at a time
in broker order:

  AWAITING_MESSAGE → DECODING → SENDING | SKIP_SEND → ACKNOWLEDGING
        ↑                                                  │
        └──────────────────────────────────────────────────┘

Decode and send failures are logged and the message is still settled.
How it is settled is decided by a single policy function; the default
(ack_always) acknowledges every delivery, so a message that fails to
decode or send is removed from the queue for good.

The loop stops (STOPPED) when the delivery stream ends, when it fails
(ConsumerError) or when a delivery cannot be settled (AckError). The two
errors propagate to the caller.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional

from reply_relay.decoder import decode_message
from reply_relay.errors import AckError, ConsumerError, DecodeError, SendError
from reply_relay.utils.health import RelayStats
from reply_relay.utils.logger import get_logger

logger = get_logger(__name__)


class RelayState(enum.Enum):
    AWAITING_MESSAGE = "awaiting_message"
    DECODING = "decoding"
    SENDING = "sending"
    SKIP_SEND = "skip_send"
    ACKNOWLEDGING = "acknowledging"
    STOPPED = "stopped"


class ProcessingOutcome(enum.Enum):
    """What happened to a message before it was settled."""

    DELIVERED = "delivered"
    DECODE_FAILED = "decode_failed"
    SEND_FAILED = "send_failed"


class AckDecision(enum.Enum):
    """How a delivery is settled with the broker."""

    ACK = "ack"
    REQUEUE = "requeue"
    REJECT = "reject"


AckPolicy = Callable[[ProcessingOutcome], AckDecision]


# ═══════════════════════════════════════════════════════════
# Acknowledgment Policies
# ═══════════════════════════════════════════════════════════


def ack_always(outcome: ProcessingOutcome) -> AckDecision:
    """Acknowledge every delivery, whatever happened to it.

    Failed messages are not redelivered and not dead-lettered.
    """
    return AckDecision.ACK


def ack_on_success(outcome: ProcessingOutcome) -> AckDecision:
    """Acknowledge only delivered messages.

    Send failures go back to the queue; undecodable payloads are
    rejected so the broker can dead-letter them instead of looping.
    """
    if outcome is ProcessingOutcome.DELIVERED:
        return AckDecision.ACK
    if outcome is ProcessingOutcome.SEND_FAILED:
        return AckDecision.REQUEUE
    return AckDecision.REJECT


ACK_POLICIES: dict[str, AckPolicy] = {
    "always": ack_always,
    "on_success": ack_on_success,
}


def get_ack_policy(name: str) -> AckPolicy:
    """Look up an acknowledgment policy by its configuration name.

    Raises:
        ValueError: If no policy has that name.
    """
    try:
        return ACK_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown ack policy: {name!r}") from None


# ═══════════════════════════════════════════════════════════
# Relay Loop
# ═══════════════════════════════════════════════════════════


class RelayLoop:
    """Forwards queue messages to the notification sender.

    The consumer must provide envelopes(), acknowledge(envelope) and
    reject(envelope, requeue); the sender must provide send(chat_id, text).
    Both are owned by the caller and are not closed by the loop.

    Attributes:
        consumer: Source of InboundEnvelopes.
        sender: Notification sender.
        ack_policy: Maps a ProcessingOutcome to an AckDecision.
        stats: Counters for this run.
    """

    def __init__(
        self,
        consumer: Any,
        sender: Any,
        ack_policy: AckPolicy = ack_always,
        stats: Optional[RelayStats] = None,
        summary_every: int = 100,
    ) -> None:
        self.consumer = consumer
        self.sender = sender
        self.ack_policy = ack_policy
        self.stats = stats or RelayStats()
        self.summary_every = summary_every
        self._state = RelayState.AWAITING_MESSAGE

    @property
    def state(self) -> RelayState:
        return self._state

    async def run(self) -> RelayStats:
        """Process deliveries until the stream ends.

        Returns:
            The stats of this run, when the stream ended cleanly.

        Raises:
            ConsumerError: If the delivery stream failed.
            AckError: If a delivery could not be settled.
        """
        logger.info("Waiting for messages...")
        stream = self.consumer.envelopes()
        try:
            self._state = RelayState.AWAITING_MESSAGE
            async for envelope in stream:
                await self.handle(envelope)
                self._state = RelayState.AWAITING_MESSAGE
            logger.info("Delivery stream ended")
        except ConsumerError as e:
            self.stats.record_error("broker", str(e))
            logger.error("Relay stopped, delivery stream failed: %s", e)
            raise
        except AckError as e:
            self.stats.record_error("broker", str(e))
            logger.error("Relay stopped, settle failed: %s", e)
            raise
        finally:
            self._state = RelayState.STOPPED
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            logger.info("Relay summary │ %s", self.stats.summary())

        return self.stats

    async def handle(self, envelope: Any) -> ProcessingOutcome:
        """Process one delivery and settle it.

        Args:
            envelope: An InboundEnvelope from the consumer.

        Returns:
            The processing outcome the settle decision was based on.

        Raises:
            AckError: If the delivery could not be settled.
        """
        self.stats.record_received()
        outcome = await self._process(envelope)
        self.stats.record_outcome(outcome.value)

        self._state = RelayState.ACKNOWLEDGING
        decision = self.ack_policy(outcome)
        await self._settle(envelope, decision)
        self.stats.record_decision(decision.value)

        if outcome is not ProcessingOutcome.DELIVERED:
            logger.info(
                "Delivery %s settled with %s after %s%s",
                envelope.delivery_tag, decision.value, outcome.value,
                " (redelivered)" if envelope.redelivered else "",
            )
        if self.summary_every and self.stats.received % self.summary_every == 0:
            logger.info("Relay summary │ %s", self.stats.summary())

        return outcome

    async def _process(self, envelope: Any) -> ProcessingOutcome:
        self._state = RelayState.DECODING
        try:
            message = decode_message(envelope.body)
        except DecodeError as e:
            self._state = RelayState.SKIP_SEND
            self.stats.record_error("decoder", e.reason)
            logger.warning("Failed to parse message: %s", e)
            return ProcessingOutcome.DECODE_FAILED

        self._state = RelayState.SENDING
        logger.info(
            "Received message for chat_id %d: %s",
            message.chat_id, message.text[:100],
        )
        try:
            await self.sender.send(message.chat_id, message.text)
        except SendError as e:
            self.stats.record_error("telegram", str(e))
            logger.error("Failed to send message: %s", e)
            return ProcessingOutcome.SEND_FAILED
        except Exception as e:
            self.stats.record_error("telegram", str(e))
            logger.exception("Unexpected error sending to chat_id %d: %s", message.chat_id, e)
            return ProcessingOutcome.SEND_FAILED

        return ProcessingOutcome.DELIVERED

    async def _settle(self, envelope: Any, decision: AckDecision) -> None:
        if decision is AckDecision.ACK:
            await self.consumer.acknowledge(envelope)
        elif decision is AckDecision.REQUEUE:
            await self.consumer.reject(envelope, requeue=True)
        else:
            await self.consumer.reject(envelope, requeue=False)
