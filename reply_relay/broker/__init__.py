"""Reply Relay — Broker Package.

RabbitMQ consumption with explicit per-delivery settlement.
"""

from reply_relay.broker.consumer import InboundEnvelope, RabbitConsumer

__all__ = ["InboundEnvelope", "RabbitConsumer"]
