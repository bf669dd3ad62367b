#!/usr/bin/env python3
"""Reply Relay — Test Publisher.

Publishes one message onto the relay queue, for checking a running relay
end to end. Pass --raw to send an arbitrary (possibly malformed) body.

Usage:
    python scripts/publish_reply.py 123456789 "hello"
    python scripts/publish_reply.py --raw '{"chat_id": "oops"}'
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import aio_pika

from reply_relay.config import load_config
from reply_relay.utils.logger import get_logger

logger = get_logger(__name__)


async def publish(body: bytes) -> None:
    """Publish a persistent message to the configured queue."""
    config = load_config()
    connection = await aio_pika.connect(config.rabbit.address)
    async with connection:
        channel = await connection.channel()
        await channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            ),
            routing_key=config.rabbit.queue,
        )
    logger.info("Published %d bytes to '%s'", len(body), config.rabbit.queue)


def main() -> None:
    parser = argparse.ArgumentParser(description="Publish a test message to the relay queue")
    parser.add_argument("--raw", help="send this string as the body, unchanged")
    parser.add_argument("chat_id", nargs="?", type=int)
    parser.add_argument("text", nargs="?", default="Reply Relay test")
    args = parser.parse_args()

    if args.raw is not None:
        body = args.raw.encode("utf-8")
    elif args.chat_id is not None:
        body = json.dumps({"chat_id": args.chat_id, "text": args.text}).encode("utf-8")
    else:
        parser.error("chat_id is required unless --raw is given")

    asyncio.run(publish(body))


if __name__ == "__main__":
    main()
