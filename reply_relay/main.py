"""Reply Relay — Main Application.

Ties all components together: config, logging, the RabbitMQ consumer,
the Telegram bot and the relay loop.

Startup connects to both services before the first message is read;
failing either is fatal. SIGINT/SIGTERM cancel consumption: the message in
flight is still sent and settled, the relay loop ends in order, and the
connections are closed afterwards.

Exit codes:
  0  stream ended after a shutdown signal
  1  startup failure or fatal runtime error

Usage:
    python -m reply_relay
    reply-relay
    python scripts/run.py
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

from reply_relay.broker.consumer import RabbitConsumer
from reply_relay.config import AppConfig, load_config
from reply_relay.errors import AckError, ConsumerError, StartupError
from reply_relay.notifier.telegram_bot import TelegramNotifier
from reply_relay.relay import RelayLoop, get_ack_policy
from reply_relay.utils.logger import get_logger, set_console_level

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class ReplyRelay:
    """Main application: owns the broker and Telegram handles.

    Attributes:
        config: Full application configuration.
        consumer: RabbitMQ consumer, set during start().
        telegram: Telegram sender, set during start().
        loop: The relay loop, set once both handles are connected.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize with default state. Call start() to run.

        Args:
            config: Preloaded configuration. Loaded from disk when omitted.
        """
        self.config = config
        self.consumer: Optional[RabbitConsumer] = None
        self.telegram: Optional[TelegramNotifier] = None
        self.loop: Optional[RelayLoop] = None
        self._stop_requested = False
        self._stop_task: Optional[asyncio.Task] = None

    async def start(self) -> int:
        """Full application lifecycle.

        1. Load config
        2. Connect to RabbitMQ
        3. Connect the Telegram bot
        4. Run the relay loop until the stream ends or fails
        5. Release both connections

        Returns:
            Process exit code.
        """
        try:
            # ── 1. Config ────────────────────────────────
            logger.info("═══ Loading configuration ═══")
            if self.config is None:
                self.config = load_config()
            set_console_level(self.config.log_level)
            ack_policy = get_ack_policy(self.config.relay.ack_policy)

            # ── 2. Broker ────────────────────────────────
            logger.info("═══ Connecting to RabbitMQ ═══")
            self.consumer = RabbitConsumer(self.config.rabbit)
            await self.consumer.connect()

            # ── 3. Telegram ──────────────────────────────
            logger.info("═══ Connecting Telegram bot ═══")
            self.telegram = TelegramNotifier(self.config.telegram)
            await self.telegram.initialize()

            # ── 4. Relay ─────────────────────────────────
            logger.info(
                "═══ Relaying '%s' (ack policy: %s) ═══",
                self.config.rabbit.queue, self.config.relay.ack_policy,
            )
            self.loop = RelayLoop(
                self.consumer,
                self.telegram,
                ack_policy=ack_policy,
                summary_every=self.config.relay.summary_every,
            )
            if self._stop_requested:
                return EXIT_OK
            await self.loop.run()
            return EXIT_OK

        except (FileNotFoundError, ValueError, StartupError) as e:
            logger.error("Startup failed: %s", e)
            return EXIT_FAILURE
        except (ConsumerError, AckError) as e:
            logger.error("Fatal error: %s", e)
            return EXIT_FAILURE
        finally:
            await self.shutdown()

    async def stop(self) -> None:
        """Request an orderly stop by cancelling consumption.

        Connections stay open until shutdown() so the message in flight can
        still be acknowledged.
        """
        if self._stop_requested:
            return
        self._stop_requested = True
        logger.info("Stop requested, cancelling consumer")
        if self.consumer is not None:
            await self.consumer.cancel()

    def request_stop(self) -> None:
        """Schedule stop() on the running loop, keeping a reference to the task."""
        if self._stop_task is None:
            self._stop_task = asyncio.get_running_loop().create_task(self.stop())

    async def shutdown(self) -> None:
        """Close the consumer and the Telegram session."""
        logger.info("═══ Shutting down ═══")

        if self.consumer is not None:
            await self.consumer.close()

        if self.telegram is not None:
            await self.telegram.close()

        logger.info("Shutdown complete")


def main() -> None:
    """Application entry point."""
    app = ReplyRelay()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler(sig, frame):
        logger.info("Signal %s received, shutting down...", sig)
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        exit_code = loop.run_until_complete(app.start())
    finally:
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
