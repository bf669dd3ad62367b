"""Reply Relay — Telegram Bot Client.

Async Telegram bot client using python-telegram-bot v22+.
Each send is a single attempt: failures are reported to the caller as
SendError and never retried here.
"""

from __future__ import annotations

from telegram import Bot
from telegram.error import InvalidToken, TelegramError, TimedOut
from telegram.request import HTTPXRequest

from reply_relay.config import TelegramConfig
from reply_relay.errors import SendError, StartupError
from reply_relay.utils.logger import get_logger

logger = get_logger(__name__)


class TelegramNotifier:
    """Async Telegram bot that forwards plain-text messages.

    Attributes:
        config: TelegramConfig with the bot token and request timeout.
        username: Bot username, known after initialize().
    """

    def __init__(self, config: TelegramConfig) -> None:
        """Initialize the notifier.

        Args:
            config: TelegramConfig from the app configuration.
        """
        self.config = config
        self.username: str | None = None
        timeout = config.timeout_seconds
        self._bot = Bot(
            token=config.bot_token,
            request=HTTPXRequest(
                connect_timeout=timeout,
                read_timeout=timeout,
                write_timeout=timeout,
            ),
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Open the HTTP session and verify the token with getMe.

        Raises:
            StartupError: If the token is rejected or the API is unreachable.
        """
        try:
            await self._bot.initialize()
            me = await self._bot.get_me()
        except InvalidToken as e:
            raise StartupError(f"Telegram rejected the bot token: {e}") from e
        except TelegramError as e:
            raise StartupError(f"Telegram bot connection failed: {e}") from e

        self._initialized = True
        self.username = me.username
        logger.info("Telegram bot connected: @%s", me.username)

    async def send(self, chat_id: int, text: str) -> None:
        """Send one message to a chat.

        The text is sent unmodified, without a parse mode. Empty or
        oversized texts are left for the API to reject.

        Args:
            chat_id: Recipient chat identifier.
            text: Message content.

        Raises:
            SendError: If the API did not confirm the message. A timed out
                request may still have been delivered.
        """
        try:
            msg = await self._bot.send_message(chat_id=chat_id, text=text)
        except TimedOut as e:
            logger.debug("Send to %d timed out; delivery state unknown", chat_id)
            raise SendError(chat_id, e) from e
        except Exception as e:
            raise SendError(chat_id, e) from e

        logger.debug("Sent message %s to chat %d", msg.message_id, chat_id)

    async def close(self) -> None:
        """Release the HTTP session. Safe to call more than once."""
        if not self._initialized:
            return
        self._initialized = False
        try:
            await self._bot.shutdown()
        except Exception as e:
            logger.warning("Error closing Telegram session: %s", e)

    async def __aenter__(self) -> "TelegramNotifier":
        await self.initialize()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
