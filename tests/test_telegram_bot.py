"""Tests for TelegramNotifier with the python-telegram-bot Bot mocked out."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import BadRequest, Forbidden, InvalidToken, NetworkError, RetryAfter, TimedOut

from reply_relay.config import TelegramConfig
from reply_relay.errors import SendError, StartupError
from reply_relay.notifier.telegram_bot import TelegramNotifier


@pytest.fixture
def bot():
    instance = MagicMock()
    instance.initialize = AsyncMock()
    instance.shutdown = AsyncMock()
    instance.get_me = AsyncMock(return_value=SimpleNamespace(username="relay_bot"))
    instance.send_message = AsyncMock(return_value=SimpleNamespace(message_id=77))
    with patch("reply_relay.notifier.telegram_bot.Bot", return_value=instance) as cls, \
            patch("reply_relay.notifier.telegram_bot.HTTPXRequest") as request_cls:
        instance.cls = cls
        instance.request_cls = request_cls
        yield instance


@pytest.fixture
def notifier(bot):
    return TelegramNotifier(TelegramConfig(bot_token="123:abc", timeout_seconds=5.0))


class TestInitialize:
    @pytest.mark.asyncio
    async def test_connects_and_reads_username(self, notifier, bot):
        await notifier.initialize()

        bot.initialize.assert_awaited_once()
        assert notifier.username == "relay_bot"
        bot.cls.assert_called_once()
        assert bot.cls.call_args.kwargs["token"] == "123:abc"
        bot.request_cls.assert_called_once_with(
            connect_timeout=5.0, read_timeout=5.0, write_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_invalid_token_is_startup_error(self, notifier, bot):
        bot.initialize.side_effect = InvalidToken("Unauthorized")
        with pytest.raises(StartupError, match="token"):
            await notifier.initialize()

    @pytest.mark.asyncio
    async def test_unreachable_api_is_startup_error(self, notifier, bot):
        bot.get_me.side_effect = NetworkError("connection refused")
        with pytest.raises(StartupError):
            await notifier.initialize()


class TestSend:
    @pytest.mark.asyncio
    async def test_sends_text_unchanged(self, notifier, bot):
        await notifier.send(42, "hello <b>world</b>")
        bot.send_message.assert_awaited_once_with(chat_id=42, text="hello <b>world</b>")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        BadRequest("Chat not found"),
        BadRequest("Message text is empty"),
        Forbidden("bot was blocked by the user"),
        RetryAfter(30),
        TimedOut(),
        NetworkError("connection reset"),
        RuntimeError("boom"),
    ])
    async def test_failures_become_send_error(self, notifier, bot, error):
        bot.send_message.side_effect = error

        with pytest.raises(SendError) as exc_info:
            await notifier.send(13, "hi")

        assert exc_info.value.chat_id == 13
        assert exc_info.value.cause is error
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_single_attempt(self, notifier, bot):
        bot.send_message.side_effect = NetworkError("down")
        with pytest.raises(SendError):
            await notifier.send(1, "x")
        assert bot.send_message.await_count == 1


class TestClose:
    @pytest.mark.asyncio
    async def test_close_after_initialize(self, notifier, bot):
        await notifier.initialize()
        await notifier.close()
        await notifier.close()
        bot.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_initialize_is_noop(self, notifier, bot):
        await notifier.close()
        bot.shutdown.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_context_manager(self, bot):
        async with TelegramNotifier(TelegramConfig(bot_token="1:a")) as notifier:
            assert notifier.username == "relay_bot"
        bot.shutdown.assert_awaited_once()
