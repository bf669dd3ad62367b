"""Reply Relay — Notifier Package.

Telegram delivery for decoded relay messages.
Components:
  - telegram_bot: Async Telegram bot client, one attempt per send
"""

from reply_relay.notifier.telegram_bot import TelegramNotifier

__all__ = ["TelegramNotifier"]
