"""Reply Relay — forwards RabbitMQ messages to Telegram chats."""

__version__ = "1.0.0"
