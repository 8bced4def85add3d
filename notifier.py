"""Notifiers deliver reminder text to a destination."""

from typing import Protocol

from logger_config import setup_logger
from telegram_client import TelegramClient

logger = setup_logger(__name__, 'worker.log')


class Notifier(Protocol):
    """Anything that can deliver a message; must be safe to call from many threads."""

    def send(self, destination: int, message: str) -> bool:
        ...


class TelegramNotifier:
    """Delivers reminders as plain Telegram messages."""

    def __init__(self, client: TelegramClient):
        self.client = client

    def send(self, destination: int, message: str) -> bool:
        sent = self.client.send_message(destination, message)
        if not sent.ok:
            logger.error(f"Failed to send reminder to chat id {destination}: {sent.description}")
        return sent.ok
