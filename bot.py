"""Telegram front end: listing and cancelling reminders.

Reminders are created through the intake services (REST API or MCP tools),
which receive the message and fire time already extracted from what the user
said. In the chat the bot answers the commands below; any other text gets
the usage help.

    /start, /help   usage
    /list           pending reminders of the chat
    /cancel         inline keyboard to cancel one of them
"""

import threading
from typing import List, Optional
from zoneinfo import ZoneInfo

from logger_config import setup_logger
from schemas import QueueItemRecord
from store import ReminderStore
from telegram_client import TelegramClient, inline_keyboard, reply_keyboard

logger = setup_logger(__name__, 'bot.log')

COMMAND_START = "/start"
COMMAND_LIST = "/list"
COMMAND_CANCEL = "/cancel"
COMMAND_HELP = "/help"

MESSAGE_CANCEL = "Never mind"
MESSAGE_COMMAND_CANCELED = "Command canceled."
MESSAGE_REMINDER_CANCELED = "Reminder canceled."
MESSAGE_TEXT_NEEDED = "Please send a text message."
MESSAGE_ERROR = "Something went wrong."
MESSAGE_NO_REMINDERS = "No reminders scheduled."
MESSAGE_CANCEL_WHAT = "Which reminder do you want to cancel?"
MESSAGE_USAGE = """Usage:

* Commands:
/list : show scheduled reminders
/cancel : cancel a scheduled reminder
/help : show this message
"""

LONG_POLL_TIMEOUT = 30


class ReminderBot:
    """Polls Telegram for updates and answers them from the reminder store."""

    def __init__(
        self,
        client: TelegramClient,
        store: ReminderStore,
        restrict_users: bool = False,
        allowed_user_ids: Optional[List[str]] = None,
        timezone: str = "UTC",
        interval_seconds: float = 1
    ):
        self.client = client
        self.store = store
        self.restrict_users = restrict_users
        self.allowed_user_ids = set(allowed_user_ids or [])
        self.tz = ZoneInfo(timezone)
        self.interval_seconds = interval_seconds

        self._offset = 0
        self._stop_event = threading.Event()

    def is_allowed(self, username: Optional[str]) -> bool:
        if not self.restrict_users:
            return True
        return username in self.allowed_user_ids

    def format_reminder(self, item: QueueItemRecord) -> str:
        fire_on = item.fire_on.astimezone(self.tz)
        return f"➤ {item.message} ({fire_on.year}.{fire_on.month}.{fire_on.day} {fire_on:%H:%M})"

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def process_update(self, update: dict):
        if "message" in update:
            self.process_message(update["message"])
        elif "callback_query" in update:
            self.process_callback_query(update["callback_query"])

    def process_message(self, message: dict):
        username = (message.get("from") or {}).get("username")
        if not self.is_allowed(username):
            logger.warning(f"Id not allowed: {username}")
            return

        chat_id = message["chat"]["id"]

        # 'is typing...'
        self.client.send_chat_action(chat_id)

        markup = reply_keyboard([[COMMAND_LIST], [COMMAND_CANCEL], [COMMAND_HELP]])
        text = message.get("text")

        if text is None:
            reply = MESSAGE_TEXT_NEEDED
        elif text.startswith(COMMAND_START) or text.startswith(COMMAND_HELP):
            reply = MESSAGE_USAGE
        elif text.startswith(COMMAND_LIST):
            reminders = self.store.undelivered_queue_items(chat_id)
            if reminders:
                reply = "\n".join(self.format_reminder(r) for r in reminders)
            else:
                reply = MESSAGE_NO_REMINDERS
        elif text.startswith(COMMAND_CANCEL):
            reminders = self.store.undelivered_queue_items(chat_id)
            if reminders:
                buttons = [(self.format_reminder(r), f"{COMMAND_CANCEL} {r.id}") for r in reminders]
                buttons.append((MESSAGE_CANCEL, COMMAND_CANCEL))
                markup = inline_keyboard(buttons)
                reply = MESSAGE_CANCEL_WHAT
            else:
                reply = MESSAGE_NO_REMINDERS
        else:
            reply = MESSAGE_USAGE

        if not reply:
            reply = MESSAGE_ERROR

        sent = self.client.send_message(chat_id, reply, reply_markup=markup)
        if not sent.ok:
            logger.error(f"Failed to send message: {sent.description}")

    def process_callback_query(self, query: dict) -> bool:
        """Handle a button press of the /cancel keyboard.

        Returns True when the callback was answered and the keyboard removed.
        """
        data = query.get("data") or ""
        chat_id = query["message"]["chat"]["id"]
        message_id = query["message"]["message_id"]

        reply = MESSAGE_ERROR
        if data.startswith(COMMAND_CANCEL):
            if data == COMMAND_CANCEL:
                reply = MESSAGE_COMMAND_CANCELED
            else:
                param = data[len(COMMAND_CANCEL):].strip()
                try:
                    queue_id = int(param)
                except ValueError:
                    logger.error(f"Unprocessable callback query: {data}")
                else:
                    if self.store.delete_queue_item(chat_id, queue_id):
                        reply = MESSAGE_REMINDER_CANCELED
                    else:
                        logger.error(f"Failed to delete reminder {queue_id} of chat {chat_id}")
        else:
            logger.error(f"Unprocessable callback query: {data}")

        answered = self.client.answer_callback_query(query["id"], text=reply)
        if not answered.ok:
            logger.error(f"Failed to answer callback query: {query}")
            self.store.log_error(f"failed to answer callback query: {query}")
            return False

        # remove the inline keyboard
        edited = self.client.edit_message_text(chat_id, message_id, reply)
        if not edited.ok:
            logger.error(f"Failed to edit message text: {edited.description}")
            self.store.log_error(f"failed to edit message text: {edited.description}")
            return False

        return True

    # ------------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------------

    def poll_once(self, timeout: int = LONG_POLL_TIMEOUT) -> int:
        """Fetch and process one batch of updates; returns how many were handled."""
        response = self.client.get_updates(offset=self._offset, timeout=timeout)
        if not response.ok:
            logger.error(f"Error while receiving updates: {response.description}")
            return 0

        updates = response.result or []
        for update in updates:
            self._offset = max(self._offset, update["update_id"] + 1)
            try:
                self.process_update(update)
            except Exception as e:
                logger.error(f"Failed to process update {update.get('update_id')}: {e}", exc_info=True)
        return len(updates)

    def run(self):
        logger.info("Bot update polling started")
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.interval_seconds)
        logger.info("Bot update polling stopped")

    def stop(self):
        self._stop_event.set()
