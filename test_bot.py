from datetime import datetime, timezone

import pytest

from bot import (
    COMMAND_CANCEL, MESSAGE_COMMAND_CANCELED, MESSAGE_NO_REMINDERS, MESSAGE_REMINDER_CANCELED,
    MESSAGE_USAGE, ReminderBot
)
from telegram_client import APIResponse


class FakeTelegramClient:
    def __init__(self):
        self.calls = []
        self.updates = []
        self.answer_ok = True

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))
        return APIResponse(ok=True, result={})

    def send_chat_action(self, chat_id, action="typing"):
        return self._record("sendChatAction", chat_id=chat_id)

    def send_message(self, chat_id, text, reply_markup=None):
        return self._record("sendMessage", chat_id=chat_id, text=text, reply_markup=reply_markup)

    def answer_callback_query(self, callback_query_id, text=None):
        self.calls.append(("answerCallbackQuery", {"id": callback_query_id, "text": text}))
        return APIResponse(ok=self.answer_ok, description=None if self.answer_ok else "query is too old")

    def edit_message_text(self, chat_id, message_id, text):
        return self._record("editMessageText", chat_id=chat_id, message_id=message_id, text=text)

    def get_updates(self, offset=0, timeout=0):
        self.calls.append(("getUpdates", {"offset": offset}))
        updates, self.updates = self.updates, []
        return APIResponse(ok=True, result=updates)

    def sent_texts(self):
        return [kw["text"] for method, kw in self.calls if method == "sendMessage"]


@pytest.fixture
def client():
    return FakeTelegramClient()


@pytest.fixture
def bot(client, store):
    return ReminderBot(client, store, timezone="Asia/Seoul")


def text_update(update_id, chat_id, text, username="alice"):
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "from": {"id": chat_id, "username": username},
            "chat": {"id": chat_id},
            "text": text,
        },
    }


def callback_update(update_id, chat_id, data):
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cb{update_id}",
            "data": data,
            "message": {"message_id": 99, "chat": {"id": chat_id}},
        },
    }


def test_help_and_unknown_text_get_usage(bot, client):
    bot.process_update(text_update(1, 42, "/help"))
    bot.process_update(text_update(2, 42, "remind me tomorrow"))
    assert client.sent_texts() == [MESSAGE_USAGE, MESSAGE_USAGE]


def test_list_shows_pending_reminders_in_local_time(bot, client, store):
    store.enqueue(42, "pay rent", datetime(2025, 3, 1, 0, 30, tzinfo=timezone.utc))

    bot.process_update(text_update(1, 42, "/list"))

    assert client.sent_texts() == ["➤ pay rent (2025.3.1 09:30)"]


def test_list_without_reminders(bot, client):
    bot.process_update(text_update(1, 42, "/list"))
    assert client.sent_texts() == [MESSAGE_NO_REMINDERS]


def test_cancel_offers_inline_keyboard(bot, client, store, clock):
    store.enqueue(42, "pay rent", clock())
    [item] = store.undelivered_queue_items(42)

    bot.process_update(text_update(1, 42, "/cancel"))

    markup = client.calls[-1][1]["reply_markup"]
    callbacks = [row[0]["callback_data"] for row in markup["inline_keyboard"]]
    assert callbacks == [f"{COMMAND_CANCEL} {item.id}", COMMAND_CANCEL]


def test_cancel_callback_deletes_reminder(bot, client, store, clock):
    store.enqueue(42, "pay rent", clock())
    [item] = store.undelivered_queue_items(42)

    assert bot.process_callback_query(callback_update(1, 42, f"/cancel {item.id}")["callback_query"])

    assert store.undelivered_queue_items(42) == []
    assert client.calls[-1] == ("editMessageText", {"chat_id": 42, "message_id": 99, "text": MESSAGE_REMINDER_CANCELED})


def test_cancel_callback_cannot_touch_other_chats(bot, client, store, clock):
    store.enqueue(42, "pay rent", clock())
    [item] = store.undelivered_queue_items(42)

    bot.process_update(callback_update(1, 7, f"/cancel {item.id}"))

    assert len(store.undelivered_queue_items(42)) == 1
    assert client.calls[-1][1]["text"] != MESSAGE_REMINDER_CANCELED


def test_plain_cancel_callback_aborts(bot, client):
    bot.process_update(callback_update(1, 42, "/cancel"))
    assert client.calls[-1][1]["text"] == MESSAGE_COMMAND_CANCELED


def test_failed_callback_answer_is_logged(bot, client, store):
    client.answer_ok = False

    assert not bot.process_callback_query(callback_update(1, 42, "/cancel")["callback_query"])
    assert store.get_logs(1)[0].type == "err"


def test_restricted_users_are_ignored(client, store):
    bot = ReminderBot(client, store, restrict_users=True, allowed_user_ids=["alice"])

    bot.process_update(text_update(1, 42, "/help", username="mallory"))
    assert client.calls == []

    bot.process_update(text_update(2, 42, "/help", username="alice"))
    assert client.sent_texts() == [MESSAGE_USAGE]


def test_poll_once_advances_offset(bot, client):
    client.updates = [text_update(5, 42, "/help"), text_update(6, 42, "/help")]

    assert bot.poll_once(timeout=0) == 2
    bot.poll_once(timeout=0)

    offsets = [kw["offset"] for method, kw in client.calls if method == "getUpdates"]
    assert offsets == [0, 7]
