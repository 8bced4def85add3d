"""Minimal synchronous client for the Telegram Bot API.

Only the methods the bot needs are wrapped. Every call returns an
APIResponse; network problems are reported as ok=False instead of raising,
so callers can treat "Telegram said no" and "Telegram unreachable" alike.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from logger_config import setup_logger

logger = setup_logger(__name__, 'telegram.log')

CHAT_ACTION_TYPING = "typing"


@dataclass
class APIResponse:
    ok: bool
    result: Any = None
    description: Optional[str] = None
    error_code: Optional[int] = None


class TelegramClient:
    """Bot API wrapper around a shared httpx.Client (thread-safe)."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 30.0,
        verbose: bool = False,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.verbose = verbose
        self._http = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self._http.close()

    def _request(self, method: str, params: Dict[str, Any], timeout: Optional[float] = None) -> APIResponse:
        payload = {k: v for k, v in params.items() if v is not None}
        if self.verbose:
            logger.info(f"Requesting {method}: {payload}")

        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = self._http.post(f"/{method}", json=payload, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"Timeout while calling {method}")
            return APIResponse(ok=False, description=f"timeout while calling {method}")
        except httpx.RequestError as e:
            logger.error(f"Network error while calling {method}: {e}")
            return APIResponse(ok=False, description=str(e))

        try:
            data = response.json()
        except ValueError:
            return APIResponse(
                ok=False,
                description=f"non-JSON response (status {response.status_code})",
                error_code=response.status_code
            )

        return APIResponse(
            ok=bool(data.get("ok")),
            result=data.get("result"),
            description=data.get("description"),
            error_code=data.get("error_code"),
        )

    def get_me(self) -> APIResponse:
        return self._request("getMe", {})

    def delete_webhook(self) -> APIResponse:
        return self._request("deleteWebhook", {})

    def get_updates(self, offset: int = 0, timeout: int = 0) -> APIResponse:
        """Long-poll for updates; the HTTP timeout is stretched past the poll timeout."""
        return self._request(
            "getUpdates",
            {"offset": offset, "timeout": timeout},
            timeout=self._http.timeout.read + timeout if timeout else None
        )

    def send_message(self, chat_id: int, text: str, reply_markup: Optional[dict] = None) -> APIResponse:
        return self._request("sendMessage", {
            "chat_id": chat_id,
            "text": text,
            "reply_markup": reply_markup,
        })

    def send_chat_action(self, chat_id: int, action: str = CHAT_ACTION_TYPING) -> APIResponse:
        return self._request("sendChatAction", {"chat_id": chat_id, "action": action})

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> APIResponse:
        return self._request("answerCallbackQuery", {
            "callback_query_id": callback_query_id,
            "text": text,
        })

    def edit_message_text(self, chat_id: int, message_id: int, text: str) -> APIResponse:
        return self._request("editMessageText", {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        })


def reply_keyboard(rows: List[List[str]]) -> dict:
    """Custom keyboard markup, one list of button labels per row."""
    return {
        "keyboard": [[{"text": label} for label in row] for row in rows],
        "resize_keyboard": True,
    }


def inline_keyboard(buttons: List[tuple]) -> dict:
    """Inline keyboard markup with one (text, callback_data) button per row."""
    return {
        "inline_keyboard": [[{"text": text, "callback_data": data}] for text, data in buttons],
    }
