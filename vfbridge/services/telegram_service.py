from typing import Optional, Sequence

import httpx

from vfbridge.logging_config import get_logger
from vfbridge.services.errors import TelegramAPIError

logger = get_logger("telegram_service")

EMPTY_TEXT_FALLBACK = "…"


class TelegramService:
    """Async client for the handful of Bot API methods the bridge needs."""

    BASE_URL = "{api_url}/bot{token}"

    def __init__(self, bot_token: str, api_url: str = "https://api.telegram.org", timeout: float = 10.0):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(api_url=api_url.rstrip("/"), token=bot_token)
        self.timeout = timeout

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Call a Bot API method. Raises TelegramAPIError unless Telegram answers ok."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=data or {})
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"Telegram {method} request failed: {e.__class__.__name__}") from e

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200 or not body.get("ok"):
            raise TelegramAPIError(
                f"Telegram {method} failed with status {response.status_code}",
                status_code=response.status_code,
                detail=body.get("description") or response.text[:500],
            )
        return body

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = None,
        disable_web_page_preview: bool = True,
    ) -> dict:
        """Send message to Telegram chat."""
        data = {
            "chat_id": chat_id,
            "text": (text or "").strip() or EMPTY_TEXT_FALLBACK,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup

        return await self._make_request("sendMessage", data)

    async def send_chat_action(self, chat_id: int | str, action: str = "typing") -> bool:
        """Best-effort chat action; failures are logged, never raised."""
        try:
            await self._make_request("sendChatAction", {"chat_id": chat_id, "action": action})
            return True
        except TelegramAPIError as e:
            logger.warning(
                "sendChatAction failed",
                extra={"context": {"chat_id": chat_id, "error": e.message, "status_code": e.status_code}},
            )
            return False

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> dict:
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        return await self._make_request("answerCallbackQuery", data)


def build_inline_keyboard(buttons: Sequence[tuple[str, str]]) -> Optional[dict]:
    """Build an inline keyboard with one (title, callback_data) button per row."""
    if not buttons:
        return None
    return {"inline_keyboard": [[{"text": title, "callback_data": data}] for title, data in buttons]}
