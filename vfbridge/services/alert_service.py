"""Admin alerts delivered through the bot itself."""

from typing import Optional

import httpx

from vfbridge.config import settings
from vfbridge.logging_config import get_logger

logger = get_logger("alert_service")

MAX_ALERT_LENGTH = 3500


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to the admin chat.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not settings.telegram_bot_token or not settings.admin_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

    text = f"{emoji.get(level, '📢')} {level}\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n{context_str}"

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                f"{settings.telegram_api_url.rstrip('/')}/bot{settings.telegram_bot_token}/sendMessage",
                json={"chat_id": settings.admin_chat_id, "text": text[:MAX_ALERT_LENGTH]},
            )
            return response.status_code == 200
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_error(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return await send_alert("ERROR", message, context)


async def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for WARNING level alert."""
    return await send_alert("WARNING", message, context)
