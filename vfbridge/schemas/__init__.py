from vfbridge.schemas.telegram import TelegramUpdate, TelegramWebhookResponse

__all__ = ["TelegramUpdate", "TelegramWebhookResponse"]
