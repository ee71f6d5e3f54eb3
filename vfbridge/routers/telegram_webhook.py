import json
import secrets
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from vfbridge.config import settings
from vfbridge.logging_config import get_logger
from vfbridge.schemas.telegram import TelegramWebhookResponse, parse_update
from vfbridge.services.delivery_service import DeliveryOrchestrator, get_orchestrator
from vfbridge.services.errors import EnvelopeRejected

logger = get_logger("telegram_webhook")

router = APIRouter()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


async def parse_telegram_update(request: Request) -> Optional[Any]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns the decoded JSON value or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


def verify_secret(request: Request) -> None:
    expected = settings.telegram_webhook_secret
    if not expected:
        return
    received = request.headers.get(SECRET_HEADER) or ""
    if not secrets.compare_digest(received, expected):
        logger.warning("Telegram webhook: invalid secret token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/api/telegram/webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator),
):
    """
    Admit a Telegram update and acknowledge it immediately.
    Processing (Voiceflow round trip and reply) runs after the response is sent.
    """
    verify_secret(request)

    body = await parse_telegram_update(request)
    try:
        update = parse_update(body)
    except EnvelopeRejected as e:
        logger.warning("Telegram update rejected", extra={"context": {"reason": e.message}})
        return TelegramWebhookResponse()

    if not orchestrator.admit(update):
        return TelegramWebhookResponse()

    background_tasks.add_task(orchestrator.process, update)
    return TelegramWebhookResponse()


# Path used by earlier webhook registrations
@router.post("/telegram-webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook_legacy(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator),
):
    return await handle_telegram_webhook(request, background_tasks, orchestrator)
