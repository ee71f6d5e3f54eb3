import secrets
from typing import Any, Optional

from fastapi import APIRouter, Body, HTTPException, Request, status

from vfbridge.config import settings
from vfbridge.logging_config import get_logger

logger = get_logger("voiceflow_webhook")

router = APIRouter()

SECRET_HEADER = "X-VF-Secret"
MSG_CONNECTED = "✅ Связь с сервером установлена. Voiceflow → backend → Voiceflow работает."


@router.post("/api/voiceflow/webhook")
async def handle_voiceflow_webhook(request: Request, body: Optional[dict[str, Any]] = Body(default=None)):
    """Connectivity check called from a Voiceflow API step."""
    expected = settings.voiceflow_webhook_secret
    received = request.headers.get(SECRET_HEADER) or ""
    if not expected or not secrets.compare_digest(received, expected):
        logger.warning("Voiceflow webhook: invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    logger.info("Voiceflow webhook received", extra={"context": {"body": body or {}}})
    return {"text": MSG_CONNECTED}
