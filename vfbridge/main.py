import os

import uvicorn
from fastapi import Depends, FastAPI

from vfbridge.config import settings
from vfbridge.logging_config import get_logger, setup_logging
from vfbridge.routers import telegram_webhook, voiceflow_webhook
from vfbridge.services.delivery_service import DeliveryOrchestrator, get_orchestrator

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Voiceflow Telegram Bridge",
    description="Relays Telegram bot updates to a Voiceflow agent and back",
    version="0.1.0",
)

app.include_router(telegram_webhook.router)
app.include_router(voiceflow_webhook.router)


@app.on_event("startup")
async def check_configuration() -> None:
    missing = [
        name
        for name, value in (
            ("TELEGRAM_BOT_TOKEN", settings.telegram_bot_token),
            ("VOICEFLOW_API_KEY", settings.voiceflow_api_key),
        )
        if not value
    ]
    if missing:
        logger.warning("Bridge is missing configuration", extra={"context": {"missing": missing}})


@app.on_event("shutdown")
async def drain_background_calls() -> None:
    await get_orchestrator().drain()


@app.get("/health")
async def health(orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)):
    return {
        "status": "ok",
        "admitted_keys": len(orchestrator.guard),
        "callback_tokens": len(orchestrator.store),
    }


def main() -> None:
    """Run the bridge under uvicorn; Render/Railway style hosts pass PORT."""
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3000")),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
