"""Sequence one Telegram update through Voiceflow and back.

The webhook route admits the update and acknowledges Telegram right away;
``DeliveryOrchestrator.process`` then runs as a background task. Nothing
raised after acknowledgment leaves ``process``: transport failures become a
fixed message to the user, anything else becomes a generic apology.
"""

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Awaitable, Callable, Optional

from vfbridge.config import settings
from vfbridge.logging_config import LoggerAdapter, get_logger
from vfbridge.schemas.telegram import TelegramUpdate
from vfbridge.services.alert_service import alert_error, alert_warning
from vfbridge.services.callback_store import CallbackIndirectionStore
from vfbridge.services.errors import TransportError
from vfbridge.services.idempotency import IdempotencyGuard, callback_key, message_key, update_key
from vfbridge.services.telegram_service import TelegramService, build_inline_keyboard
from vfbridge.services.trace_normalizer import CanonicalResponse, normalize
from vfbridge.services.voiceflow_service import VoiceflowService, action_for_callback, action_for_text

logger = get_logger("delivery")

MSG_UPSTREAM_UNAVAILABLE = "Сервис временно недоступен. Попробуй ещё раз через минуту."
MSG_APOLOGY = "Упс, ошибка. Попробуй ещё раз через минуту."

AlertFunc = Callable[[str, Optional[dict]], Awaitable[bool]]


@dataclass(frozen=True)
class InboundEvent:
    kind: str  # "message" or "callback"
    chat_id: int
    user_id: str
    data: str
    callback_id: Optional[str] = None
    title: Optional[str] = None  # clicked button title, callbacks only


def admission_keys(update: TelegramUpdate) -> list[str]:
    """Namespaced keys under which an update must be admitted."""
    keys = []
    if update.update_id is not None:
        keys.append(update_key(update.update_id))
    message = update.message
    if message and message.message_id is not None:
        keys.append(message_key(message.chat.id, message.message_id))
    if update.callback_query:
        keys.append(callback_key(update.callback_query.id))
    return keys


def to_event(update: TelegramUpdate) -> Optional[InboundEvent]:
    """Reduce an update to the event the bridge acts on, or None to drop it."""
    callback = update.callback_query
    if callback:
        if not callback.message or not callback.data:
            return None
        chat_id = callback.message.chat.id
        user_id = str(callback.from_user.id) if callback.from_user else str(chat_id)
        return InboundEvent(
            kind="callback",
            chat_id=chat_id,
            user_id=user_id,
            data=callback.data,
            callback_id=callback.id,
            title=callback.button_title(),
        )

    message = update.message
    if message:
        text = (message.text or "").strip()
        if not text:
            return None
        chat_id = message.chat.id
        user_id = str(message.from_user.id) if message.from_user else str(chat_id)
        return InboundEvent(kind="message", chat_id=chat_id, user_id=user_id, data=text)

    return None


class DeliveryOrchestrator:
    def __init__(
        self,
        telegram: TelegramService,
        voiceflow: VoiceflowService,
        guard: Optional[IdempotencyGuard] = None,
        store: Optional[CallbackIndirectionStore] = None,
        upstream_timeout: float = 20.0,
        alert: AlertFunc = alert_error,
        upstream_alert: AlertFunc = alert_warning,
    ):
        self.telegram = telegram
        self.voiceflow = voiceflow
        self.guard = guard or IdempotencyGuard()
        self.store = store or CallbackIndirectionStore()
        self.upstream_timeout = upstream_timeout
        self._alert = alert
        self._upstream_alert = upstream_alert
        self._background: set[asyncio.Task] = set()

    def admit(self, update: TelegramUpdate) -> bool:
        for key in admission_keys(update):
            if not self.guard.admit(key):
                logger.info("Duplicate update dropped", extra={"context": {"key": key}})
                return False
        return True

    def encode_buttons(self, response: CanonicalResponse) -> list[tuple[str, str]]:
        return [(button.title, self.store.encode(button.payload)) for button in response.buttons]

    async def process(self, update: TelegramUpdate) -> None:
        """Handle an admitted update. Never raises."""
        event = to_event(update)
        if event is None:
            if update.callback_query:
                self._acknowledge_click(update.callback_query.id)
            logger.debug(
                "Update has nothing actionable",
                extra={"context": {"update_id": update.update_id}},
            )
            return

        log = LoggerAdapter(
            logger,
            {"update_id": update.update_id, "chat_id": event.chat_id, "user_id": event.user_id, "kind": event.kind},
        )

        try:
            await self._deliver(event, log)
        except Exception as e:
            log.error("Delivery failed", context={"error": str(e)}, exc_info=True)
            await self._alert("Webhook error", {"user_id": event.user_id, "error": str(e)})
            await self._send_safely(event.chat_id, MSG_APOLOGY, log)

    async def _deliver(self, event: InboundEvent, log: LoggerAdapter) -> None:
        if event.kind == "callback":
            self._acknowledge_click(event.callback_id)
            action = action_for_callback(self.store.resolve(event.data), event.title)
        else:
            action = action_for_text(event.data)

        await self.telegram.send_chat_action(event.chat_id)

        try:
            traces = await asyncio.wait_for(
                self.voiceflow.interact(event.user_id, action),
                timeout=self.upstream_timeout,
            )
        except (TransportError, asyncio.TimeoutError) as e:
            context = {"user_id": event.user_id, "error": str(e) or e.__class__.__name__}
            if isinstance(e, TransportError):
                context["status_code"] = e.status_code
                context["detail"] = e.detail
            log.warning("Upstream call failed", context=context)
            await self._upstream_alert("Voiceflow unavailable", context)
            await self._send_safely(event.chat_id, MSG_UPSTREAM_UNAVAILABLE, log)
            return

        response = normalize(traces)
        keyboard = build_inline_keyboard(self.encode_buttons(response))
        await self.telegram.send_message(event.chat_id, response.text, reply_markup=keyboard)
        log.info(
            "Response delivered",
            context={"trace_count": len(traces), "button_count": len(response.buttons)},
        )

    async def _send_safely(self, chat_id: int, text: str, log: LoggerAdapter) -> None:
        try:
            await self.telegram.send_message(chat_id, text)
        except Exception as e:
            log.error("Failed to send fallback message", context={"error": str(e)})

    def _acknowledge_click(self, callback_id: str) -> None:
        task = asyncio.create_task(self.telegram.answer_callback_query(callback_id))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("answerCallbackQuery failed", extra={"context": {"error": str(exc)}})

    async def drain(self) -> None:
        """Wait for pending fire-and-forget calls."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


@lru_cache
def get_orchestrator() -> DeliveryOrchestrator:
    return DeliveryOrchestrator(
        telegram=TelegramService(
            settings.telegram_bot_token,
            api_url=settings.telegram_api_url,
            timeout=settings.telegram_timeout_seconds,
        ),
        voiceflow=VoiceflowService(
            settings.voiceflow_api_key,
            version_id=settings.voiceflow_version_id,
            runtime_url=settings.voiceflow_runtime_url,
            timeout=settings.upstream_timeout_seconds,
        ),
        guard=IdempotencyGuard(
            ttl_seconds=settings.dedup_ttl_seconds,
            high_water_mark=settings.state_high_water_mark,
        ),
        store=CallbackIndirectionStore(
            ttl_seconds=settings.callback_token_ttl_seconds,
            safe_bytes=settings.callback_data_safe_bytes,
            high_water_mark=settings.state_high_water_mark,
        ),
        upstream_timeout=settings.upstream_timeout_seconds,
    )
