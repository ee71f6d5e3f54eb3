from unittest.mock import AsyncMock, Mock

import pytest

from vfbridge.services.callback_store import CallbackIndirectionStore
from vfbridge.services.delivery_service import DeliveryOrchestrator
from vfbridge.services.idempotency import IdempotencyGuard


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test-token")
    monkeypatch.setenv("VOICEFLOW_API_KEY", "VF.DM.test")


@pytest.fixture
def telegram():
    """Telegram client double; every Bot API call succeeds."""
    service = Mock()
    service.send_message = AsyncMock(return_value={"ok": True})
    service.send_chat_action = AsyncMock(return_value=True)
    service.answer_callback_query = AsyncMock(return_value={"ok": True})
    return service


@pytest.fixture
def voiceflow():
    service = Mock()
    service.interact = AsyncMock(return_value=[{"type": "text", "payload": {"message": "Привет!"}}])
    return service


@pytest.fixture
def orchestrator(telegram, voiceflow, clock):
    return DeliveryOrchestrator(
        telegram=telegram,
        voiceflow=voiceflow,
        guard=IdempotencyGuard(clock=clock),
        store=CallbackIndirectionStore(clock=clock),
        upstream_timeout=1.0,
        alert=AsyncMock(return_value=True),
        upstream_alert=AsyncMock(return_value=True),
    )
