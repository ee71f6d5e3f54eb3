import json
import logging

from vfbridge.logging_config import SERVICE_NAME, JSONFormatter, LoggerAdapter, get_logger, redact


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLogging:
    def test_logger_namespace(self):
        assert get_logger("delivery").name == "vfbridge.delivery"

    def test_adapter_merges_context(self):
        logger = logging.getLogger("vfbridge.test_adapter")
        handler = _Capture()
        logger.addHandler(handler)
        try:
            adapter = LoggerAdapter(logger, {"chat_id": 555})
            adapter.warning("Upstream call failed", context={"status_code": 502})
        finally:
            logger.removeHandler(handler)

        record = handler.records[0]
        assert record.context == {"chat_id": 555, "status_code": 502}

        payload = json.loads(JSONFormatter().format(record))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "vfbridge.test_adapter"
        assert payload["context"] == {"chat_id": 555, "status_code": 502}

    def test_adapter_drops_unset_bound_fields(self):
        adapter = LoggerAdapter(get_logger("delivery"), {"update_id": None, "chat_id": 555})
        _, kwargs = adapter.process("Response delivered", {})
        assert kwargs["extra"] == {"context": {"chat_id": 555}}


class TestRedaction:
    def test_bot_token_is_masked(self):
        message = "Client error for url https://api.telegram.org/bot123456:AAH-x_9zQ/sendMessage"
        assert redact(message) == "Client error for url https://api.telegram.org/bot<redacted>/sendMessage"

    def test_formatter_masks_message_and_context(self):
        record = logging.LogRecord(
            "vfbridge.telegram_service", logging.ERROR, __file__, 1,
            "Telegram request failed: %s", ("https://api.telegram.org/bot42:secret/getMe",), None,
        )
        record.context = {"url": "https://api.telegram.org/bot42:secret/getMe"}

        line = JSONFormatter().format(record)
        payload = json.loads(line)

        assert "secret" not in line
        assert payload["service"] == SERVICE_NAME
        assert payload["message"] == "Telegram request failed: https://api.telegram.org/bot<redacted>/getMe"
        assert payload["context"]["url"] == "https://api.telegram.org/bot<redacted>/getMe"
