from typing import Optional


class TransportError(Exception):
    """Outbound or upstream HTTP call did not succeed."""

    service = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class TelegramAPIError(TransportError):
    service = "telegram"


class VoiceflowAPIError(TransportError):
    service = "voiceflow"


class EnvelopeRejected(Exception):
    """Inbound update failed shape validation and must be dropped."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
