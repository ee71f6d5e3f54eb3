"""Short-token indirection for Telegram ``callback_data``.

Telegram limits ``callback_data`` to 64 bytes. Voiceflow button requests
are often longer, so oversized payloads are parked here and the button
carries a short token instead. ``resolve`` is safe to call on any inbound
callback data: anything that is not a live token comes back unchanged.
"""

import secrets
import string
import threading
import time
from dataclasses import dataclass
from typing import Callable

from vfbridge.logging_config import get_logger

logger = get_logger("callback_store")

CALLBACK_DATA_MAX_BYTES = 64
DEFAULT_SAFE_BYTES = 60
DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_HIGH_WATER_MARK = 5000
TOKEN_PREFIX = "~"

_BASE36 = string.digits + string.ascii_lowercase


def utf8_len(value: str) -> int:
    return len(value.encode("utf-8"))


def _base36(number: int) -> str:
    if number <= 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


@dataclass(frozen=True)
class IndirectionEntry:
    payload: str
    expires_at: float


class CallbackIndirectionStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        safe_bytes: int = DEFAULT_SAFE_BYTES,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        clock: Callable[[], float] = time.monotonic,
    ):
        if safe_bytes >= CALLBACK_DATA_MAX_BYTES:
            raise ValueError(f"safe_bytes must stay below {CALLBACK_DATA_MAX_BYTES}, got {safe_bytes}")
        self.ttl_seconds = ttl_seconds
        self.safe_bytes = safe_bytes
        self.high_water_mark = high_water_mark
        self._clock = clock
        self._entries: dict[str, IndirectionEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _new_token(self) -> str:
        stamp = _base36(int(time.time() * 1000))
        return f"{TOKEN_PREFIX}{stamp}.{secrets.token_urlsafe(6)}"

    def _is_live(self, token: str, now: float) -> bool:
        entry = self._entries.get(token)
        return entry is not None and entry.expires_at > now

    def _sweep(self, now: float) -> None:
        expired = [token for token, entry in self._entries.items() if entry.expires_at <= now]
        for token in expired:
            del self._entries[token]
        logger.info(
            "Callback token sweep",
            extra={"context": {"removed": len(expired), "remaining": len(self._entries)}},
        )

    def put(self, payload: str) -> str:
        """Park ``payload`` and return a short token that stands in for it."""
        with self._lock:
            now = self._clock()
            if len(self._entries) > self.high_water_mark:
                self._sweep(now)

            token = self._new_token()
            while self._is_live(token, now):
                token = self._new_token()

            self._entries[token] = IndirectionEntry(payload=payload, expires_at=now + self.ttl_seconds)

        logger.debug(
            "Callback payload tokenized",
            extra={"context": {"token": token, "payload_bytes": utf8_len(payload)}},
        )
        return token

    def resolve(self, data: str) -> str:
        """Return the parked payload for a live token, otherwise ``data`` itself."""
        with self._lock:
            now = self._clock()
            if len(self._entries) > self.high_water_mark:
                self._sweep(now)

            entry = self._entries.get(data)
            if entry is None or entry.expires_at <= now:
                return data
            return entry.payload

    def encode(self, payload: str) -> str:
        """Return callback data that fits Telegram's limit for ``payload``."""
        if utf8_len(payload) <= self.safe_bytes:
            return payload
        return self.put(payload)
