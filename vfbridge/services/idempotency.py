import threading
import time
from typing import Callable

from vfbridge.logging_config import get_logger

logger = get_logger("idempotency")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_HIGH_WATER_MARK = 5000


def update_key(update_id: int) -> str:
    return f"u:{update_id}"


def message_key(chat_id: int, message_id: int) -> str:
    return f"m:{chat_id}:{message_id}"


def callback_key(callback_id: str) -> str:
    return f"c:{callback_id}"


class IdempotencyGuard:
    """In-memory admission control for retried webhook deliveries.

    A key is admitted once per window. The window is fixed from the first
    admission and does not slide on repeats. Entries are only evicted by a
    full sweep once the map grows past ``high_water_mark``.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.high_water_mark = high_water_mark
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def _sweep(self, now: float) -> None:
        expired = [key for key, first_seen in self._seen.items() if now - first_seen >= self.ttl_seconds]
        for key in expired:
            del self._seen[key]
        logger.info(
            "Admission sweep",
            extra={"context": {"removed": len(expired), "remaining": len(self._seen)}},
        )

    def admit(self, key: str) -> bool:
        """Return True the first time ``key`` is seen inside the window."""
        with self._lock:
            now = self._clock()
            if len(self._seen) > self.high_water_mark:
                self._sweep(now)

            first_seen = self._seen.get(key)
            if first_seen is not None and now - first_seen < self.ttl_seconds:
                return False

            self._seen[key] = now
            return True
