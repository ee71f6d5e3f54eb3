from vfbridge.services.callback_store import CallbackIndirectionStore
from vfbridge.services.idempotency import IdempotencyGuard
from vfbridge.services.trace_normalizer import Button, CanonicalResponse, normalize
