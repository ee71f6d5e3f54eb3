import json
from typing import Any, Optional

import httpx

from vfbridge.logging_config import get_logger
from vfbridge.services.errors import VoiceflowAPIError

logger = get_logger("voiceflow_service")

START_COMMAND = "/start"


def launch_action() -> dict:
    return {"type": "launch"}


def text_action(text: str) -> dict:
    return {"type": "text", "payload": text}


def action_for_text(text: str) -> dict:
    """Map a chat message to a runtime action; /start relaunches the flow."""
    if text.strip().split("@", 1)[0] == START_COMMAND:
        return launch_action()
    return text_action(text)


def action_for_callback(data: str, title: Optional[str] = None) -> dict:
    """Map resolved button data to a runtime action.

    Button payloads that are serialized runtime requests (a JSON object
    with a string ``type``) are replayed as-is. A choice payload without a
    ``type`` (``{"label": ..., "actions": [...]}``) is answered with its
    label, or with the clicked button's title, as the user's text. Anything
    else is sent as text unchanged.
    """
    try:
        decoded = json.loads(data)
    except ValueError:
        decoded = None
    if not isinstance(decoded, dict):
        return text_action(data)
    if isinstance(decoded.get("type"), str):
        return decoded
    label = decoded.get("label")
    if isinstance(label, str) and label.strip():
        return text_action(label.strip())
    if title and title.strip():
        return text_action(title.strip())
    return text_action(data)


class VoiceflowService:
    """Client for the Voiceflow general runtime ``interact`` endpoint."""

    def __init__(
        self,
        api_key: str,
        version_id: str = "production",
        runtime_url: str = "https://general-runtime.voiceflow.com",
        timeout: float = 20.0,
    ):
        self.api_key = api_key
        self.version_id = version_id
        self.runtime_url = runtime_url.rstrip("/")
        self.timeout = timeout

    def interact_url(self, user_id: str) -> str:
        return f"{self.runtime_url}/state/{self.version_id}/user/{user_id}/interact"

    async def interact(self, user_id: str, action: dict) -> list[Any]:
        """Send one action for ``user_id`` and return the raw trace list."""
        url = self.interact_url(user_id)
        logger.debug(
            "Voiceflow request",
            extra={"context": {"user_id": user_id, "action_type": action.get("type")}},
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    headers={
                        "Authorization": self.api_key,
                        "Content-Type": "application/json",
                    },
                    json={"action": action},
                )
        except httpx.HTTPError as e:
            raise VoiceflowAPIError(f"Voiceflow request failed: {e.__class__.__name__}") from e

        if response.status_code >= 300:
            raise VoiceflowAPIError(
                f"Voiceflow runtime error: {response.status_code}",
                status_code=response.status_code,
                detail=response.text[:500],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise VoiceflowAPIError(
                "Voiceflow runtime returned non-JSON body", status_code=response.status_code
            ) from e

        traces = _unwrap_traces(data)
        logger.debug(
            "Voiceflow response",
            extra={"context": {"user_id": user_id, "trace_count": len(traces)}},
        )
        return traces


def _unwrap_traces(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        trace: Optional[Any] = data.get("trace")
        if isinstance(trace, list):
            return trace
    logger.warning(
        "Unexpected Voiceflow response shape",
        extra={"context": {"type": type(data).__name__}},
    )
    return []
