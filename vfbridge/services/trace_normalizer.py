"""Normalize Voiceflow runtime traces into one text block plus buttons.

Voiceflow projects (and the wrappers in front of them) return traces in
several shapes: a flat ``{"text": ...}`` record, a record with a nested
``messages`` list, or a bare runtime trace whose ``payload`` carries the
message or the button list. All shape recognition lives here so callers
only ever see :class:`CanonicalResponse`.

``normalize`` never raises. Items it cannot interpret are skipped.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from vfbridge.logging_config import get_logger

logger = get_logger("trace_normalizer")

EMPTY_PLACEHOLDER = "…"
CHOOSE_OPTION_PROMPT = "Выбери вариант:"

TEXT_KINDS = frozenset({"text", "speak"})
CHOICE_KINDS = frozenset({"choice", "buttons"})

BUTTON_LIST_FIELDS = ("buttons", "choices", "options")
BUTTON_TITLE_FIELDS = ("name", "label", "text", "title")
BUTTON_PAYLOAD_PATHS = (("request", "payload"), ("payload",), ("request",))

_KNOWN_FIELDS = ("text", "message", "messages", "payload") + BUTTON_LIST_FIELDS
_INLINE_WHITESPACE = re.compile(r"[ \t]+")


class TraceShape(str, Enum):
    FLAT = "flat"
    MESSAGE_LIST = "message_list"
    PAYLOAD = "payload"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Button:
    title: str
    payload: str


@dataclass(frozen=True)
class CanonicalResponse:
    text: str
    buttons: list[Button] = field(default_factory=list)


def classify_trace(item: Any) -> TraceShape:
    """Decide which of the known trace shapes an item carries."""
    if not isinstance(item, dict):
        return TraceShape.UNRECOGNIZED
    if isinstance(item.get("messages"), list):
        return TraceShape.MESSAGE_LIST
    if isinstance(item.get("payload"), dict):
        return TraceShape.PAYLOAD
    if any(item.get(name) is not None for name in _KNOWN_FIELDS):
        return TraceShape.FLAT
    return TraceShape.UNRECOGNIZED


def normalize_text(value: str) -> str:
    return value.replace("\r\n", "\n").strip()


def dedup_key(value: str) -> str:
    return _INLINE_WHITESPACE.sub(" ", value)


def _dig(node: Any, path: Iterable[str]) -> Any:
    for name in path:
        if not isinstance(node, dict):
            return None
        node = node.get(name)
    return node


def _first_text(node: Any, *paths: tuple[str, ...]) -> Optional[str]:
    for path in paths:
        value = _dig(node, path)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _kind(node: Any) -> str:
    value = node.get("type") if isinstance(node, dict) else None
    return value.strip().lower() if isinstance(value, str) else ""


def _message_list(item: dict) -> list:
    messages = item.get("messages")
    return messages if isinstance(messages, list) else []


def _text_candidates(item: dict) -> list[str]:
    found = [
        _first_text(item, ("text",)),
        _first_text(item, ("message", "payload", "text"), ("message", "payload", "message"), ("message", "text")),
    ]
    for entry in _message_list(item):
        if _kind(entry) in TEXT_KINDS:
            found.append(_first_text(entry, ("payload", "message"), ("text",)))
    found.append(_first_text(item, ("payload", "text"), ("payload", "message")))
    return [value for value in found if value]


def _choice_carriers(item: dict) -> list[dict]:
    carriers = []
    if _kind(item) in CHOICE_KINDS:
        carriers.append(item)
    for entry in _message_list(item):
        if isinstance(entry, dict) and _kind(entry) in CHOICE_KINDS:
            carriers.append(entry)
    return carriers


def _button_list(carrier: dict) -> list:
    for source in (carrier.get("payload"), carrier):
        if not isinstance(source, dict):
            continue
        for name in BUTTON_LIST_FIELDS:
            value = source.get(name)
            if isinstance(value, list):
                return value
    return []


def _serialize_payload(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    try:
        return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


def _to_button(raw: Any) -> Optional[Button]:
    if not isinstance(raw, dict):
        return None

    title = ""
    for name in BUTTON_TITLE_FIELDS:
        value = raw.get(name)
        if value is not None:
            title = str(value).strip()
            break
    if not title:
        return None

    payload = ""
    for path in BUTTON_PAYLOAD_PATHS:
        value = _dig(raw, path)
        if value is not None:
            payload = _serialize_payload(value)
            break

    return Button(title=title, payload=payload or title)


def _extract(item: dict, lines: list[str], seen: set[str], buttons: list[Button]) -> None:
    for raw_text in _text_candidates(item):
        line = normalize_text(raw_text)
        if not line:
            continue
        key = dedup_key(line)
        if key in seen:
            continue
        seen.add(key)
        lines.append(line)

    for carrier in _choice_carriers(item):
        for raw_button in _button_list(carrier):
            button = _to_button(raw_button)
            if button is not None:
                buttons.append(button)


def normalize(items: Any) -> CanonicalResponse:
    """Collapse a Voiceflow trace list into text plus ordered buttons."""
    lines: list[str] = []
    seen: set[str] = set()
    buttons: list[Button] = []

    if not isinstance(items, (list, tuple)):
        items = []

    for index, item in enumerate(items):
        shape = classify_trace(item)
        if shape is TraceShape.UNRECOGNIZED:
            logger.debug(
                "Skipping unrecognized trace item",
                extra={"context": {"index": index, "item_type": type(item).__name__}},
            )
            continue
        try:
            _extract(item, lines, seen, buttons)
        except Exception as exc:
            logger.warning(
                "Trace item extraction failed, skipping",
                extra={"context": {"index": index, "shape": shape.value, "error": str(exc)}},
            )

    text = "\n\n".join(lines).strip()
    if not text:
        text = CHOOSE_OPTION_PROMPT if buttons else EMPTY_PLACEHOLDER

    return CanonicalResponse(text=text, buttons=buttons)
