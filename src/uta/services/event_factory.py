"""
Event normalization.

Pure helpers that turn arbitrary tool results into display text and voice
hints, plus factories for every canonical BridgeEvent shape. All adapters
funnel their output through here so consumers never special-case a provider.
"""

import json
from typing import Any, Dict, Optional

from uta.models.bridge_event import (
    BridgeEvent,
    EventMessage,
    EventPayload,
    EventType,
    MessageRole,
)


VOICE_HINT_KEYS = ("voice_summary", "voiceSummary", "voice_hint", "voiceHint")
VOICE_HINT_MAX_LENGTH = 240

SERIALIZATION_ERROR = {"status": "error", "message": "Unable to serialize tool result"}


def extract_primary_content(result: Any) -> str:
    """Reduce a tool result to a single display string.

    Handles plain strings, lists of typed content blocks, dicts wrapping a
    ``content`` field, and dicts carrying ``message``/``summary``/``text``.
    Anything else is rendered as indented JSON.
    """
    if result is None:
        return ""

    if isinstance(result, str):
        return result.strip()

    if isinstance(result, list):
        parts = []
        for block in result:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text.strip():
                    parts.append(text.strip())
        return "\n".join(parts)

    if isinstance(result, dict):
        content = result.get("content")
        if isinstance(content, (list, str)):
            return extract_primary_content(content)

        for key in ("message", "summary", "text"):
            value = result.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

    try:
        return json.dumps(result, indent=2, default=str)
    except (TypeError, ValueError):
        return str(result)


def extract_voice_hint(result: Any) -> Optional[str]:
    """Pull a short spoken summary from a tool result, if it carries one."""
    if not isinstance(result, dict):
        return None

    candidates = [result]
    data = result.get("data")
    if isinstance(data, dict):
        candidates.append(data)

    for candidate in candidates:
        for key in VOICE_HINT_KEYS:
            value = candidate.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:VOICE_HINT_MAX_LENGTH]

    return None


def serialize_tool_result(result: Any) -> str:
    """Serialize a tool result for feeding back to a provider."""
    if isinstance(result, str):
        return result

    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return json.dumps(SERIALIZATION_ERROR)


def create_stream_event(delta: str) -> BridgeEvent:
    """Partial assistant text."""
    return BridgeEvent(type=EventType.STATUS, payload=EventPayload(delta=delta))


def create_tool_status_event(tool: str, action: str) -> BridgeEvent:
    """Notice that a tool call is about to run."""
    return BridgeEvent(
        type=EventType.STATUS,
        payload=EventPayload(tool=tool, action=action, data={"state": "invoked"})
    )


def create_tool_result_event(tool: str, action: str, data: Any) -> BridgeEvent:
    """Result of a completed tool call, including wrapped failures."""
    return BridgeEvent(
        type=EventType.TOOL_RESULT,
        payload=EventPayload(tool=tool, action=action, data=data)
    )


def create_message_event(
    content: str,
    voice_hint: Optional[str] = None,
    intent: Optional[Dict[str, Any]] = None
) -> BridgeEvent:
    """Terminal assistant message, optionally tagged with the last intent."""
    payload = EventPayload(**intent) if intent else None
    return BridgeEvent(
        type=EventType.MESSAGE,
        message=EventMessage(role=MessageRole.ASSISTANT, content=content, voice_hint=voice_hint),
        payload=payload
    )


def create_user_event(content: str, voice_hint: Optional[str] = None) -> BridgeEvent:
    """Echo of the inbound user message."""
    return BridgeEvent(
        type=EventType.MESSAGE,
        message=EventMessage(role=MessageRole.USER, content=content, voice_hint=voice_hint)
    )


def create_error_event(message: str) -> BridgeEvent:
    """Turn failure notice."""
    return BridgeEvent(
        type=EventType.STATUS,
        payload=EventPayload(level="error", message=message)
    )
