"""Anthropic client access and request building for draw turns."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

import anthropic

from ..app_config import get_app_config
from .logger import get_logger

logger = get_logger(__name__)

MODEL_MAP = {
    "haiku": "claude-3-5-haiku-20241022",
    "sonnet": "claude-sonnet-4-20250514",
    "opus": "claude-opus-4-20250514",
}
DEFAULT_MODEL = MODEL_MAP["sonnet"]

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

_DATA_URL_RE = re.compile(r"^data:(image/\w+);base64,")
_DATA_URL_PREFIX_RE = re.compile(r"^data:image/\w+;base64,")

_default_client: Optional[anthropic.AsyncAnthropic] = None
_default_client_key: Optional[str] = None


def get_client(user_api_key: Optional[str] = None) -> anthropic.AsyncAnthropic:
    """Return an async Anthropic client.

    A key supplied by the user wins; otherwise a shared client built from the
    server key is reused until the configured key changes.
    """
    global _default_client, _default_client_key
    if user_api_key:
        return anthropic.AsyncAnthropic(api_key=user_api_key)
    api_key = get_app_config().api_key
    if _default_client is None or api_key != _default_client_key:
        _default_client = anthropic.AsyncAnthropic(api_key=api_key)
        _default_client_key = api_key
    return _default_client


def reset_client() -> None:
    """Drop the shared client; the next ``get_client`` builds a new one."""
    global _default_client, _default_client_key
    _default_client = None
    _default_client_key = None


def resolve_model(name: Optional[str]) -> str:
    """Map a short alias (haiku, sonnet, opus) to a model id."""
    if name is None:
        name = get_app_config().default_model
    return MODEL_MAP.get(name, DEFAULT_MODEL)


def build_message_content(text: str, image: Optional[str] = None) -> str | list[dict[str, Any]]:
    """User message content, with the canvas snapshot first when one is attached.

    ``image`` is a data URL; unknown or missing media types fall back to JPEG.
    """
    if not image:
        return text

    media_type = "image/jpeg"
    match = _DATA_URL_RE.match(image)
    if match and match.group(1) in SUPPORTED_IMAGE_TYPES:
        media_type = match.group(1)
    data = _DATA_URL_PREFIX_RE.sub("", image)

    return [
        {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}},
        {"type": "text", "text": f"[SYNC TURN - Visual reference above]\n\n{text}"},
    ]


def build_message_params(
    *,
    system_prompt: str,
    content: str | list[dict[str, Any]],
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> dict[str, Any]:
    """Keyword arguments for ``messages.create`` / ``messages.stream``."""
    config = get_app_config()
    return {
        "model": resolve_model(model),
        "max_tokens": max_tokens or config.max_tokens,
        "system": [{"type": "text", "text": system_prompt, "cache_control": {"type": "ephemeral"}}],
        "messages": [{"role": "user", "content": content}],
        "temperature": config.temperature if temperature is None else temperature,
    }


def usage_to_dict(usage: Any) -> Optional[dict[str, Any]]:
    """Plain-dict token usage from an SDK usage object."""
    if usage is None:
        return None
    if hasattr(usage, "model_dump"):
        return usage.model_dump(exclude_none=True)
    return {
        "input_tokens": getattr(usage, "input_tokens", 0),
        "output_tokens": getattr(usage, "output_tokens", 0),
    }


def response_text(message: Any) -> str:
    """Text of the first text block of a non-streamed reply."""
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return block.text
    return ""


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Parse the outermost ``{...}`` of a reply, or None when there is none.

    Raises json.JSONDecodeError when braces are present but the text between
    them is not valid JSON.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end < start:
        return None
    parsed = json.loads(text[start:end + 1])
    if not isinstance(parsed, dict):
        return None
    return parsed
