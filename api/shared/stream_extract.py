"""
Incremental extraction of drawing items from a partially streamed LLM reply.

The model answers with a single JSON object such as::

    {"observation": "...", "intention": "...", "shapes": [{...}, {...}], "blocks": [...]}

While the reply is still streaming, the object is incomplete. The helpers
here scan the text received so far and pull out every array item and
string field that is already complete, so the client can draw shapes as
soon as each one closes instead of waiting for the whole reply.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, TypedDict

from .logger import get_logger

logger = get_logger(__name__)

# Singular event names for the array keys the draw prompts ask for
ITEM_EVENT_TYPES = {
    "shapes": "shape",
    "blocks": "block",
    "operations": "operation",
}


class StreamEvent(TypedDict):
    type: str
    data: Any


def find_json_start(text: str) -> str | None:
    """Return ``text`` from its first ``{`` onwards, or None if there is none."""
    start = text.find("{")
    if start < 0:
        return None
    return text[start:]


def _array_start(partial: str, key: str) -> int | None:
    match = re.search(r'"' + re.escape(key) + r'"\s*:\s*\[', partial)
    if match is None:
        return None
    return match.end()


def extract_array_items(partial: str, key: str) -> list[str]:
    """Raw JSON text of each complete object in the ``key`` array.

    Only objects whose closing brace has arrived are returned. Braces and
    brackets inside strings are ignored, and scanning stops at the
    closing bracket of the array itself.
    """
    pos = _array_start(partial, key)
    if pos is None:
        return []

    items = []
    depth = 0
    item_start = -1
    in_string = False
    escaped = False

    for i in range(pos, len(partial)):
        char = partial[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in "{[":
            if depth == 0:
                if char == "[":
                    # bare nested array at the top level, not an item we stream
                    depth += 1
                    item_start = -1
                    continue
                item_start = i
            depth += 1
        elif char in "}]":
            if depth == 0:
                # closing bracket of the array itself
                break
            depth -= 1
            if depth == 0 and char == "}" and item_start >= 0:
                items.append(partial[item_start:i + 1])
                item_start = -1

    return items


def extract_string_field(partial: str, key: str) -> str | None:
    """Decoded value of ``"key": "..."`` once its closing quote has arrived."""
    match = re.search(r'"' + re.escape(key) + r'"\s*:\s*"((?:[^"\\]|\\.)*)"', partial)
    if match is None:
        return None
    try:
        return json.loads(f'"{match.group(1)}"')
    except json.JSONDecodeError:
        return None


class StreamExtractor:
    """Accumulates streamed text and reports newly completed items.

    Each array item and string field is emitted at most once, in order.
    Complete items that are not valid JSON are dropped.
    """

    def __init__(
        self,
        array_keys: Iterable[str] = ("shapes", "blocks"),
        string_fields: Iterable[str] = ("observation", "intention"),
    ):
        self.array_keys = list(array_keys)
        self.string_fields = list(string_fields)
        self._text = ""
        self._sent_items: dict[str, int] = {key: 0 for key in self.array_keys}
        self._sent_fields: set[str] = set()

    @property
    def text(self) -> str:
        return self._text

    def sent_count(self, key: str) -> int:
        return self._sent_items.get(key, 0)

    def feed(self, delta: str) -> list[StreamEvent]:
        """Append a text delta and return the events it completes."""
        self._text += delta
        partial = find_json_start(self._text)
        if partial is None:
            return []

        events: list[StreamEvent] = []
        for key in self.array_keys:
            events.extend(self._new_items(key, extract_array_items(partial, key)))

        for field_name in self.string_fields:
            if field_name in self._sent_fields:
                continue
            value = extract_string_field(partial, field_name)
            if value is not None:
                events.append({"type": field_name, "data": value})
                self._sent_fields.add(field_name)

        return events

    def _new_items(self, key: str, raw_items: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        event_type = ITEM_EVENT_TYPES.get(key, key)
        for raw in raw_items[self._sent_items[key]:]:
            self._sent_items[key] += 1
            try:
                item = json.loads(raw)
            except json.JSONDecodeError:
                # a balanced item never changes once closed, so drop it for good
                logger.warning("Dropping unparseable %s item: %.80s", event_type, raw)
                continue
            events.append({"type": event_type, "data": item})
        return events

    def finish(self) -> list[StreamEvent]:
        """Parse the complete reply and return anything not yet emitted."""
        start = self._text.find("{")
        end = self._text.rfind("}")
        if start < 0 or end < start:
            return []
        try:
            parsed = json.loads(self._text[start:end + 1])
        except json.JSONDecodeError as e:
            logger.warning("Final reply is not valid JSON: %s", e)
            return []
        if not isinstance(parsed, dict):
            return []

        events: list[StreamEvent] = []
        for field_name in self.string_fields:
            value = parsed.get(field_name)
            if field_name not in self._sent_fields and isinstance(value, str):
                events.append({"type": field_name, "data": value})
                self._sent_fields.add(field_name)

        for key in self.array_keys:
            values = parsed.get(key)
            if not isinstance(values, list):
                continue
            event_type = ITEM_EVENT_TYPES.get(key, key)
            # sent counts cover object entries only
            objects = [v for v in values if isinstance(v, dict)]
            for item in objects[self._sent_items[key]:]:
                events.append({"type": event_type, "data": item})
                self._sent_items[key] += 1

        return events
