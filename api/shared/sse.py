"""Server-Sent-Events framing for streamed draw turns.

Each record is a single ``data: <json>`` line followed by a blank line.
``SSEDecoder`` is the reading side, used by tests and by Python clients
that consume the stream chunk by chunk.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

from .logger import get_logger

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}
SSE_MEDIA_TYPE = "text/event-stream"

_DATA_PREFIX = "data: "


def format_sse(payload: dict[str, Any]) -> str:
    """Encode one event payload as an SSE record."""
    return f"{_DATA_PREFIX}{json.dumps(payload)}\n\n"


class SSEDecoder:
    """Incrementally decodes ``data:`` records from a chunked body."""

    def __init__(self):
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[dict[str, Any]]:
        """Add a chunk and return the payloads of every record it completes."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk.replace("\r\n", "\n")

        records = self._buffer.split("\n\n")
        self._buffer = records.pop()
        return self._decode_records(records)

    def flush(self) -> list[dict[str, Any]]:
        """Decode whatever is left once the body has ended."""
        self._buffer += self._utf8.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if not remaining.strip():
            return []
        return self._decode_records([remaining])

    def _decode_records(self, records: list[str]) -> list[dict[str, Any]]:
        payloads = []
        for record in records:
            for line in record.split("\n"):
                if not line.startswith(_DATA_PREFIX):
                    continue
                try:
                    payloads.append(json.loads(line[len(_DATA_PREFIX):]))
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed SSE record: %.80s", line)
        return payloads
