"""
Server-Sent Events Helpers

Encoding of outgoing `data:` frames and decoding of the engine's SSE stream.
"""

from __future__ import annotations

import json
from typing import Any, Optional

DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """
    Simple SSE Decoder: Splits bytes stream into event blocks and extracts data fields.

    - Uses empty line (\\n\\n) as event boundary
    - Supports CRLF (\\r\\n)
    - Only parses data: lines, ignores other fields
    """

    def __init__(self) -> None:
        self._buf = b""

    def feed(self, chunk: bytes) -> list[str]:
        """
        Append bytes and return list of parsed data payloads (one string per event).
        """
        if not chunk:
            return []

        data = (self._buf + chunk).replace(b"\r\n", b"\n")
        parts = data.split(b"\n\n")
        self._buf = parts.pop()  # Keep last incomplete event

        payloads: list[str] = []
        for event in parts:
            payload = self._extract_data_payload(event)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a trailing event that was not newline-terminated."""
        remainder, self._buf = self._buf, b""
        payload = self._extract_data_payload(remainder.replace(b"\r\n", b"\n"))
        return [payload] if payload is not None else []

    @staticmethod
    def _extract_data_payload(event: bytes) -> Optional[str]:
        data_lines: list[bytes] = []
        for line in event.split(b"\n"):
            if not line:
                continue
            if line.startswith(b"data:"):
                value = line[5:]
                if value.startswith(b" "):
                    value = value[1:]
                data_lines.append(value)
        if not data_lines:
            return None
        return b"\n".join(data_lines).decode("utf-8", errors="ignore")


def encode_sse_data(payload: str) -> bytes:
    """Encode string as SSE data frame."""
    return f"data: {payload}\n\n".encode("utf-8")


def encode_sse_json(obj: dict[str, Any]) -> bytes:
    """Encode dict as SSE JSON data frame."""
    return encode_sse_data(json.dumps(obj, ensure_ascii=False))


def encode_sse_item(item: Any) -> bytes:
    """Encode an adapter item: chunk dicts as JSON, the sentinel verbatim."""
    if isinstance(item, str):
        return encode_sse_data(item)
    return encode_sse_json(item)
