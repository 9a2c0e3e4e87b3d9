"""Normalization of agent streaming output into displayable text.

Agents print one record per line. Plain-text agents print prose; the JSON
streaming agents print NDJSON envelopes discriminated by ``type``:

- ``assistant`` (claude, cursor): ``message.content`` is a list of blocks,
  only ``text`` blocks are shown.
- ``result`` (claude, cursor): final result, shown only for ``success``;
  failures surface through the process exit code instead.
- ``text`` (opencode, kilo): ``part.text``.
- ``message_update`` (opencode, kilo, pi): ``assistantMessageEvent`` with a
  ``text_delta`` fragment.
- ``step_start`` / ``step_finish``: lifecycle markers, never shown.

Anything unrecognized is passed through so new agent output stays visible.
"""

from __future__ import annotations

import json
from typing import Any

LIFECYCLE_TYPES = frozenset({"step_start", "step_finish"})


def parse_stream_line(line: str) -> str:
    """Return the displayable text carried by one output line, or ``""``."""

    stripped = line.strip()
    if not stripped:
        return ""

    try:
        message = json.loads(stripped)
    except json.JSONDecodeError:
        return stripped
    if not isinstance(message, dict):
        return stripped

    message_type = message.get("type")
    if message_type == "assistant":
        return _assistant_text(message.get("message"))
    if message_type == "result":
        if message.get("subtype") == "success":
            return _as_text(message.get("result"))
        return ""
    if message_type == "text":
        part = message.get("part")
        if isinstance(part, dict):
            return _as_text(part.get("text"))
        return ""
    if message_type == "message_update":
        event = message.get("assistantMessageEvent")
        if isinstance(event, dict) and event.get("type") == "text_delta":
            return _as_text(event.get("delta"))
        return ""
    if message_type in LIFECYCLE_TYPES:
        return ""
    return stripped


def _assistant_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    content = payload.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text = block.get("text")
        if isinstance(text, str) and text:
            parts.append(text)
    return "".join(parts)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""
