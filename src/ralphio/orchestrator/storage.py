"""Common helpers for the file-backed task and state stores."""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

TMP_SUFFIX = ".tmp"


class StoreParseError(ValueError):
    """Persisted document exists but cannot be parsed."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def to_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def from_rfc3339(value: str) -> datetime:
    """Parse RFC3339 timestamp and ensure timezone-aware UTC fallback."""

    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def tmp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TMP_SUFFIX)


def write_json_atomic(path: Path, payload: Any) -> None:
    """Persist JSON via write-temp-then-rename.

    Readers never observe a partially written file: the payload lands in the
    sibling ``<name>.tmp`` first and is then renamed over ``path``.
    """

    tmp_path = tmp_path_for(path)
    data = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    with tmp_path.open("w", encoding="utf-8") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


def read_json(path: Path) -> Any:
    """Load a JSON document, mapping decode failures to StoreParseError."""

    try:
        return json.loads(path.read_text("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise StoreParseError(path, f"invalid JSON: {error}") from error
