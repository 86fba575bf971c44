"""Shared utility functions used across ProofVault modules."""
from __future__ import annotations

import json
import re
import uuid
from datetime import UTC, datetime
from typing import Any

_MISSING = object()

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE,
)


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite DateTime columns round-trip."""
    return datetime.now(UTC).replace(tzinfo=None)


def is_valid_uuid(value: str | None) -> bool:
    return bool(value) and bool(_UUID_RE.match(value or ""))


def new_session_id() -> str:
    return str(uuid.uuid4())
