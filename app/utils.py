"""Utility helpers for the Streamlist service."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


KIND_ALIASES: dict[str, str] = {
    "movie": "movie",
    "movies": "movie",
    "film": "movie",
    "series": "series",
    "show": "series",
    "shows": "series",
    "tv": "series",
}


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def normalize_email(value: str) -> str:
    """Return the comparison form of an email address."""

    return value.strip().casefold()


def coerce_kind(value: object) -> str:
    """Map the catalog's media type spellings onto ``movie``/``series``."""

    if not isinstance(value, str):
        raise ValueError("kind must be a string")
    kind = KIND_ALIASES.get(value.strip().lower())
    if kind is None:
        raise ValueError(f"Unsupported catalog kind: {value!r}")
    return kind


def dump_json(payload: Any) -> str:
    """Serialize a blob the way every store writes it.

    Non-ASCII text is escaped, so a lone surrogate still yields valid UTF-8.
    """

    return json.dumps(payload, separators=(",", ":"))
