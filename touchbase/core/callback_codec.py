"""Callback encoding — contact names to button payloads and back.

Telegram callback data is a flat string of at most 64 bytes, so a contact
is referenced by its name with whitespace turned into underscores:

    "Jane Doe"  ->  "contact_Jane_Doe"  ->  "Jane Doe"

The inverse is lossy: "Jane_Doe" and "Jane Doe" encode to the same payload.
Roster matching therefore goes through normalize_name(), which folds case,
whitespace and underscores, and the first matching row wins.
"""

from __future__ import annotations

import re
from enum import Enum

PREFIX = "contact_"
NO_UPDATE_PAYLOAD = "contact_none"
MAX_PAYLOAD_BYTES = 64

_WHITESPACE = re.compile(r"\s")
_RUNS = re.compile(r"[\s_]+")


class Sentinel(Enum):
    NO_UPDATE = "none"


NO_UPDATE = Sentinel.NO_UPDATE


class CallbackEncodingError(ValueError):
    """Raised when a name cannot be turned into a valid button payload."""


def encode(name: str) -> str:
    """Encode a contact name as a button payload.

    Raises CallbackEncodingError for empty names and for payloads that would
    exceed Telegram's callback data limit.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise CallbackEncodingError("Cannot encode an empty contact name")

    payload = PREFIX + _WHITESPACE.sub("_", cleaned)
    if payload == NO_UPDATE_PAYLOAD:
        raise CallbackEncodingError(f"Contact name {name!r} collides with the 'none' button")
    if len(payload.encode("utf-8")) > MAX_PAYLOAD_BYTES:
        raise CallbackEncodingError(
            f"Payload for {name!r} exceeds {MAX_PAYLOAD_BYTES} bytes"
        )
    return payload


def decode(payload: str | None) -> str | Sentinel | None:
    """Decode a button payload.

    Returns NO_UPDATE for the "none recently" button, the candidate contact
    name for a contact button, or None when the payload is not ours.
    """
    if not payload:
        return None
    if payload == NO_UPDATE_PAYLOAD:
        return NO_UPDATE
    if not payload.startswith(PREFIX):
        return None

    name = payload[len(PREFIX):].replace("_", " ").strip()
    return name or None


def normalize_name(name: str) -> str:
    """Fold a name for roster matching (case, whitespace runs, underscores)."""
    return _RUNS.sub(" ", name or "").strip().casefold()
