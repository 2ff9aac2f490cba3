"""Offsets of members inside JSON text.

The standard library parses JSON into values only; this walks an object
with the decoder's own building blocks so we also know where each member's
value starts and ends in the original text.
"""

from __future__ import annotations

import json
import re
from json.decoder import scanstring
from typing import Any

from pydantic import BaseModel

from .errors import ParseError

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_decoder = json.JSONDecoder()


class Member(BaseModel):
    """One ``"key": value`` pair of a JSON object."""

    key: str
    start: int
    end: int


def load_json(content: str, path: str | None = None) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON: {e}", path) from None


def _skip(content: str, pos: int) -> int:
    return _WHITESPACE.match(content, pos).end()


def object_members(content: str, pos: int = 0) -> list[Member]:
    """List the members of the object starting at ``pos``, in source order.

    Duplicate keys are all kept. ``content`` must already be valid JSON
    (see load_json); the value at ``pos`` must be an object.
    """
    pos = _skip(content, pos)
    if content[pos : pos + 1] != "{":
        raise ValueError(f"expected an object at offset {pos}")
    members: list[Member] = []
    pos = _skip(content, pos + 1)
    if content[pos] == "}":
        return members
    while True:
        key, pos = scanstring(content, pos + 1)
        pos = _skip(content, pos) + 1  # ':'
        start = _skip(content, pos)
        _, end = _decoder.raw_decode(content, start)
        members.append(Member(key=key, start=start, end=end))
        pos = _skip(content, end)
        if content[pos] == "}":
            return members
        pos = _skip(content, pos + 1)  # ','


def find_members(content: str, key: str, pos: int = 0) -> list[Member]:
    return [m for m in object_members(content, pos) if m.key == key]


def string_span(content: str, member: Member, path: str | None = None) -> tuple[int, int]:
    """Offsets of a string member's text, without the quotes.

    Raises:
        ParseError: If the value is not a string, or contains escapes.
    """
    raw = content[member.start : member.end]
    value = json.loads(raw)
    if not isinstance(value, str):
        raise ParseError(f'"{member.key}" must be a string', path)
    if raw[1:-1] != value:
        raise ParseError(f'"{member.key}" uses escapes that can\'t be patched in place', path)
    return member.start + 1, member.end - 1
