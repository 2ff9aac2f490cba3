"""Offsets of element text inside an XML document.

ElementTree checks that the document is well formed; a small tag scanner
then maps each element to the offsets of its text in the original source,
which ElementTree doesn't keep.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from pydantic import BaseModel

from .errors import ParseError

_TOKEN = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<\?.*?\?>"
    r"|<!DOCTYPE[^>]*>"
    r"|<(?P<close>/)?(?P<name>[A-Za-z_][\w.:-]*)(?P<attrs>(?:[^>\"']|\"[^\"]*\"|'[^']*')*?)(?P<empty>/)?>",
    re.DOTALL,
)


class Element(BaseModel):
    """An element's tag path from the root plus the offsets of its content."""

    path: tuple[str, ...]
    start: int
    end: int


def _local(name: str) -> str:
    return name.rpartition(":")[2]


def scan_elements(content: str, path: str | None = None) -> list[Element]:
    """List every non-empty element of the document, in closing order.

    Raises:
        ParseError: If the document isn't well-formed XML.
    """
    try:
        ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"invalid XML: {e}", path) from None

    elements: list[Element] = []
    stack: list[tuple[str, int]] = []
    for match in _TOKEN.finditer(content):
        name = match["name"]
        if name is None or match["empty"]:
            continue
        if match["close"]:
            _, start = stack.pop()
            tags = tuple(tag for tag, _ in stack) + (_local(name),)
            elements.append(Element(path=tags, start=start, end=match.start()))
        else:
            stack.append((_local(name), match.end()))
    return elements


def text_span(content: str, element: Element, path: str | None = None) -> tuple[int, int]:
    """Offsets of an element's text with surrounding whitespace trimmed.

    Raises:
        ParseError: If the element has child elements or entity references.
    """
    raw = content[element.start : element.end]
    if "<" in raw or "&" in raw:
        raise ParseError(f"<{element.path[-1]}> must contain plain text", path)
    start = element.start + len(raw) - len(raw.lstrip())
    end = element.end - (len(raw) - len(raw.rstrip()))
    return start, end


def children(elements: list[Element], parent: Element) -> list[Element]:
    """Direct children of ``parent``, in document order."""
    depth = len(parent.path) + 1
    found = [
        e
        for e in elements
        if len(e.path) == depth and parent.start <= e.start and e.end <= parent.end
    ]
    return sorted(found, key=lambda e: e.start)
