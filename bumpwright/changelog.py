"""Changelog rendering and merging.

A release section looks like::

    ## 1.3.0 (2026-10-17)

    ### Features

    - Short change

    #### Change with a body

    The body, verbatim.

Merging only reads the existing changelog up to the most recent release
heading; the new section goes right above it and everything from that
heading on is copied as an opaque slice.
"""

from __future__ import annotations

import datetime
import logging
import re
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from .errors import InvalidVersion
from .models import ChangeKind, ChangelogSection, ChangeRecord
from .versions import Dialect, parse_version

logger = logging.getLogger(__name__)

BREAKING = "Breaking Changes"
FEATURES = "Features"
FIXES = "Fixes"
NOTES = "Notes"

_DEFAULT_SECTIONS = {
    ChangeKind.BREAKING: BREAKING,
    ChangeKind.FEATURE: FEATURES,
    ChangeKind.FIX: FIXES,
}
_LINE = re.compile(r"^.*$", re.MULTILINE)
_RELEASE_HEADING = re.compile(r"^(?P<level>#{1,2})\s+\[?v?(?P<version>\d+\.\d+[^\s\]]*)\]?(?:\s.*)?$")
_HEADING = re.compile(r"^(?P<level>#{1,6})\s")


class ChangelogEntry(BaseModel):
    """A release section: version, date, and non-empty groups in render order."""

    version: str
    date: datetime.date
    sections: list[tuple[str, list[ChangeRecord]]] = Field(default_factory=list)


def build_entry(
    version: str,
    release_date: datetime.date,
    records: Iterable[ChangeRecord],
    extra_sections: Sequence[ChangelogSection] = (),
) -> ChangelogEntry:
    """Group records into sections.

    Fixed sections come first (Breaking Changes, Features, Fixes, Notes),
    then extra sections in configuration order. A custom record goes to the
    first extra section listing its label as a type or footer, else to
    Notes. Empty sections are dropped.
    """
    groups: dict[str, list[ChangeRecord]] = {name: [] for name in (BREAKING, FEATURES, FIXES, NOTES)}
    routes: dict[str, str] = {}
    for section in extra_sections:
        groups.setdefault(section.name, [])
        for label in (*section.types, *section.footers):
            routes.setdefault(label.lower(), section.name)
    for record in records:
        if record.kind is ChangeKind.CUSTOM:
            groups[routes.get(record.label.lower(), NOTES)].append(record)
        else:
            groups[_DEFAULT_SECTIONS[record.kind]].append(record)
    return ChangelogEntry(
        version=version,
        date=release_date,
        sections=[(name, items) for name, items in groups.items() if items],
    )


def render_entry(entry: ChangelogEntry, header_level: int = 2) -> str:
    """Render an entry as markdown, with its title at ``header_level``."""
    title = "#" * header_level
    section = "#" * (header_level + 1)
    detail = "#" * (header_level + 2)
    blocks = [f"{title} {entry.version} ({entry.date.isoformat()})"]
    for name, records in entry.sections:
        blocks.append(f"{section} {name}")
        bullets = [f"- {record.summary}" for record in records if not record.details]
        if bullets:
            blocks.append("\n".join(bullets))
        for record in records:
            if record.details:
                blocks.append(f"{detail} {record.summary}\n\n{record.details.strip()}")
    return "\n\n".join(blocks) + "\n"


def _is_release_heading(line: str) -> re.Match[str] | None:
    match = _RELEASE_HEADING.match(line.rstrip("\r"))
    if match is None:
        return None
    try:
        parse_version(match["version"], Dialect.PEP440)
    except InvalidVersion:
        return None
    return match


def find_release_heading(existing: str) -> tuple[int, int] | None:
    """Offset and level of the most recent release heading, if any.

    Stops reading at the first match; only lines above it are looked at.
    """
    in_fence = False
    for line in _LINE.finditer(existing):
        text = line.group()
        if text.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence or not _HEADING.match(text):
            continue
        match = _is_release_heading(text)
        if match:
            return line.start(), len(match["level"])
    return None


def merge_changelog(existing: str, entry: ChangelogEntry) -> str:
    """Insert a rendered entry into an existing changelog.

    The entry goes right above the most recent release heading, at that
    heading's level. Without any prior release it's appended after the
    preamble at level 2. The text from the previous release heading onward
    is kept byte for byte.
    """
    found = find_release_heading(existing)
    if found is None:
        section = render_entry(entry)
        if not existing.strip():
            return section
        logger.debug("No previous release in changelog, appending")
        return existing.rstrip("\r\n") + "\n\n" + section

    offset, level = found
    section = render_entry(entry, level)
    return existing[:offset] + section + "\n" + existing[offset:]
