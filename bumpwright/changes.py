"""Readers that turn commit messages and change files into change records.

Commit messages are parsed as conventional commits
(https://www.conventionalcommits.org/). Messages that don't follow the
convention are skipped, never an error.

Change files are small markdown documents with front matter that maps each
affected package to a change type, followed by a summary heading and an
optional body::

    ---
    default: minor
    ---

    # Add a `--frozen` flag

    Longer description that ends up under its own heading.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from .errors import ParseError
from .models import ChangeFile, ChangeKind, ChangeRecord, Provenance

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_NAME = "default"
DEFAULT_FOOTERS = ("Changelog-Note",)

_HEADER = re.compile(
    r"^(?P<type>[A-Za-z][\w-]*)"
    r"(?:\((?P<scope>[^()\r\n]+)\))?"
    r"(?P<breaking>!)?"
    r":[ \t]+(?P<description>\S.*)$"
)
_FOOTER = re.compile(r"^(?P<token>BREAKING[ -]CHANGE|[\w-]+)(?:: | #)(?P<value>.*)$")
_BREAKING_TOKENS = {"BREAKING CHANGE", "BREAKING-CHANGE"}

_CHANGE_FILE_KINDS = {
    "major": ChangeKind.BREAKING,
    "minor": ChangeKind.FEATURE,
    "patch": ChangeKind.FIX,
}


def _parse_footers(body: str) -> list[tuple[str, str]]:
    """Extract ``(token, value)`` pairs from the last paragraph of a body.

    Lines that don't start a new footer continue the previous footer's value.
    """
    paragraphs = [p for p in re.split(r"\n[ \t]*\n", body.strip()) if p.strip()]
    if not paragraphs:
        return []
    lines = paragraphs[-1].splitlines()
    if not _FOOTER.match(lines[0]):
        return []
    footers: list[tuple[str, str]] = []
    for line in lines:
        match = _FOOTER.match(line)
        if match:
            footers.append((match["token"], match["value"].strip()))
        else:
            token, value = footers[-1]
            footers[-1] = (token, f"{value}\n{line.strip()}".strip())
    return footers


def parse_commit(
    message: str,
    *,
    footers: Iterable[str] = DEFAULT_FOOTERS,
    custom_types: Iterable[str] = (),
) -> list[ChangeRecord]:
    """Parse a single commit message into zero or more change records.

    ``feat`` and ``fix`` commits produce a record for their description. A
    ``!`` marks the description as breaking, unless a ``BREAKING CHANGE``
    footer is present, in which case the footer value is the breaking record
    and the description keeps its own type. Footers listed in ``footers`` and
    commit types listed in ``custom_types`` produce custom records.

    Returns:
        The records, or an empty list if the message is not a conventional
        commit.
    """
    header, _, body = message.strip().partition("\n")
    match = _HEADER.match(header.strip())
    if not match:
        logger.debug(f"Skipping non-conventional commit {header!r}")
        return []

    commit_type = match["type"].lower()
    scope = match["scope"].strip() if match["scope"] else None
    description = match["description"].strip()
    wanted_footers = {f.lower(): f for f in footers}
    wanted_types = {t.lower() for t in custom_types}

    records: list[ChangeRecord] = []
    has_breaking_footer = False
    for token, value in _parse_footers(body):
        if token.upper() in _BREAKING_TOKENS:
            has_breaking_footer = True
            kind, label = ChangeKind.BREAKING, None
        elif token.lower() in wanted_footers:
            kind, label = ChangeKind.CUSTOM, wanted_footers[token.lower()]
        else:
            continue
        records.append(
            ChangeRecord(
                kind=kind,
                summary=value,
                label=label,
                scope=scope,
                provenance=Provenance.COMMIT,
                source=f"{header.strip()} ({token})",
            )
        )

    if match["breaking"] and not has_breaking_footer:
        kind, label = ChangeKind.BREAKING, None
    elif commit_type == "feat":
        kind, label = ChangeKind.FEATURE, None
    elif commit_type == "fix":
        kind, label = ChangeKind.FIX, None
    elif commit_type in wanted_types:
        kind, label = ChangeKind.CUSTOM, match["type"]
    else:
        # The description isn't a change itself, only (maybe) footers were
        return records

    records.append(
        ChangeRecord(
            kind=kind,
            summary=description,
            label=label,
            scope=scope,
            provenance=Provenance.COMMIT,
            source=header.strip(),
        )
    )
    return records


def records_from_commits(
    messages: Iterable[str],
    *,
    scopes: Sequence[str] | None = None,
    footers: Iterable[str] = DEFAULT_FOOTERS,
    custom_types: Iterable[str] = (),
) -> list[ChangeRecord]:
    """Parse every commit message, keeping only those relevant to a package.

    Args:
        messages: Full commit messages, oldest first.
        scopes: If given, commits with a scope outside this list are ignored.
                Commits without a scope always apply.
        footers: Commit footers that produce custom records.
        custom_types: Commit types that produce custom records.
    """
    footers = tuple(footers)
    custom_types = tuple(custom_types)
    allowed = {s.lower() for s in scopes} if scopes is not None else None
    records: list[ChangeRecord] = []
    for message in messages:
        for record in parse_commit(message, footers=footers, custom_types=custom_types):
            if allowed is not None and record.scope and record.scope.lower() not in allowed:
                logger.debug(f"Skipping {record.source!r}, scope not in {scopes}")
                continue
            records.append(record)
    return records


def _split_front_matter(change_file: ChangeFile) -> tuple[list[str], str]:
    text = change_file.content.lstrip("﻿").strip()
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        raise ParseError("change file must start with '---' front matter", change_file.path)
    try:
        end = next(i for i, line in enumerate(lines[1:], 1) if line.strip() == "---")
    except StopIteration:
        raise ParseError("unterminated front matter", change_file.path) from None
    return lines[1:end], "\n".join(lines[end + 1 :])


def parse_change_file(change_file: ChangeFile) -> list[ChangeRecord]:
    """Parse a change file into one record per package it names.

    Raises:
        ParseError: If the front matter or summary is missing or malformed.
    """
    header, body = _split_front_matter(change_file)

    versioning: dict[str, str] = {}
    for line in header:
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        package, sep, change_type = line.partition(":")
        package = package.strip().strip("\"'")
        change_type = change_type.strip().strip("\"'")
        if not sep or not package or not change_type:
            raise ParseError(f"invalid front matter line {line!r}", change_file.path)
        versioning[package] = change_type
    if not versioning:
        raise ParseError("front matter names no package", change_file.path)

    lines = body.strip().splitlines()
    summary = lines[0].lstrip("# ").strip() if lines else ""
    if not summary:
        raise ParseError("change file has no summary", change_file.path)
    details = "\n".join(lines[1:]).strip() or None

    records = []
    for package, change_type in versioning.items():
        kind = _CHANGE_FILE_KINDS.get(change_type.lower(), ChangeKind.CUSTOM)
        records.append(
            ChangeRecord(
                kind=kind,
                summary=summary,
                details=details,
                label=change_type if kind is ChangeKind.CUSTOM else None,
                scope=package,
                provenance=Provenance.CHANGE_FILE,
                source=change_file.path,
            )
        )
    return records
