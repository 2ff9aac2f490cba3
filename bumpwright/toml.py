"""TOML reading utilities.

Uses tomlkit because it round-trips a document byte for byte, which lets
us find the exact offsets of a value inside the original text. Those
offsets are what the adapters splice, so comments, ordering and whitespace
in Cargo.toml, pyproject.toml and friends are never touched.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import uuid4

import tomlkit
import tomlkit.exceptions
from packaging.utils import canonicalize_name
from tomlkit.items import String

from .errors import ConfigError, ParseError

Key = str | int


def parse_toml(content: str, path: str | None = None) -> tomlkit.TOMLDocument:
    """Parse TOML text, reporting syntax errors as ParseError."""
    try:
        return tomlkit.parse(content)
    except tomlkit.exceptions.ParseError as e:
        raise ParseError(f"invalid TOML: {e}", path) from None


def string_span(content: str, keys: Sequence[Key], path: str | None = None) -> tuple[int, int]:
    """Find the offsets of a string value's text inside a TOML document.

    The value is addressed by a key path, e.g. ``("package", "version")`` or
    ``("package", 3, "version")`` for an array of tables. The returned
    ``(start, end)`` excludes the quotes.

    A throwaway copy of the document is parsed, the value is swapped for a
    unique marker and the copy is rendered; since tomlkit renders everything
    before an item unchanged, the marker's offset is the value's offset in
    ``content``.

    Raises:
        ParseError: If the value is not a single-line string without escapes.
    """
    doc = parse_toml(content, path)
    container = doc
    for key in keys[:-1]:
        container = container[key]
    item = container[keys[-1]]
    dotted = ".".join(str(k) for k in keys)
    if not isinstance(item, String) or "\n" in item.as_string():
        raise ParseError(f"{dotted} must be a single-line string", path)

    marker = f"bumpwright-{uuid4().hex}"
    container[keys[-1]] = marker
    start = doc.as_string().find(marker)
    end = start + len(item.as_string()) - 2
    if start < 1 or content[start - 1 : end + 1] != item.as_string():
        raise ParseError(f"could not locate {dotted} in the original text", path)
    if content[start:end] != str(item):
        raise ParseError(f"{dotted} uses escapes that can't be patched in place", path)
    return start, end


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str | None = None) -> str | None:
    """Extract the canonical package name from [project].name.

    Falls back to [tool.poetry].name. Names are normalized per PEP 503
    (lowercase, hyphens instead of underscores) for consistent comparison.
    """
    name = doc.get("project", {}).get("name")
    if name is None:
        name = doc.get("tool", {}).get("poetry", {}).get("name", fallback)
    return canonicalize_name(name) if name is not None else None


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 dependency groups)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    """
    return [dep for _, dep in iter_dependency_strings(doc)]


def iter_dependency_strings(doc: tomlkit.TOMLDocument) -> list[tuple[tuple[Key, ...], str]]:
    """Like get_all_dependency_strings, but also yields each string's key path."""
    found: list[tuple[tuple[Key, ...], str]] = []
    project = doc.get("project", {})
    for i, dep in enumerate(project.get("dependencies", [])):
        found.append((("project", "dependencies", i), str(dep)))
    for group, deps in project.get("optional-dependencies", {}).items():
        for i, dep in enumerate(deps):
            found.append((("project", "optional-dependencies", group, i), str(dep)))
    for group, deps in doc.get("dependency-groups", {}).items():
        for i, dep in enumerate(deps):
            # {include-group = "..."} entries aren't requirements
            if isinstance(dep, str):
                found.append((("dependency-groups", group, i), str(dep)))
    return found


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    These patterns (e.g., "packages/*", "libs/*") define which directories
    contain workspace packages.

    Raises:
        ConfigError: If no workspace members are defined.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    if not members:
        raise ConfigError("No [tool.uv.workspace] members defined in root pyproject.toml")
    return list(members)
