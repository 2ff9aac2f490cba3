"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and for finding
the version part of a dependency requirement, so it can be replaced while
keeping the operator, extras and markers around it.
"""

from __future__ import annotations

import re

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

# Name plus optional extras, e.g. "My_Package[extra1, extra2]"
_PEP508_PREFIX = re.compile(r"\s*[A-Za-z0-9][A-Za-z0-9._-]*\s*(?:\[[^\]]*\])?\s*\(?\s*")
_PEP508_SPECIFIER = re.compile(r"(?:===|==|~=|!=|<=|>=|<|>)\s*(?P<version>[^\s,;)]+)")
# A version inside a range like "^1.2.3", ">=1.2, <2" or "workspace:~1.2.3"
_RANGE_VERSION = re.compile(
    r"(?<![\w.])\d+(?:\.\d+){0,2}(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?"
)
_UPPER_BOUND = re.compile(r"(?P<op><=?)\s*v?(?P<version>\d+(?:\.\d+){0,2}(?:-[0-9A-Za-z.-]+)?)")


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Handles version specifiers, extras, and normalizes the name per PEP 503
    (lowercase, hyphens instead of underscores).

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(Requirement(dep_str).name)


def same_name(left: str, right: str) -> bool:
    """Compare package names the way every supported ecosystem does."""
    return canonicalize_name(left) == canonicalize_name(right)


def requirement_version_span(dep_str: str) -> tuple[int, int] | None:
    """Locate the version of the first specifier in a PEP 508 string.

    Returns None when the requirement has no version specifier (or is a
    direct URL reference).

    Examples:
        "pkg>=1.0,<2" → span of "1.0"
        "pkg[extra]==1.2.3; python_version<'3.11'" → span of "1.2.3"
    """
    try:
        req = Requirement(dep_str)
    except InvalidRequirement:
        return None
    if req.url or not req.specifier:
        return None
    prefix = _PEP508_PREFIX.match(dep_str)
    match = _PEP508_SPECIFIER.search(dep_str, prefix.end() if prefix else 0)
    if match is None:
        return None
    return match.span("version")


def range_version_span(requirement: str) -> tuple[int, int] | None:
    """Locate the first version inside a Cargo/npm/Poetry style range.

    Returns None for requirements without a version, like ``*`` or
    ``workspace:*``.

    Examples:
        "^1.2.3" → span of "1.2.3"
        ">=0.4, <0.6" → span of "0.4"
    """
    match = _RANGE_VERSION.search(requirement)
    return match.span() if match else None


def excluding_bound(requirement: str, version: str) -> str | None:
    """Find the part of a requirement that ``version`` does not satisfy.

    PEP 508 requirements are checked against their whole specifier set.
    Cargo, npm and Poetry ranges are only checked against their ``<`` and
    ``<=`` comparators. Versions packaging can't read are not checked.

    Examples:
        "pkg>=2.0.0,<2", "2.0.0" → "<2"
        ">=2.0.0, <3", "2.0.0" → None
    """
    try:
        candidate = Version(version)
    except InvalidVersion:
        return None
    try:
        req = Requirement(requirement)
    except InvalidRequirement:
        req = None
    if req is not None and req.specifier:
        for spec in req.specifier:
            if not spec.contains(candidate, prereleases=True):
                return str(spec)
        return None
    for match in _UPPER_BOUND.finditer(requirement):
        try:
            bound = Version(match.group("version"))
        except InvalidVersion:
            continue
        if candidate > bound or (candidate == bound and match.group("op") == "<"):
            return match.group(0)
    return None
