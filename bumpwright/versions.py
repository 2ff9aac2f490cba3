"""Version parsing, bumping and resolution.

Handles conversion between version strings and semver objects for each file
dialect, validates pre-release labels, and computes the next version of a
package from a bump severity.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

import semver
from packaging.version import InvalidVersion as InvalidPep440Version
from packaging.version import Version as Pep440Version

from .errors import InvalidLabel, InvalidVersion, NonMonotonic, VersionDowngrade
from .models import BumpType

logger = logging.getLogger(__name__)

_LABEL_CHARS = re.compile(r"^[0-9A-Za-z-]+$")
# A version prefix followed by a number reads like a version of its own
_EMBEDDED_VERSION = re.compile(r"[vV]\d")
_PEP440_LABELS = {"a": "alpha", "b": "beta", "rc": "rc"}


class Dialect(str, Enum):
    SEMVER = "semver"
    PEP440 = "pep440"


def parse_version(
    version_str: str,
    dialect: Dialect = Dialect.SEMVER,
    *,
    path: str | None = None,
) -> semver.Version:
    """Parse a version string into a semver.Version object.

    The SEMVER dialect is strict: exactly ``MAJOR.MINOR.PATCH`` with optional
    pre-release and build metadata. The PEP440 dialect also accepts Python
    spellings and pads incomplete versions with zeros:
    - "1.2" → "1.2.0"
    - "1.2.3rc1" → "1.2.3-rc.1"
    - "2.0.0b0" → "2.0.0-beta.0"

    Raises:
        InvalidVersion: If the string is not valid in the given dialect.
    """
    text = version_str.strip()
    try:
        return semver.Version.parse(text)
    except (ValueError, TypeError):
        if dialect is not Dialect.PEP440:
            raise InvalidVersion(version_str, path) from None
    try:
        parsed = Pep440Version(text)
    except InvalidPep440Version:
        raise InvalidVersion(version_str, path) from None
    if parsed.epoch or parsed.post is not None or parsed.dev is not None:
        raise InvalidVersion(version_str, path)
    parts = list(parsed.release[:3])
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append(0)
    prerelease = None
    if parsed.pre is not None:
        letter, number = parsed.pre
        prerelease = f"{_PEP440_LABELS[letter]}.{number}"
    return semver.Version(*parts, prerelease=prerelease, build=parsed.local)


def validate_label(label: str) -> str:
    """Check that a pre-release label is a single, unambiguous identifier.

    Raises:
        InvalidLabel: If the label is empty, contains characters outside
            ``[0-9A-Za-z-]``, is purely numeric, or embeds a version prefix
            such as ``v2``.
    """
    if not label:
        raise InvalidLabel(label, "label is empty")
    if not _LABEL_CHARS.match(label):
        raise InvalidLabel(label, "only ASCII letters, digits and '-' are allowed")
    if label.isdigit():
        raise InvalidLabel(label, "label must not be purely numeric")
    if _EMBEDDED_VERSION.search(label):
        raise InvalidLabel(label, "label must not contain version syntax")
    return label


def bump_version(current: semver.Version, bump: BumpType) -> semver.Version:
    """Apply a stable bump to a version.

    A pre-release is finalized instead of incremented, since its stable
    component has not been released yet:
        "1.3.0-rc.1" + PATCH → "1.3.0"

    Examples:
        "1.2.3" + PATCH → "1.2.4"
        "1.2.3" + MINOR → "1.3.0"
        "1.2.3" + MAJOR → "2.0.0"
    """
    if bump is BumpType.NONE:
        return current
    if current.prerelease:
        return current.finalize_version()
    if bump is BumpType.MAJOR:
        return current.bump_major()
    if bump is BumpType.MINOR:
        return current.bump_minor()
    return current.bump_patch()


def _split_prerelease(prerelease: str) -> tuple[str, int | None]:
    label, _, number = prerelease.rpartition(".")
    if label and number.isdigit():
        return label, int(number)
    return prerelease, None


def _bump_prerelease(current: semver.Version, bump: BumpType, label: str) -> semver.Version:
    if not current.prerelease:
        stable = bump_version(current, bump)
        logger.debug(f"Pre-release {label} of next stable version {stable}")
        return stable.replace(prerelease=f"{label}.0")
    current_label, number = _split_prerelease(current.prerelease)
    if current_label == label and number is not None:
        return current.replace(prerelease=f"{label}.{number + 1}", build=None)
    return current.replace(prerelease=f"{label}.0", build=None)


def resolve_version(
    current: semver.Version,
    bump: BumpType,
    *,
    prerelease: str | None = None,
    override: semver.Version | None = None,
    package: str | None = None,
) -> semver.Version | None:
    """Compute the next version of a package.

    Args:
        current: The version the package's files carry today.
        bump: Severity computed from the package's change records.
        prerelease: Optional pre-release label (e.g. "rc"); produces
                    ``X.Y.Z-label.N`` versions.
        override: Explicit version to use instead of the computed one.
        package: Package name, for error messages.

    Returns:
        The next version, or None when there is nothing to release.

    Raises:
        InvalidLabel: If the pre-release label is malformed.
        VersionDowngrade: If the override is not greater than current.
        NonMonotonic: If the computed version is not greater than current.
    """
    if override is not None:
        if override.compare(current) <= 0:
            raise VersionDowngrade(str(current), str(override), package)
        return override
    if bump is BumpType.NONE:
        return None
    if prerelease is not None:
        new = _bump_prerelease(current, bump, validate_label(prerelease))
    else:
        new = bump_version(current, bump)
    if new.compare(current) <= 0:
        raise NonMonotonic(str(current), str(new), package)
    logger.debug(f"Using {bump!s} rule to go from {current} to {new}")
    return new
