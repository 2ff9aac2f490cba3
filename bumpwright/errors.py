"""Exceptions raised while planning a release.

Every error aborts the run before anything is written to disk. Each class
keeps the context needed for remediation (file path, package name, the
offending content) as attributes.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for all bumpwright errors."""


class ParseError(ReleaseError):
    """A version string, commit, change file or manifest could not be parsed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class InvalidVersion(ParseError):
    def __init__(self, version: str, path: str | None = None) -> None:
        self.version = version
        super().__init__(f"invalid version {version!r}", path)


class ConfigError(ReleaseError):
    """The configuration is malformed or inconsistent."""


class UnknownFormat(ReleaseError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Unknown file format for {path}. "
            "Set `format` or `patterns` on the versioned file."
        )


class PatternNotFound(ReleaseError):
    def __init__(self, pattern: str, path: str) -> None:
        self.pattern = pattern
        self.path = path
        super().__init__(f"Pattern {pattern!r} did not match anything in {path}")


class AmbiguousMatch(ReleaseError):
    def __init__(self, path: str, locations: list[str]) -> None:
        self.path = path
        self.locations = locations
        super().__init__(
            f"Found {len(locations)} version locations in {path}: "
            + ", ".join(locations)
        )


class DependencyNotFound(ReleaseError):
    def __init__(self, dependency: str, path: str, reason: str = "") -> None:
        self.dependency = dependency
        self.path = path
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Dependency {dependency!r} not found in {path}{detail}")


class RangeExcludesVersion(ReleaseError):
    """Rewriting a dependency's lower bound would leave a range the new version doesn't satisfy."""

    def __init__(self, dependency: str, path: str, requirement: str, bound: str) -> None:
        self.dependency = dependency
        self.path = path
        self.requirement = requirement
        self.bound = bound
        super().__init__(
            f"{path}: {dependency} requirement would become {requirement!r}, "
            f"which {bound!r} excludes; widen the range before releasing"
        )


class NonMonotonic(ReleaseError):
    def __init__(self, current: str, new: str, package: str | None = None) -> None:
        self.current = current
        self.new = new
        self.package = package
        prefix = f"{package}: " if package else ""
        super().__init__(
            f"{prefix}new version {new} is not greater than current version {current}"
        )


class VersionDowngrade(NonMonotonic):
    """An explicit version override does not move the version forward."""


class InvalidLabel(ReleaseError):
    def __init__(self, label: str, reason: str) -> None:
        self.label = label
        self.reason = reason
        super().__init__(f"Invalid pre-release label {label!r}: {reason}")


class InconsistentVersions(ReleaseError):
    def __init__(self, package: str, versions: dict[str, str]) -> None:
        self.package = package
        self.versions = versions
        found = ", ".join(f"{path}={version}" for path, version in versions.items())
        super().__init__(
            f"Files of package {package} disagree on the current version: {found}"
        )
