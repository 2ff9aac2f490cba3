"""Package loading and version patching across a package's files.

A package's versioned files are split in two groups:
- own references, which must carry the package's version (its manifests,
  text files, and its entry in lock files);
- dependency edges, which carry the version of *another* workspace package
  and are only patched when that package is released.

Nothing here touches the disk: every read and write goes through a
WorkingCopy, which the orchestrator turns into write actions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import semver
from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict

from .adapters import Adapter, adapter_for, detect_format, is_lock_format
from .errors import ConfigError, InconsistentVersions, ParseError
from .models import Format, PackageConfig, WriteAction
from .versions import parse_version

logger = logging.getLogger(__name__)


class WorkingCopy:
    """In-memory view of the workspace files a run reads and writes.

    Keeps the original content of every file so that only files whose
    content actually changed become write actions, in the order they were
    first written.
    """

    def __init__(self, files: Mapping[str, str]) -> None:
        self._original = dict(files)
        self._current = dict(files)
        self._touched: list[str] = []

    def __contains__(self, path: str) -> bool:
        return path in self._current

    def read(self, path: str) -> str:
        try:
            return self._current[path]
        except KeyError:
            raise ParseError("file does not exist", path) from None

    def write(self, path: str, content: str) -> None:
        if path not in self._touched:
            self._touched.append(path)
        self._current[path] = content

    def writes(self) -> list[WriteAction]:
        return [
            WriteAction(path=path, content=self._current[path])
            for path in self._touched
            if self._current[path] != self._original.get(path)
        ]


class DependencyEdge(BaseModel):
    """A file of one package that holds the version of another package."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    adapter: Adapter
    package: str


class Package(BaseModel):
    """A release unit loaded from configuration and file contents.

    Attributes:
        name: Name of the package in the configuration.
        version: Current version, shared by every own version file.
        own: Adapters for every reference carrying this package's version.
        edges: References to other workspace packages' versions.
        changelog: Path of the changelog, if the package has one.
        manifest_name: Name declared by the package's primary manifest.
        config: The package's configuration.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    version: semver.Version
    own: list[Adapter]
    edges: list[DependencyEdge]
    changelog: str | None = None
    manifest_name: str | None = None
    config: PackageConfig


def declared_name(config: PackageConfig, work: WorkingCopy) -> str | None:
    """The name declared by the first manifest in the package's files."""
    for ref in config.versioned_files:
        if ref.dependency is not None:
            continue
        fmt = detect_format(ref)
        if fmt is Format.TEXT or is_lock_format(fmt):
            continue
        name = adapter_for(ref).package_name(work.read(ref.path))
        if name:
            return name
    return None


def workspace_aliases(names: Mapping[str, str | None]) -> dict[str, str]:
    """Map every name a package is known by to the package's config name.

    Args:
        names: Config name → declared manifest name (or None).

    Raises:
        ConfigError: If two packages would share a name.
    """
    aliases: dict[str, str] = {}
    for package, manifest_name in names.items():
        for alias in {package, manifest_name} - {None}:
            key = canonicalize_name(alias)
            if aliases.setdefault(key, package) != package:
                raise ConfigError(f"Packages {aliases[key]} and {package} are both named {alias!r}")
    return aliases


def _current_version(name: str, own: Iterable[Adapter], work: WorkingCopy) -> semver.Version:
    found: dict[str, semver.Version] = {}
    raw: dict[str, str] = {}
    for adapter in own:
        if not adapter.carries_own_version:
            continue
        for span in adapter.locate(work.read(adapter.path)):
            key = f"{adapter.path} ({span.location})"
            found[key] = parse_version(span.value, adapter.dialect, path=adapter.path)
            raw[key] = span.value
    if not found:
        raise ConfigError(f"Package {name} has no file carrying its own version")
    versions = set(found.values())
    if len(versions) > 1:
        raise InconsistentVersions(name, raw)
    return versions.pop()


def load_package(
    name: str,
    config: PackageConfig,
    work: WorkingCopy,
    aliases: Mapping[str, str] | None = None,
) -> Package:
    """Load a package's current version and classify its file references.

    Args:
        name: Name of the package in the configuration.
        config: The package's configuration.
        work: Working copy holding every referenced file.
        aliases: Names of all workspace packages (see workspace_aliases),
                 used to tell references to other packages apart.

    Raises:
        ConfigError: If a lock file needs a name the package doesn't declare,
            or no file carries the package's own version.
        InconsistentVersions: If own version files disagree.
    """
    aliases = aliases or {}
    manifest_name = declared_name(config, work)
    own: list[Adapter] = []
    edges: list[DependencyEdge] = []
    for ref in config.versioned_files:
        if ref.dependency is None and not is_lock_format(detect_format(ref)):
            own.append(adapter_for(ref))
            continue
        dependency = ref.dependency or manifest_name
        if dependency is None:
            raise ConfigError(
                f"{ref.path}: set `dependency`, package {name} declares no name to look up"
            )
        owner = aliases.get(canonicalize_name(dependency), name)
        adapter = adapter_for(ref, dependency)
        if owner == name:
            own.append(adapter)
        else:
            logger.debug(f"{ref.path} of {name} tracks the version of {owner}")
            edges.append(DependencyEdge(adapter=adapter, package=owner))

    version = _current_version(name, own, work)
    logger.debug(f"Loaded {name} {version} with {len(own)} own files and {len(edges)} edges")
    return Package(
        name=name,
        version=version,
        own=own,
        edges=edges,
        changelog=config.changelog,
        manifest_name=manifest_name,
        config=config,
    )


def apply_version(package: Package, version: semver.Version, work: WorkingCopy) -> None:
    """Patch every own reference of a package to ``version``."""
    for adapter in package.own:
        work.write(adapter.path, adapter.patch(work.read(adapter.path), str(version)))


def propagate(
    edges: Iterable[DependencyEdge],
    new_versions: Mapping[str, semver.Version],
    work: WorkingCopy,
) -> None:
    """Patch every dependency edge whose target package got a new version.

    Runs after all packages have been patched, so edges pointing into files
    of other packages see (and keep) their already patched content.
    """
    for edge in edges:
        if edge.package not in new_versions:
            continue
        version = str(new_versions[edge.package])
        logger.debug(f"{edge.adapter.path}: {edge.adapter.dependency} -> {version}")
        work.write(edge.adapter.path, edge.adapter.patch(work.read(edge.adapter.path), version))


def verify_package(package: Package, version: semver.Version, work: WorkingCopy) -> None:
    """Check that every own reference now carries exactly ``version``.

    Raises:
        InconsistentVersions: If any located version differs.
    """
    expected = str(version)
    found: dict[str, str] = {}
    for adapter in package.own:
        for span in adapter.locate(work.read(adapter.path)):
            found[f"{adapter.path} ({span.location})"] = span.value
    if any(value != expected for value in found.values()):
        raise InconsistentVersions(package.name, found)
