"""Release pipeline: collect → bump → patch → propagate → changelog → commit.

This module orchestrates a release across every package of a workspace:
1. Validate the pre-release label and version overrides
2. Load every package and classify its versioned files
3. Collect change records from commits and change files
4. Compute each package's bump and resolve its next version
5. Patch each released package's own files and changelog
6. Propagate new versions into other packages' dependency references
7. Re-check that every package's files agree on its version
8. Commit the writes atomically (unless this is a dry run)

Steps 1-7 work on an in-memory copy of the files; if any of them fails,
nothing is written.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import semver
from packaging.utils import canonicalize_name

from .bump import calculate_bump
from .changelog import build_entry, merge_changelog
from .changes import (
    DEFAULT_FOOTERS,
    DEFAULT_PACKAGE_NAME,
    parse_change_file,
    records_from_commits,
)
from .config import load_config
from .errors import ConfigError, ParseError
from .files import commit_plan, read_change_files, read_files
from .models import (
    ChangeFile,
    ChangeRecord,
    PackageConfig,
    PackageSummary,
    ReleasePlan,
    WorkspaceConfig,
)
from .updater import (
    Package,
    WorkingCopy,
    apply_version,
    declared_name,
    load_package,
    propagate,
    verify_package,
    workspace_aliases,
)
from .versions import parse_version, resolve_version, validate_label

logger = logging.getLogger(__name__)


def _commit_records(
    config: PackageConfig,
    commits: Sequence[str],
) -> list[ChangeRecord]:
    footers = list(DEFAULT_FOOTERS)
    custom_types: list[str] = []
    for section in config.extra_changelog_sections:
        footers.extend(section.footers)
        custom_types.extend(section.types)
    return records_from_commits(
        commits, scopes=config.scopes, footers=footers, custom_types=custom_types
    )


def _change_file_records(
    change_files: Iterable[ChangeFile],
    packages: Sequence[Package],
    aliases: Mapping[str, str],
) -> dict[str, list[ChangeRecord]]:
    """Parse change files and assign each record to its package.

    Raises:
        ParseError: If a change file names a package that doesn't exist.
    """
    by_package: dict[str, list[ChangeRecord]] = {p.name: [] for p in packages}
    single = packages[0].name if len(packages) == 1 else None
    for change_file in change_files:
        for record in parse_change_file(change_file):
            if record.scope == DEFAULT_PACKAGE_NAME and single is not None:
                name = single
            else:
                name = record.scope if record.scope in by_package else None
                if name is None:
                    name = aliases.get(canonicalize_name(record.scope or ""))
            if name is None:
                raise ParseError(f"unknown package {record.scope!r}", change_file.path)
            by_package[name].append(record)
    return by_package


def plan_release(
    config: WorkspaceConfig,
    files: Mapping[str, str],
    *,
    commits: Sequence[str] = (),
    package_commits: Mapping[str, Sequence[str]] | None = None,
    change_files: Sequence[ChangeFile] = (),
    prerelease: str | None = None,
    overrides: Mapping[str, str] | None = None,
    today: datetime.date | None = None,
) -> ReleasePlan:
    """Compute everything a release would write, without writing anything.

    Args:
        config: Workspace configuration.
        files: Content of every versioned file and changelog, keyed by the
               path used in the configuration. Missing changelogs are created.
        commits: Commit messages since the last release.
        package_commits: Package name → commit messages since that package's
            own last release. Takes the place of ``commits`` for the packages
            it names.
        change_files: Pending change files.
        prerelease: Pre-release label, e.g. "rc".
        overrides: Package name → explicit version to release.
        today: Release date for changelog titles, defaults to today.

    Returns:
        The write plan; ``nothing_to_release`` is set when no package bumps.

    Raises:
        ReleaseError: Any parse, resolution or patching error. The plan is
            all or nothing, so any error means nothing should be written.
    """
    if prerelease is not None:
        validate_label(prerelease)
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(config.packages)
    if unknown:
        raise ConfigError(f"Version override for unknown package(s): {', '.join(sorted(unknown))}")
    package_commits = package_commits or {}
    release_date = today or datetime.date.today()

    work = WorkingCopy(files)
    aliases = workspace_aliases(
        {name: declared_name(pkg, work) for name, pkg in config.packages.items()}
    )
    packages = [load_package(name, pkg, work, aliases) for name, pkg in config.packages.items()]
    file_records = _change_file_records(change_files, packages, aliases)

    summaries: list[PackageSummary] = []
    new_versions: dict[str, semver.Version] = {}
    for package in packages:
        records = list(file_records[package.name])
        if not config.ignore_conventional_commits:
            messages = package_commits.get(package.name, commits)
            records.extend(_commit_records(package.config, messages))
        bump = calculate_bump(records, package.version)
        override = overrides.get(package.name)
        new = resolve_version(
            package.version,
            bump,
            prerelease=prerelease,
            override=parse_version(override) if override is not None else None,
            package=package.name,
        )
        if new is None:
            logger.info(f"{package.name}: nothing to release")
            current = str(package.version)
            summaries.append(PackageSummary(name=package.name, old=current, new=current))
            continue

        logger.info(f"{package.name}: {package.version} → {new} ({bump!s})")
        new_versions[package.name] = new
        apply_version(package, new, work)
        if package.changelog is not None:
            existing = work.read(package.changelog) if package.changelog in work else ""
            entry = build_entry(str(new), release_date, records, package.config.extra_changelog_sections)
            work.write(package.changelog, merge_changelog(existing, entry))
        summaries.append(
            PackageSummary(name=package.name, old=str(package.version), new=str(new), bump=bump)
        )

    propagate((edge for package in packages for edge in package.edges), new_versions, work)
    for package in packages:
        if package.name in new_versions:
            verify_package(package, new_versions[package.name], work)

    removals: list[str] = []
    if new_versions and prerelease is None:
        removals = [change_file.path for change_file in change_files]
    return ReleasePlan(writes=work.writes(), removals=removals, summaries=summaries)


def run_release(
    root: Path,
    config: WorkspaceConfig | None = None,
    *,
    commits: Sequence[str] = (),
    package_commits: Mapping[str, Sequence[str]] | None = None,
    prerelease: str | None = None,
    overrides: Mapping[str, str] | None = None,
    dry_run: bool = False,
    today: datetime.date | None = None,
) -> ReleasePlan:
    """Plan a release from the files under ``root`` and apply it.

    With ``dry_run`` the plan is computed and returned but nothing is
    written or removed.
    """
    root = Path(root)
    if config is None:
        config = load_config(root)
    paths: list[str] = []
    for pkg in config.packages.values():
        paths.extend(ref.path for ref in pkg.versioned_files)
        if pkg.changelog is not None:
            paths.append(pkg.changelog)

    plan = plan_release(
        config,
        read_files(root, dict.fromkeys(paths)),
        commits=commits,
        package_commits=package_commits,
        change_files=read_change_files(root),
        prerelease=prerelease,
        overrides=overrides,
        today=today,
    )
    if plan.nothing_to_release:
        logger.info("Nothing to release")
        return plan
    if dry_run:
        for action in plan.writes:
            logger.info(f"Would write {action.path}")
        for path in plan.removals:
            logger.info(f"Would remove {path}")
        return plan
    commit_plan(root, plan)
    return plan
