"""Workspace configuration.

Configuration is looked up in this order:
1. ``bumpwright.toml`` at the workspace root
2. ``[tool.bumpwright]`` in the root ``pyproject.toml``
3. uv workspace discovery: every ``[tool.uv.workspace]`` member is a package

A configuration holds either a single ``[package]`` table (a package named
"default") or one ``[packages.<name>]`` table per package::

    [packages.core]
    versioned_files = ["core/Cargo.toml", { path = "Cargo.lock" }]
    changelog = "core/CHANGELOG.md"

    [changes]
    ignore_conventional_commits = false
"""

from __future__ import annotations

import glob
import logging
from collections.abc import Callable, MutableMapping
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import ValidationError

from .changes import DEFAULT_PACKAGE_NAME
from .deps import dep_canonical_name, requirement_version_span
from .errors import ConfigError
from .files import read_text
from .models import PackageConfig, VersionedFileRef, WorkspaceConfig
from .toml import get_all_dependency_strings, get_project_name, get_workspace_member_globs, parse_toml

logger = logging.getLogger(__name__)

CONFIG_FILE = "bumpwright.toml"
PYPROJECT = "pyproject.toml"


def _move_ignore_conventional_commits(doc: MutableMapping[str, Any]) -> bool:
    """``ignore_conventional_commits`` used to be set on the release step."""
    moved = False
    ignore = False
    for workflow in doc.get("workflows", []):
        for step in workflow.get("steps", []):
            if "ignore_conventional_commits" in step:
                ignore = ignore or bool(step["ignore_conventional_commits"])
                del step["ignore_conventional_commits"]
                moved = True
    if not moved:
        return False
    if ignore:
        if "changes" not in doc:
            doc["changes"] = tomlkit.table()
        doc["changes"]["ignore_conventional_commits"] = True
    return True


# Applied in order; each migration is a no-op on an already upgraded config
MIGRATIONS: list[tuple[str, Callable[[MutableMapping[str, Any]], bool]]] = [
    ("move-ignore-conventional-commits", _move_ignore_conventional_commits),
]


def upgrade_config(doc: MutableMapping[str, Any]) -> list[str]:
    """Rewrite deprecated settings in place.

    Works on a tomlkit document (or table), so the caller can write it back
    with formatting preserved. Running it twice changes nothing the second
    time.

    Returns:
        Names of the migrations that changed something.
    """
    applied = []
    for name, migrate in MIGRATIONS:
        if migrate(doc):
            logger.info(f"Applied config migration {name}")
            applied.append(name)
    return applied


def parse_config(doc: MutableMapping[str, Any], source: str = CONFIG_FILE) -> WorkspaceConfig:
    """Validate a configuration table.

    Deprecated settings are upgraded in memory, with a warning.

    Raises:
        ConfigError: If the table is malformed.
    """
    applied = upgrade_config(doc)
    if applied:
        logger.warning(f"{source} uses deprecated settings ({', '.join(applied)}), run upgrade_config")

    data = doc.unwrap() if hasattr(doc, "unwrap") else dict(doc)
    if "package" in data and "packages" in data:
        raise ConfigError(f"{source}: use either [package] or [packages], not both")
    if "package" in data:
        packages = {DEFAULT_PACKAGE_NAME: data["package"]}
    else:
        packages = data.get("packages", {})
    if not packages:
        raise ConfigError(f"{source}: no packages defined")
    try:
        return WorkspaceConfig.model_validate(
            {
                "packages": packages,
                "ignore_conventional_commits": data.get("changes", {}).get(
                    "ignore_conventional_commits", False
                ),
            }
        )
    except ValidationError as e:
        raise ConfigError(f"{source}: {e}") from None


def discover_uv_workspace(root: Path, doc: tomlkit.TOMLDocument) -> WorkspaceConfig:
    """Build a configuration from a uv workspace.

    Reads [tool.uv.workspace].members from root pyproject.toml to find
    package directories. Each member's pyproject.toml is its version file,
    and every versioned requirement on another member becomes a dependency
    reference so released versions propagate.
    """
    member_globs = get_workspace_member_globs(doc)

    # Expand globs to find all package directories
    member_dirs: list[Path] = []
    for pattern in member_globs:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / PYPROJECT).exists():
                member_dirs.append(p)

    if not member_dirs:
        raise ConfigError("No packages found matching workspace members")

    # First pass: collect basic info from each package
    paths: dict[str, str] = {}
    raw_deps: dict[str, list[str]] = {}
    for d in member_dirs:
        member_doc = parse_toml(read_text(d / PYPROJECT), str(d / PYPROJECT))
        name = get_project_name(member_doc, d.name)
        paths[name] = d.relative_to(root).as_posix()
        raw_deps[name] = get_all_dependency_strings(member_doc)

    # Second pass: versioned requirements on other members become references
    packages: dict[str, PackageConfig] = {}
    for name, rel in paths.items():
        manifest = f"{rel}/{PYPROJECT}"
        refs = [VersionedFileRef(path=manifest)]
        seen: set[str] = set()
        for dep_str in raw_deps[name]:
            dep_name = dep_canonical_name(dep_str)
            if dep_name in paths and dep_name != name and dep_name not in seen:
                if requirement_version_span(dep_str) is None:
                    continue
                refs.append(VersionedFileRef(path=manifest, dependency=dep_name))
                seen.add(dep_name)
        changelog = f"{rel}/CHANGELOG.md"
        packages[name] = PackageConfig(
            versioned_files=refs,
            changelog=changelog if (root / changelog).exists() else None,
        )
        deps = f" → [{', '.join(sorted(seen))}]" if seen else ""
        logger.info(f"Discovered {name} ({rel}){deps}")
    return WorkspaceConfig(packages=packages)


def load_config(root: Path) -> WorkspaceConfig:
    """Load the workspace configuration rooted at ``root``.

    Raises:
        ConfigError: If no configuration is found or it is invalid.
    """
    config_path = root / CONFIG_FILE
    if config_path.exists():
        return parse_config(parse_toml(read_text(config_path), CONFIG_FILE), CONFIG_FILE)

    pyproject_path = root / PYPROJECT
    if not pyproject_path.exists():
        raise ConfigError(f"No {CONFIG_FILE} or {PYPROJECT} found in {root}")
    doc = parse_toml(read_text(pyproject_path), PYPROJECT)
    tool = doc.get("tool", {})
    if "bumpwright" in tool:
        return parse_config(tool["bumpwright"], f"{PYPROJECT} [tool.bumpwright]")
    if "workspace" in tool.get("uv", {}):
        return discover_uv_workspace(root, doc)
    raise ConfigError(f"No [tool.bumpwright] table or uv workspace in {PYPROJECT}")
