"""CLI entry point for bumpwright."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

import click

from bumpwright.config import CONFIG_FILE, PYPROJECT, load_config, upgrade_config
from bumpwright.errors import ReleaseError
from bumpwright.files import read_text
from bumpwright.git import commit_messages, find_last_tag, release_tag
from bumpwright.models import WorkspaceConfig
from bumpwright.pipeline import run_release
from bumpwright.toml import parse_toml


def _parse_overrides(values: tuple[str, ...], config: WorkspaceConfig) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for value in values:
        name, sep, version = value.rpartition("=")
        if not sep:
            if len(config.packages) != 1:
                raise click.BadParameter(
                    f"{value!r}: use PACKAGE=VERSION in a multi-package workspace",
                    param_hint="--override",
                )
            name = next(iter(config.packages))
        overrides[name] = version
    return overrides


def _collect_commits(
    root: Path, config: WorkspaceConfig, since: str | None
) -> tuple[list[str], dict[str, list[str]]]:
    """Read commit messages since the last release.

    A single package releases from the last ``v*`` tag. In a multi-package
    workspace each package reads from its own last ``{name}/v*`` tag.
    """
    if config.ignore_conventional_commits:
        return [], {}
    if since is not None or len(config.packages) == 1:
        return commit_messages(root, since or find_last_tag(root)), {}
    return [], {
        name: commit_messages(root, find_last_tag(root, f"{name}/v")) for name in config.packages
    }


@click.group()
@click.version_option()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output.")
@click.pass_context
def cli(ctx: click.Context, root: Path, verbose: bool) -> None:
    """Version bumps, changelogs and dependency updates from commits and change files."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    ctx.obj = root


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--prerelease", metavar="LABEL", help="Release X.Y.Z-LABEL.N versions.")
@click.option(
    "--override",
    "overrides",
    multiple=True,
    metavar="[PACKAGE=]VERSION",
    help="Release exactly this version. Repeatable.",
)
@click.option(
    "--since",
    metavar="REF",
    help="Read commits after REF (default: last v* tag, or PACKAGE/v* per package).",
)
@click.pass_obj
def release(
    root: Path,
    dry_run: bool,
    prerelease: str | None,
    overrides: tuple[str, ...],
    since: str | None,
) -> None:
    """Bump versions and changelogs of every package with pending changes."""
    try:
        config = load_config(root)
        commits, package_commits = _collect_commits(root, config, since)
        plan = run_release(
            root,
            config,
            commits=commits,
            package_commits=package_commits,
            prerelease=prerelease,
            overrides=_parse_overrides(overrides, config),
            dry_run=dry_run,
        )
    except ReleaseError as e:
        raise click.ClickException(str(e)) from e
    except subprocess.CalledProcessError as e:
        raise click.ClickException(f"git failed: {(e.stderr or '').strip() or e}") from e

    if plan.nothing_to_release:
        click.echo("Nothing to release")
        return
    single = len(config.packages) == 1
    for summary in plan.summaries:
        if summary.changed:
            tag = release_tag(summary.name, summary.new, single=single)
            click.echo(f"{summary.name}: {summary.old} → {summary.new} ({tag})")


@cli.command("upgrade-config")
@click.pass_obj
def upgrade(root: Path) -> None:
    """Rewrite deprecated settings in the configuration file."""
    path = root / CONFIG_FILE
    if not path.exists():
        path = root / PYPROJECT
    if not path.exists():
        raise click.ClickException(f"No {CONFIG_FILE} or {PYPROJECT} found in {root}")
    try:
        doc = parse_toml(read_text(path), path.name)
    except ReleaseError as e:
        raise click.ClickException(str(e)) from e
    table = doc if path.name == CONFIG_FILE else doc.get("tool", {}).get("bumpwright")
    if table is None:
        raise click.ClickException(f"No [tool.bumpwright] table in {PYPROJECT}")

    applied = upgrade_config(table)
    if not applied:
        click.echo("Configuration is up to date")
        return
    path.write_bytes(doc.as_string().encode("utf-8"))
    for name in applied:
        click.echo(f"Applied {name}")
