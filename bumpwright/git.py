"""Git helpers for collecting the commits of a release.

Thin wrappers around subprocess calls; the release core itself only sees
the resulting commit messages.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def git(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "log", "--format=%B").
        cwd: Repository to run in, defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=check)
    return result.stdout.strip()


def release_tag(package: str, version: str, *, single: bool) -> str:
    """Tag name for a released version: ``v1.2.3`` or ``core/v1.2.3``."""
    return f"v{version}" if single else f"{package}/v{version}"


def find_last_tag(root: Path, prefix: str = "v") -> str | None:
    """Find the most recent release tag starting with ``prefix``.

    Returns None if no release tags exist yet.
    """
    tags = git("tag", "--list", f"{prefix}*", "--sort=-v:refname", cwd=root, check=False)
    tag = tags.splitlines()[0] if tags else None
    logger.info(f"Last release tag: {tag or '<none, using all commits>'}")
    return tag


def commit_messages(root: Path, since: str | None = None) -> list[str]:
    """Full messages of the commits after ``since`` (all commits if None), newest first."""
    revision = f"{since}..HEAD" if since else "HEAD"
    output = git("log", "--format=%B%x00", revision, cwd=root)
    messages = [message.strip() for message in output.split("\0")]
    messages = [message for message in messages if message]
    logger.debug(f"Found {len(messages)} commits in {revision}")
    return messages
