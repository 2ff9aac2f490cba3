"""Reading the workspace from disk and applying a release plan to it.

Files are read and written as UTF-8 bytes so line endings survive
untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path

from .models import ChangeFile, ReleasePlan

logger = logging.getLogger(__name__)

CHANGESET_DIR = ".changeset"


def read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8")


def read_files(root: Path, paths: Iterable[str]) -> dict[str, str]:
    """Read every path (relative to root) that exists.

    Missing files are left out; the updater reports them if they're needed.
    """
    files: dict[str, str] = {}
    for rel in paths:
        path = root / rel
        if path.is_file():
            files[rel] = read_text(path)
    return files


def read_change_files(root: Path) -> list[ChangeFile]:
    """Read ``.changeset/*.md`` in name order (README.md excluded)."""
    directory = root / CHANGESET_DIR
    if not directory.is_dir():
        return []
    return [
        ChangeFile(path=path.relative_to(root).as_posix(), content=read_text(path))
        for path in sorted(directory.glob("*.md"))
        if path.name.lower() != "readme.md"
    ]


def _default_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _stage(target: Path, content: str) -> Path:
    """Write content next to target, with the mode target has or would get."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    with os.fdopen(fd, "wb") as f:
        f.write(content.encode("utf-8"))
    # mkstemp creates 0600 files
    if target.exists():
        shutil.copymode(target, tmp)
    else:
        os.chmod(tmp, _default_mode())
    return Path(tmp)


def commit_plan(root: Path, plan: ReleasePlan) -> None:
    """Apply every write of a plan, or none of them.

    Each write is first staged in a temporary file next to its target, then
    moved into place. If anything fails, files already replaced get their
    original content back and the error propagates. Change files are only
    removed once every write has landed.
    """
    originals: dict[Path, bytes | None] = {}
    staged: list[tuple[Path, Path]] = []
    replaced: list[Path] = []
    try:
        for action in plan.writes:
            target = root / action.path
            originals[target] = target.read_bytes() if target.exists() else None
            staged.append((_stage(target, action.content), target))
        for tmp, target in staged:
            os.replace(tmp, target)
            replaced.append(target)
    except Exception:
        logger.error(f"Writing the release failed, restoring {len(replaced)} files")
        for target in replaced:
            original = originals[target]
            if original is None:
                target.unlink(missing_ok=True)
            else:
                target.write_bytes(original)
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise

    for action in plan.writes:
        logger.info(f"Wrote {action.path}")
    for rel in plan.removals:
        (root / rel).unlink(missing_ok=True)
        logger.info(f"Removed {rel}")
