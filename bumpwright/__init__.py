"""bumpwright: compute the next version of every package in a workspace and
write it, plus a changelog entry, into all the files that carry it."""

from .errors import ReleaseError
from .models import BumpType, ChangeKind, ChangeRecord, Format, ReleasePlan, WorkspaceConfig
from .pipeline import plan_release, run_release

__all__ = [
    "BumpType",
    "ChangeKind",
    "ChangeRecord",
    "Format",
    "ReleaseError",
    "ReleasePlan",
    "WorkspaceConfig",
    "plan_release",
    "run_release",
]
