"""Data models for bumpwright.

These Pydantic models represent the core data structures that flow through
the release pipeline: change records going in, write actions and summaries
coming out.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChangeKind(str, Enum):
    BREAKING = "breaking"
    FEATURE = "feature"
    FIX = "fix"
    CUSTOM = "custom"


class Provenance(str, Enum):
    COMMIT = "commit"
    CHANGE_FILE = "change_file"


class BumpType(IntEnum):
    """Minimum version increment implied by a set of changes.

    Ordered so that ``max()`` over a collection picks the most severe bump.
    """

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    def __str__(self) -> str:
        return self.name.lower()


class Format(str, Enum):
    """Every file format bumpwright knows how to patch."""

    CARGO = "cargo"
    CARGO_LOCK = "cargo_lock"
    PYPROJECT = "pyproject"
    GLEAM = "gleam"
    PACKAGE_JSON = "package_json"
    DENO_JSON = "deno_json"
    TAURI_CONF = "tauri_conf"
    PUBSPEC = "pubspec"
    MAVEN_POM = "maven_pom"
    TEXT = "text"


class ChangeRecord(BaseModel):
    """A normalized unit of "what changed".

    Attributes:
        kind: Severity class of the change.
        summary: One-line description, used as the changelog bullet.
        details: Optional multi-line body; records with details are rendered
                 as their own sub-heading in the changelog.
        label: Custom change type or commit footer, only set for CUSTOM.
        scope: Package (change files) or conventional-commit scope.
        provenance: Whether this came from a commit or a change file.
        source: Original commit header or change file path, for diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    summary: str
    details: str | None = None
    label: str | None = None
    scope: str | None = None
    provenance: Provenance
    source: str = ""

    @model_validator(mode="after")
    def _label_only_for_custom(self) -> ChangeRecord:
        if (self.kind is ChangeKind.CUSTOM) != (self.label is not None):
            raise ValueError("label must be set for custom changes and only for them")
        return self


class ChangeFile(BaseModel):
    """A change file as supplied by the caller: its path and raw text."""

    path: str
    content: str


class VersionedFileRef(BaseModel):
    """A file whose content must reflect a package's version.

    Attributes:
        path: Path relative to the workspace root.
        format: Explicit format; inferred from the file name when omitted.
        dependency: Name of the dependency entry to update instead of the
                    file's own version. For lock files this defaults to the
                    name declared by the package's primary manifest.
        patterns: Regexes with a ``version`` group; selects the text adapter.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    format: Format | None = None
    dependency: str | None = None
    patterns: tuple[str, ...] | None = None

    @property
    def file_name(self) -> str:
        return PurePosixPath(self.path).name


class ChangelogSection(BaseModel):
    """An extra changelog section fed by custom change types or footers."""

    name: str
    types: list[str] = Field(default_factory=list)
    footers: list[str] = Field(default_factory=list)


class PackageConfig(BaseModel):
    """Configuration of a single release unit."""

    versioned_files: list[VersionedFileRef] = Field(default_factory=list)
    changelog: str | None = None
    scopes: list[str] | None = None
    extra_changelog_sections: list[ChangelogSection] = Field(default_factory=list)

    @field_validator("versioned_files", mode="before")
    @classmethod
    def _expand_paths(cls, value: object) -> object:
        # A bare string is shorthand for {path = "..."}
        if isinstance(value, list):
            return [{"path": item} if isinstance(item, str) else item for item in value]
        return value


class WorkspaceConfig(BaseModel):
    """All packages of the workspace plus workspace-wide switches."""

    packages: dict[str, PackageConfig] = Field(default_factory=dict)
    ignore_conventional_commits: bool = False


class WriteAction(BaseModel):
    """A planned file write, applied only during commit."""

    path: str
    content: str


class PackageSummary(BaseModel):
    """Records a version change for a package.

    Used by downstream steps for commit messages, tags and release notes.

    Attributes:
        name: Package name from the configuration.
        old: The version before the run.
        new: The version after the run (equal to ``old`` when not bumped).
        bump: The bump that was applied.
    """

    name: str
    old: str
    new: str
    bump: BumpType = BumpType.NONE

    @property
    def changed(self) -> bool:
        return self.old != self.new


class ReleasePlan(BaseModel):
    """Everything a run would do, computed before anything is written."""

    writes: list[WriteAction] = Field(default_factory=list)
    removals: list[str] = Field(default_factory=list)
    summaries: list[PackageSummary] = Field(default_factory=list)

    @property
    def nothing_to_release(self) -> bool:
        return not any(summary.changed for summary in self.summaries)
