"""Tests for bumpwright.pipeline."""

from __future__ import annotations

import hashlib
import os
import stat
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from bumpwright.config import load_config
from bumpwright.errors import (
    ConfigError,
    InvalidLabel,
    ParseError,
    PatternNotFound,
    RangeExcludesVersion,
    VersionDowngrade,
)
from bumpwright.models import BumpType, ChangeFile, PackageSummary, WorkspaceConfig
from bumpwright.pipeline import plan_release, run_release

TODAY = date(2026, 10, 17)

FEATURE = ChangeFile(
    path=".changeset/feature.md",
    content="---\ndefault: minor\n---\n\n# Add a frozen flag\n",
)


def single_package(*refs: object, changelog: str | None = None) -> WorkspaceConfig:
    return WorkspaceConfig.model_validate(
        {"packages": {"default": {"versioned_files": list(refs), "changelog": changelog}}}
    )


def snapshot(root: Path) -> dict[str, str]:
    """Hash every file under root."""
    return {
        path.relative_to(root).as_posix(): hashlib.sha256(path.read_bytes()).hexdigest()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


class TestPlanRelease:
    """Tests for plan_release()."""

    def test_feature_change_file(self, cargo_toml: str, changelog: str) -> None:
        """A feature change file bumps the minor version and adds a changelog section."""
        config = single_package("Cargo.toml", changelog="CHANGELOG.md")
        files = {"Cargo.toml": cargo_toml, "CHANGELOG.md": changelog}

        plan = plan_release(config, files, change_files=[FEATURE], today=TODAY)

        writes = {w.path: w.content for w in plan.writes}
        assert list(writes) == ["Cargo.toml", "CHANGELOG.md"]
        assert writes["Cargo.toml"] == cargo_toml.replace('version = "1.2.3"', 'version = "1.3.0"')
        assert writes["CHANGELOG.md"] == (
            "# Changelog\n"
            "\n"
            "All notable changes.\n"
            "\n"
            "## 1.3.0 (2026-10-17)\n"
            "\n"
            "### Features\n"
            "\n"
            "- Add a frozen flag\n"
            "\n"
            "## 1.2.3 (2024-01-01)\n"
            "\n"
            "### Fixes\n"
            "\n"
            "- Old fix\n"
        )
        assert plan.removals == [".changeset/feature.md"]
        assert plan.summaries == [
            PackageSummary(name="default", old="1.2.3", new="1.3.0", bump=BumpType.MINOR)
        ]

    def test_breaking_before_1_0(self) -> None:
        """A breaking commit on a 0.x package bumps the minor version."""
        config = single_package("Cargo.toml")
        files = {"Cargo.toml": '[package]\nname = "x"\nversion = "0.4.2"\n'}

        plan = plan_release(config, files, commits=["feat!: drop the legacy API"])

        assert plan.writes[0].content == '[package]\nname = "x"\nversion = "0.5.0"\n'
        assert plan.summaries[0].bump is BumpType.MINOR

    def test_text_file_with_two_patterns(self, cargo_toml: str) -> None:
        """Every pattern of a text file gets the new version."""
        readme = "Install my-crate 1.2.3.\n\n```toml\nmy-crate = \"1.2.3\"\n```\n"
        config = single_package(
            "Cargo.toml",
            {
                "path": "README.md",
                "patterns": [r"Install my-crate (?<version>\d+\.\d+\.\d+)", r'my-crate = "(?<version>[^"]+)"'],
            },
        )
        files = {"Cargo.toml": cargo_toml, "README.md": readme}

        plan = plan_release(config, files, commits=["fix: handle empty input"])

        writes = {w.path: w.content for w in plan.writes}
        assert writes["README.md"] == readme.replace("1.2.3", "1.2.4")

    def test_invalid_label_rejected_first(self) -> None:
        """A bad label fails before any file is looked at."""
        with pytest.raises(InvalidLabel):
            plan_release(single_package("Cargo.toml"), {}, prerelease="v2")

    def test_prerelease_keeps_change_files(self, cargo_toml: str) -> None:
        config = single_package("Cargo.toml")

        plan = plan_release(config, {"Cargo.toml": cargo_toml}, change_files=[FEATURE], prerelease="rc")

        assert plan.summaries[0].new == "1.3.0-rc.0"
        assert 'version = "1.3.0-rc.0"' in plan.writes[0].content
        assert plan.removals == []

    def test_nothing_to_release(self, cargo_toml: str) -> None:
        plan = plan_release(single_package("Cargo.toml"), {"Cargo.toml": cargo_toml}, commits=["chore: tidy"])

        assert plan.nothing_to_release
        assert plan.writes == []
        assert plan.removals == []
        assert plan.summaries == [PackageSummary(name="default", old="1.2.3", new="1.2.3")]

    def test_ignore_conventional_commits(self, cargo_toml: str) -> None:
        config = single_package("Cargo.toml")
        config.ignore_conventional_commits = True

        plan = plan_release(config, {"Cargo.toml": cargo_toml}, commits=["feat: ignored"])

        assert plan.nothing_to_release

    def test_commit_and_change_file_records_combine(self, cargo_toml: str, changelog: str) -> None:
        config = single_package("Cargo.toml", changelog="CHANGELOG.md")
        files = {"Cargo.toml": cargo_toml, "CHANGELOG.md": changelog}

        plan = plan_release(
            config,
            files,
            commits=["fix: handle empty input"],
            change_files=[FEATURE],
            today=TODAY,
        )

        section = {w.path: w.content for w in plan.writes}["CHANGELOG.md"]
        assert "### Features\n\n- Add a frozen flag\n\n### Fixes\n\n- handle empty input\n\n## 1.2.3" in section

    def test_missing_changelog_is_created(self, cargo_toml: str) -> None:
        config = single_package("Cargo.toml", changelog="CHANGELOG.md")

        plan = plan_release(config, {"Cargo.toml": cargo_toml}, commits=["fix: a fix"], today=TODAY)

        writes = {w.path: w.content for w in plan.writes}
        assert writes["CHANGELOG.md"] == "## 1.2.4 (2026-10-17)\n\n### Fixes\n\n- a fix\n"

    def test_override(self, cargo_toml: str) -> None:
        plan = plan_release(
            single_package("Cargo.toml"),
            {"Cargo.toml": cargo_toml},
            overrides={"default": "2.0.0"},
        )

        assert plan.summaries[0].new == "2.0.0"

    def test_override_downgrade(self, cargo_toml: str) -> None:
        with pytest.raises(VersionDowngrade):
            plan_release(
                single_package("Cargo.toml"),
                {"Cargo.toml": cargo_toml},
                overrides={"default": "1.2.3"},
            )

    def test_override_unknown_package(self, cargo_toml: str) -> None:
        with pytest.raises(ConfigError, match="unknown"):
            plan_release(
                single_package("Cargo.toml"),
                {"Cargo.toml": cargo_toml},
                overrides={"other": "2.0.0"},
            )

    def test_change_file_unknown_package(self, cargo_toml: str) -> None:
        stray = ChangeFile(path=".changeset/stray.md", content="---\nother: patch\n---\n\n# Fix\n")
        config = WorkspaceConfig.model_validate(
            {"packages": {"mine": {"versioned_files": ["Cargo.toml"]}}}
        )

        with pytest.raises(ParseError) as exc:
            plan_release(config, {"Cargo.toml": cargo_toml}, change_files=[stray])
        assert exc.value.path == ".changeset/stray.md"


class TestPropagation:
    """A released package's new version reaches the packages depending on it."""

    @pytest.fixture
    def files(self, monorepo: Path) -> dict[str, str]:
        return {
            path: (monorepo / path).read_text()
            for path in ("core/Cargo.toml", "app/Cargo.toml", "Cargo.lock")
        }

    @pytest.fixture
    def config(self, monorepo: Path) -> WorkspaceConfig:
        return load_config(monorepo)

    def test_dependency_follows_without_release(
        self, config: WorkspaceConfig, files: dict[str, str]
    ) -> None:
        plan = plan_release(config, files, commits=["fix(core): handle empty input"], today=TODAY)

        writes = {w.path: w.content for w in plan.writes}
        assert list(writes) == ["core/Cargo.toml", "Cargo.lock", "core/CHANGELOG.md", "app/Cargo.toml"]
        assert 'version = "1.0.1"' in writes["core/Cargo.toml"]
        assert writes["app/Cargo.toml"] == files["app/Cargo.toml"].replace(
            'version = "1.0.0" }', 'version = "1.0.1" }'
        )
        assert writes["Cargo.lock"] == files["Cargo.lock"].replace(
            'name = "core"\nversion = "1.0.0"', 'name = "core"\nversion = "1.0.1"'
        )
        summaries = {s.name: s for s in plan.summaries}
        assert summaries["core"].new == "1.0.1"
        assert not summaries["app"].changed

    def test_both_released(self, config: WorkspaceConfig, files: dict[str, str]) -> None:
        plan = plan_release(
            config,
            files,
            commits=["feat(core): add parser", "fix(app): show errors"],
            today=TODAY,
        )

        writes = {w.path: w.content for w in plan.writes}
        assert 'name = "app"\nversion = "2.0.1"' in writes["app/Cargo.toml"]
        assert 'version = "1.1.0" }' in writes["app/Cargo.toml"]
        assert 'name = "app"\nversion = "2.0.1"' in writes["Cargo.lock"]
        assert 'name = "core"\nversion = "1.1.0"' in writes["Cargo.lock"]

    def test_unscoped_commit_applies_everywhere(
        self, config: WorkspaceConfig, files: dict[str, str]
    ) -> None:
        plan = plan_release(config, files, commits=["fix: shared fix"], today=TODAY)

        assert {s.name: s.new for s in plan.summaries} == {"core": "1.0.1", "app": "2.0.1"}

    def test_major_release_outside_dependency_range(
        self, config: WorkspaceConfig, files: dict[str, str]
    ) -> None:
        """A range whose upper bound excludes the new version is never rewritten."""
        files["app/Cargo.toml"] = files["app/Cargo.toml"].replace(
            'version = "1.0.0" }', 'version = ">=1.0.0, <2" }'
        )

        with pytest.raises(RangeExcludesVersion) as exc:
            plan_release(config, files, overrides={"core": "2.0.0"}, today=TODAY)
        assert exc.value.path == "app/Cargo.toml"
        assert exc.value.requirement == ">=2.0.0, <2"

    def test_package_commits_replace_shared_commits(
        self, config: WorkspaceConfig, files: dict[str, str]
    ) -> None:
        """Commits already released by core are not read again for core."""
        plan = plan_release(
            config,
            files,
            commits=["feat: shared feature"],
            package_commits={"core": [], "app": ["fix: since app/v2.0.0"]},
            today=TODAY,
        )

        assert {s.name: s.new for s in plan.summaries} == {"core": "1.0.0", "app": "2.0.1"}

    def test_package_commits_fall_back_to_shared(
        self, config: WorkspaceConfig, files: dict[str, str]
    ) -> None:
        plan = plan_release(
            config,
            files,
            commits=["fix: shared fix"],
            package_commits={"app": []},
            today=TODAY,
        )

        assert {s.name: s.new for s in plan.summaries} == {"core": "1.0.1", "app": "2.0.0"}


class TestRunRelease:
    """Tests for run_release() on a workspace on disk."""

    def test_golden_path(self, workspace: Path) -> None:
        plan = run_release(workspace, today=TODAY)

        assert plan.summaries[0].new == "1.3.0"
        assert 'version = "1.3.0"' in (workspace / "Cargo.toml").read_text()
        assert "## 1.3.0 (2026-10-17)" in (workspace / "CHANGELOG.md").read_text()
        assert not (workspace / ".changeset" / "frozen_flag.md").exists()
        assert (workspace / ".changeset").is_dir()

    def test_dry_run_writes_nothing(self, workspace: Path) -> None:
        before = snapshot(workspace)

        plan = run_release(workspace, dry_run=True, today=TODAY)

        assert [w.path for w in plan.writes] == ["Cargo.toml", "CHANGELOG.md"]
        assert plan.removals == [".changeset/frozen_flag.md"]
        assert snapshot(workspace) == before

    def test_nothing_to_release(self, workspace: Path) -> None:
        (workspace / ".changeset" / "frozen_flag.md").unlink()
        before = snapshot(workspace)

        plan = run_release(workspace, commits=["docs: typo"])

        assert plan.nothing_to_release
        assert snapshot(workspace) == before

    def test_keeps_crlf(self, workspace: Path) -> None:
        cargo = workspace / "Cargo.toml"
        cargo.write_bytes(cargo.read_bytes().replace(b"\n", b"\r\n"))

        run_release(workspace, today=TODAY)

        content = cargo.read_bytes()
        assert b'version = "1.3.0"\r\n' in content
        assert b"\n" not in content.replace(b"\r\n", b"")

    def test_keeps_file_mode(self, workspace: Path) -> None:
        cargo = workspace / "Cargo.toml"
        cargo.chmod(0o755)

        run_release(workspace, today=TODAY)

        assert 'version = "1.3.0"' in cargo.read_text()
        assert stat.S_IMODE(cargo.stat().st_mode) == 0o755

    def test_new_file_gets_default_mode(self, workspace: Path) -> None:
        (workspace / "CHANGELOG.md").unlink()
        reference = workspace / "reference.txt"
        reference.touch()

        run_release(workspace, today=TODAY)

        changelog = workspace / "CHANGELOG.md"
        assert changelog.exists()
        assert stat.S_IMODE(changelog.stat().st_mode) == stat.S_IMODE(reference.stat().st_mode)

    def test_failing_package_changes_nothing(self, monorepo: Path) -> None:
        """If one package fails, no file is touched, not even other packages'."""
        config = monorepo / "bumpwright.toml"
        config.write_text(
            config.read_text().replace(
                '{ path = "app/Cargo.toml", dependency = "core" },',
                '{ path = "app/Cargo.toml", dependency = "core" },\n'
                '    { path = "app/README.md", patterns = ["app (?<version>[0-9.]+)"] },',
            )
        )
        (monorepo / "app" / "README.md").write_text("No version here\n")
        before = snapshot(monorepo)

        with pytest.raises(PatternNotFound):
            run_release(monorepo, commits=["fix: shared fix"], today=TODAY)
        assert snapshot(monorepo) == before

    def test_failed_write_restores_originals(self, monorepo: Path) -> None:
        before = snapshot(monorepo)
        real_replace = os.replace
        calls = []

        def flaky_replace(src: str, dst: str) -> None:
            calls.append(dst)
            if len(calls) == 2:
                raise OSError("disk full")
            real_replace(src, dst)

        with patch("bumpwright.files.os.replace", side_effect=flaky_replace):
            with pytest.raises(OSError, match="disk full"):
                run_release(monorepo, commits=["fix(core): handle empty input"], today=TODAY)

        assert len(calls) == 2
        assert snapshot(monorepo) == before
        assert not list(monorepo.rglob("*.tmp"))
