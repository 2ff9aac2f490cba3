"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit

CARGO_TOML = """\
[package]
name = "my-crate"  # the crate
version = "1.2.3"
edition = "2021"

[dependencies]
serde = { version = "1.0", features = ["derive"] }
"""

CHANGELOG = """\
# Changelog

All notable changes.

## 1.2.3 (2024-01-01)

### Fixes

- Old fix
"""


@pytest.fixture
def cargo_toml() -> str:
    return CARGO_TOML


@pytest.fixture
def changelog() -> str:
    return CHANGELOG


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0"]

[tool.uv.workspace]
members = ["packages/*", "libs/*"]
"""
    return tomlkit.parse(content)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A single-package Rust workspace with a pending feature change file."""
    (tmp_path / "bumpwright.toml").write_text(
        '[package]\nversioned_files = ["Cargo.toml"]\nchangelog = "CHANGELOG.md"\n'
    )
    (tmp_path / "Cargo.toml").write_text(CARGO_TOML)
    (tmp_path / "CHANGELOG.md").write_text(CHANGELOG)
    changeset = tmp_path / ".changeset"
    changeset.mkdir()
    (changeset / "frozen_flag.md").write_text("---\ndefault: minor\n---\n\n# Add a frozen flag\n")
    return tmp_path


@pytest.fixture
def monorepo(tmp_path: Path) -> Path:
    """Two crates where `app` depends on `core`, sharing one Cargo.lock."""
    (tmp_path / "bumpwright.toml").write_text(
        """\
[packages.core]
versioned_files = ["core/Cargo.toml", "Cargo.lock"]
changelog = "core/CHANGELOG.md"
scopes = ["core"]

[packages.app]
versioned_files = [
    "app/Cargo.toml",
    "Cargo.lock",
    { path = "app/Cargo.toml", dependency = "core" },
]
scopes = ["app"]
"""
    )
    (tmp_path / "core").mkdir()
    (tmp_path / "core" / "Cargo.toml").write_text(
        '[package]\nname = "core"\nversion = "1.0.0"\n'
    )
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "Cargo.toml").write_text(
        """\
[package]
name = "app"
version = "2.0.0"

[dependencies]
core = { path = "../core", version = "1.0.0" }
"""
    )
    (tmp_path / "Cargo.lock").write_text(
        """\
version = 3

[[package]]
name = "app"
version = "2.0.0"
dependencies = ["core"]

[[package]]
name = "core"
version = "1.0.0"
"""
    )
    return tmp_path
