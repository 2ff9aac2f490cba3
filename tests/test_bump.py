"""Tests for bumpwright.bump."""

from __future__ import annotations

from itertools import permutations

import pytest
import semver

from bumpwright.bump import calculate_bump
from bumpwright.models import BumpType, ChangeKind, ChangeRecord, Provenance
from bumpwright.versions import resolve_version


def record(kind: ChangeKind, summary: str = "change") -> ChangeRecord:
    return ChangeRecord(
        kind=kind,
        summary=summary,
        label="note" if kind is ChangeKind.CUSTOM else None,
        provenance=Provenance.COMMIT,
    )


class TestCalculateBump:
    def test_empty_is_none(self) -> None:
        assert calculate_bump([], semver.Version.parse("1.2.3")) is BumpType.NONE

    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (ChangeKind.BREAKING, BumpType.MAJOR),
            (ChangeKind.FEATURE, BumpType.MINOR),
            (ChangeKind.FIX, BumpType.PATCH),
            (ChangeKind.CUSTOM, BumpType.PATCH),
        ],
    )
    def test_single_record(self, kind: ChangeKind, expected: BumpType) -> None:
        assert calculate_bump([record(kind)], semver.Version.parse("1.2.3")) is expected

    def test_most_severe_wins(self) -> None:
        records = [record(ChangeKind.FIX), record(ChangeKind.FEATURE), record(ChangeKind.FIX)]
        assert calculate_bump(records, semver.Version.parse("1.2.3")) is BumpType.MINOR

    def test_order_independent(self) -> None:
        records = [
            record(ChangeKind.FIX, "a"),
            record(ChangeKind.CUSTOM, "b"),
            record(ChangeKind.FEATURE, "c"),
            record(ChangeKind.BREAKING, "d"),
        ]
        for current in ("0.4.2", "1.2.3"):
            version = semver.Version.parse(current)
            results = {calculate_bump(p, version) for p in permutations(records)}
            assert len(results) == 1

    def test_breaking_before_1_0_is_minor(self) -> None:
        bump = calculate_bump([record(ChangeKind.BREAKING)], semver.Version.parse("0.4.2"))
        assert bump is BumpType.MINOR

    def test_feature_before_1_0_is_patch(self) -> None:
        bump = calculate_bump([record(ChangeKind.FEATURE)], semver.Version.parse("0.4.2"))
        assert bump is BumpType.PATCH

    def test_fix_before_1_0_stays_patch(self) -> None:
        bump = calculate_bump([record(ChangeKind.FIX)], semver.Version.parse("0.4.2"))
        assert bump is BumpType.PATCH

    def test_pre_1_0_feature_resolves_to_next_patch(self) -> None:
        current = semver.Version.parse("0.4.2")
        bump = calculate_bump([record(ChangeKind.FEATURE), record(ChangeKind.FIX)], current)
        assert str(resolve_version(current, bump)) == "0.4.3"

    def test_pre_1_0_breaking_resolves_to_next_minor(self) -> None:
        current = semver.Version.parse("0.4.2")
        bump = calculate_bump([record(ChangeKind.BREAKING)], current)
        assert str(resolve_version(current, bump)) == "0.5.0"
