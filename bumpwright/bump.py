"""Reduce a set of change records to a single bump severity."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import semver

from .models import BumpType, ChangeKind, ChangeRecord

logger = logging.getLogger(__name__)

_SEVERITY = {
    ChangeKind.BREAKING: BumpType.MAJOR,
    ChangeKind.FEATURE: BumpType.MINOR,
    ChangeKind.FIX: BumpType.PATCH,
    ChangeKind.CUSTOM: BumpType.PATCH,
}


def severity(record: ChangeRecord) -> BumpType:
    return _SEVERITY[record.kind]


def calculate_bump(records: Iterable[ChangeRecord], current: semver.Version) -> BumpType:
    """Compute the bump implied by a package's change records.

    The result is the most severe bump present, so the order of records does
    not matter. Versions below 1.0.0 shift every bump down one step: breaking
    changes bump the minor component and features the patch component. The
    major component only leaves 0 by an explicit override.

    Args:
        records: Every change record that applies to the package.
        current: The package's current version.
    """
    bump = BumpType.NONE
    for record in records:
        implied = severity(record)
        logger.debug(f"{record.source or record.summary!r} implies {implied!s}")
        bump = max(bump, implied)
    if current.major == 0 and bump in (BumpType.MAJOR, BumpType.MINOR):
        demoted = BumpType(bump - 1)
        logger.debug(f"Major component of {current} is 0, using {demoted!s} instead of {bump!s}")
        return demoted
    return bump
