"""Unit tests for branch resolution and promotion policy."""

from __future__ import annotations

import pytest

from stageci.branch import Branch, BranchPolicy, promote_nightly_task, resolve_branch, trigger_hour


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("refs/heads/release/1.0", Branch.RELEASE),
        ("release", Branch.RELEASE),
        ("refs/heads/master", Branch.MASTER),
        ("refs/heads/feature/x", Branch.MASTER),
        ("", Branch.MASTER),
        (None, Branch.MASTER),
        ("%teamcity.build.branch%", Branch.MASTER),
    ],
)
def test_resolve_branch(raw, expected) -> None:
    assert resolve_branch(raw) is expected


def test_substring_match_is_kept_as_is() -> None:
    assert resolve_branch("feature/master-cleanup") is Branch.MASTER
    # "master" wins over "release"
    assert resolve_branch("release/master-backport") is Branch.MASTER


def test_trigger_hours_are_staggered() -> None:
    assert trigger_hour(Branch.MASTER) == 0
    assert trigger_hour(Branch.RELEASE) == 1
    assert trigger_hour("unknown") == 0


def test_nightly_promotion_for_release() -> None:
    promotion = BranchPolicy.from_parameter("refs/heads/release").nightly_promotion()

    assert promotion.branch is Branch.RELEASE
    assert promotion.trigger_hour == 1
    assert promotion.task == "promoteReleaseNightly"
    assert promotion.build_type_id == "Promotion_ReleaseNightly"
    assert promotion.name == "Nightly Snapshot"
    assert "'release'" in promotion.description
    assert promotion.trigger_stage == "ReadyforNightly"


def test_promote_nightly_task_for_master() -> None:
    assert promote_nightly_task(Branch.MASTER) == "promoteNightly"
    assert Branch.MASTER.display_name == "Master"
