# branch.py
# Branch resolution and the nightly promotion schedule derived from it.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Branch(str, Enum):
    MASTER = "master"
    RELEASE = "release"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


def resolve_branch(raw: Optional[str]) -> Branch:
    """
    Classify a raw branch parameter (e.g. "refs/heads/release/1.0").

    Plain substring match, "master" checked before "release". Anything else,
    including an empty or unexpanded placeholder parameter, falls back to
    Master. Note that "feature/master-cleanup" therefore resolves to Master.
    """
    branch = raw or ""
    if "master" in branch:
        return Branch.MASTER
    if "release" in branch:
        return Branch.RELEASE
    return Branch.MASTER


# Staggered so two promotion jobs never hold the release resources at once
_TRIGGER_HOURS = {
    Branch.MASTER: 0,
    Branch.RELEASE: 1,
}

_NIGHTLY_TASKS = {
    Branch.MASTER: "promoteNightly",
    Branch.RELEASE: "promoteReleaseNightly",
}

NIGHTLY_TRIGGER_STAGE = "ReadyforNightly"


def trigger_hour(branch) -> int:
    return _TRIGGER_HOURS.get(branch, 0)


def promote_nightly_task(branch: Branch) -> str:
    return _NIGHTLY_TASKS[branch]


@dataclass(frozen=True)
class PromotionTask:
    """A scheduled promotion; the CI server's scheduler fires it, not us."""
    branch: Branch
    trigger_hour: int
    task: str
    build_type_id: str
    name: str
    description: str
    trigger_stage: str = NIGHTLY_TRIGGER_STAGE


@dataclass(frozen=True)
class BranchPolicy:
    branch: Branch

    @classmethod
    def from_parameter(cls, raw: Optional[str]) -> BranchPolicy:
        return cls(resolve_branch(raw))

    @property
    def trigger_hour(self) -> int:
        return trigger_hour(self.branch)

    def nightly_promotion(self) -> PromotionTask:
        return PromotionTask(
            branch=self.branch,
            trigger_hour=self.trigger_hour,
            task=promote_nightly_task(self.branch),
            build_type_id=f"Promotion_{self.branch.display_name}Nightly",
            name="Nightly Snapshot",
            description=(
                f"Promotes the latest successful changes on '{self.branch.value}' "
                f"from Ready for Nightly as a new nightly snapshot"
            ),
        )
