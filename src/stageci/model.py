# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Tuple


class WorkItem(NamedTuple):
    """
    A weighted unit of work handed to the partitioner.

    `subproject` is set for functional tests. An item covering a whole
    subproject carries its own subproject id as `id`.
    """
    id: str
    weight: float
    subproject: Optional[str] = None

    @property
    def covers_subproject(self) -> bool:
        return self.subproject is not None and self.id == self.subproject


@dataclass(frozen=True)
class TestClass:
    """A test class with its historical duration (None when unknown)."""
    __test__ = False  # not a pytest class

    id: str
    subproject: str
    duration: float | None = None


@dataclass(frozen=True)
class Bucket:
    """Test classes assigned to one parallel agent."""
    index: int
    items: Tuple[WorkItem, ...] = ()

    @property
    def duration(self) -> float:
        return sum(item.weight for item in self.items)

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


class GatingPredicate(str, Enum):
    ALWAYS_RUN = "always_run"
    REQUIRES_PREVIOUS_PASSED = "requires_previous_passed"
    MANUAL_TRIGGER = "manual_trigger"


class StageState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (StageState.PASSED, StageState.FAILED, StageState.SKIPPED)


# jobs share the stage lifecycle
JobState = StageState


@dataclass(frozen=True)
class Job:
    """
    A unit of a stage: either one bucket of a test spec or a fixed task.

    Bucket jobs reference their bucket by key ("<stage>/<spec id>") and index;
    the assembler resolves the reference against the partitioner output.
    """
    id: str
    name: str
    stage: str
    task: str
    bucket_key: str | None = None
    bucket_index: int | None = None

    @property
    def is_bucket(self) -> bool:
        return self.bucket_key is not None


@dataclass(frozen=True)
class Stage:
    name: str
    position: int
    gate: GatingPredicate
    jobs: Tuple[Job, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def job_ids(self) -> list[str]:
        return [j.id for j in self.jobs]
