# config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .branch import Branch
from .model import GatingPredicate


@dataclass(frozen=True)
class FunctionalTestSpec:
    """
    Functional tests of a stage, split into `bucket_count` parallel builds.

    `subprojects` restricts the subprojects manifest; empty means all.
    """
    id: str
    name: str
    task: str
    bucket_count: int
    subprojects: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PerformanceTestSpec:
    """Performance scenarios tagged with `coverage` in the performance manifest."""
    id: str
    name: str
    coverage: str
    bucket_count: int


@dataclass(frozen=True)
class TaskSpec:
    """A fixed job running the given build tasks."""
    id: str
    name: str
    tasks: Tuple[str, ...]


@dataclass(frozen=True)
class StageConfig:
    name: str
    gate: GatingPredicate = GatingPredicate.REQUIRES_PREVIOUS_PASSED
    functional: Tuple[FunctionalTestSpec, ...] = ()
    performance: Tuple[PerformanceTestSpec, ...] = ()
    tasks: Tuple[TaskSpec, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("stage must have a name")
        ids = [t.id for t in self.tasks] + [s.id for s in self.functional] + [s.id for s in self.performance]
        if len(set(ids)) != len(ids):
            dupes = sorted({i for i in ids if ids.count(i) > 1})
            raise ValueError(f"Duplicate job ids in stage '{self.name}': {dupes}")

    def bucket_key(self, spec_id: str) -> str:
        return f"{self.name}/{spec_id}"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Whole pipeline definition.

    `subprojects` is the fallback list of subprojects used when the
    subprojects manifest cannot be read.
    """
    stages: Tuple[StageConfig, ...]
    root_project_id: str = "Gradle"
    build_scan_tags: Tuple[str, ...] = ()
    params: Dict[str, str] = field(default_factory=dict)
    subprojects: Tuple[str, ...] = ()
    retention_days: int = 14

    def __post_init__(self) -> None:
        names = [s.name for s in self.stages]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate stage names found: {dupes}")

    def project_id(self, branch: Branch) -> str:
        return f"{self.root_project_id}_{branch.display_name}"
