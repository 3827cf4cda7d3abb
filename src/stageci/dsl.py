# src/stageci/dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .config import FunctionalTestSpec, PerformanceTestSpec, PipelineConfig, StageConfig, TaskSpec
from .model import GatingPredicate

StageJob = Union[FunctionalTestSpec, PerformanceTestSpec, TaskSpec]

ALWAYS_RUN = GatingPredicate.ALWAYS_RUN
REQUIRES_PREVIOUS_PASSED = GatingPredicate.REQUIRES_PREVIOUS_PASSED
MANUAL_TRIGGER = GatingPredicate.MANUAL_TRIGGER


# ---------------------------------------------------------------------
# Job helpers
# ---------------------------------------------------------------------

def task(id: str, *tasks: str, name: str | None = None) -> TaskSpec:
    """A fixed job: task("sanity", ":sanityCheck")."""
    if not tasks:
        raise ValueError(f"task({id!r}) must run at least one build task")
    return TaskSpec(id=id, name=name or id, tasks=tuple(tasks))


def functional_tests(
    id: str,
    test_task: str,
    buckets: int,
    *,
    name: str | None = None,
    subprojects: Optional[Iterable[str]] = None,
) -> FunctionalTestSpec:
    return FunctionalTestSpec(
        id=id,
        name=name or id,
        task=test_task,
        bucket_count=buckets,
        subprojects=tuple(subprojects or ()),
    )


def performance_tests(
    id: str,
    coverage: str,
    buckets: int,
    *,
    name: str | None = None,
) -> PerformanceTestSpec:
    return PerformanceTestSpec(id=id, name=name or id, coverage=coverage, bucket_count=buckets)


# ---------------------------------------------------------------------
# Stage helper
# ---------------------------------------------------------------------

def stage(
    name: str,
    *jobs: Union[StageJob, List[StageJob]],  # allow stage("x", task(...), [specs...])
    gate: GatingPredicate = REQUIRES_PREVIOUS_PASSED,
    description: str = "",
) -> StageConfig:
    flat: List[StageJob] = []
    for j in jobs:
        if isinstance(j, list):
            flat.extend(j)
        else:
            flat.append(j)

    return StageConfig(
        name=name,
        gate=gate,
        functional=tuple(j for j in flat if isinstance(j, FunctionalTestSpec)),
        performance=tuple(j for j in flat if isinstance(j, PerformanceTestSpec)),
        tasks=tuple(j for j in flat if isinstance(j, TaskSpec)),
        description=description,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("os", ["linux", "windows"]).each(
            lambda os: functional_tests(f"{os}-unit", "test", 4)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def each(self, builder: Callable[[Any], StageJob]) -> List[StageJob]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    *stages: StageConfig,
    root_project_id: str = "Gradle",
    build_scan_tags: Optional[Iterable[str]] = None,
    params: Optional[Dict[str, str]] = None,
    subprojects: Optional[Iterable[str]] = None,
    retention_days: int = 14,
) -> PipelineConfig:
    """
    Pipeline definition helper.

    Users can write:
        from stageci.dsl import pipeline as define, stage, task

        def pipeline():
            return define(
                stage("Quick Feedback", task(...)),
                ...
            )

    Or define PIPELINE directly:
        PIPELINE = define(stage(...), stage(...))
    """
    return PipelineConfig(
        stages=tuple(stages),
        root_project_id=root_project_id,
        build_scan_tags=tuple(build_scan_tags or ()),
        params=dict(params or {}),
        subprojects=tuple(subprojects or ()),
        retention_days=retention_days,
    )
