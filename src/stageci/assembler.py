# assembler.py
# Turns stages + buckets into the project tree submitted to the CI server.

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .branch import BranchPolicy
from .config import PipelineConfig
from .dag import GraphError, dependency_levels
from .graph import (
    BuildStep,
    BuildType,
    CleanupRule,
    FinishBuildTrigger,
    PipelineGraph,
    Project,
    ScheduleTrigger,
    VcsTrigger,
)
from .model import Bucket, GatingPredicate, Job, Stage, WorkItem
from .settings import FAILED_TEST_ARTIFACT_DESTINATION
from .stages import predecessor


class PipelineError(ValueError):
    """The pipeline cannot be assembled into a consistent graph."""
    pass


def ident(name: str) -> str:
    """Build-type-id safe form of a name ("Ready for Nightly" -> "ReadyforNightly")."""
    return re.sub(r"[^A-Za-z0-9_]", "", name)


def stage_project_id(project_id: str, stage: Stage) -> str:
    return f"{project_id}_Stage_{ident(stage.name)}"


def stage_passes_id(project_id: str, stage: Stage) -> str:
    return f"{project_id}_Stage_{ident(stage.name)}_Trigger"


def job_build_type_id(project_id: str, job: Job) -> str:
    return f"{project_id}_{ident(job.stage)}_{ident(job.id)}"


def cleanup_rules(retention_days: int) -> Tuple[CleanupRule, ...]:
    return (
        CleanupRule(history_days=retention_days),
        CleanupRule(
            artifact_days=retention_days,
            artifact_patterns=("+:**/*", f"+:{FAILED_TEST_ARTIFACT_DESTINATION}/**/*"),
        ),
    )


# ----------------------------------------------------------------------
# Build steps
# ----------------------------------------------------------------------

def _group_by_subproject(items: Sequence[WorkItem]) -> Dict[str, List[WorkItem]]:
    groups: Dict[str, List[WorkItem]] = {}
    for item in items:
        groups.setdefault(item.subproject, []).append(item)
    return groups


def bucket_steps(job: Job, bucket: Bucket) -> Tuple[BuildStep, ...]:
    """
    Functional buckets run `:<sub>:<task>` per subproject, filtered with
    `--tests`; performance buckets run the scenarios on `:performance`.
    """
    if any(item.subproject is None for item in bucket.items):
        scenarios = ",".join(bucket.ids)
        return (BuildStep("Run performance tests", (f":performance:{job.task}", "--scenarios", scenarios)),)

    tasks: List[str] = []
    for sub, items in _group_by_subproject(bucket.items).items():
        tasks.append(f":{sub}:{job.task}")
        for item in items:
            if not item.covers_subproject:
                tasks.extend(["--tests", item.id])
    return (BuildStep("Run tests", tuple(tasks)),)


def _job_build_type(
    project_id: str,
    job: Job,
    buckets: Mapping[str, Sequence[Bucket]],
    consumed: Set[Tuple[str, int]],
) -> BuildType:
    bt_id = job_build_type_id(project_id, job)
    if not job.is_bucket:
        return BuildType(
            id=bt_id,
            name=job.name,
            steps=(BuildStep(job.name, tuple(job.task.split())),),
        )

    ref = (job.bucket_key, job.bucket_index)
    if ref in consumed:
        raise PipelineError(f"Bucket {job.bucket_key}[{job.bucket_index}] is used by more than one job")
    if not job.bucket_key.startswith(f"{job.stage}/"):
        raise PipelineError(f"Job '{job.id}' of stage '{job.stage}' references bucket '{job.bucket_key}'")

    stage_buckets = buckets.get(job.bucket_key)
    if stage_buckets is None or job.bucket_index >= len(stage_buckets):
        raise PipelineError(f"Job '{job.id}' references missing bucket {job.bucket_key}[{job.bucket_index}]")
    consumed.add(ref)

    bucket = stage_buckets[job.bucket_index]
    return BuildType(
        id=bt_id,
        name=job.name,
        description=f"{len(bucket)} test(s), expected {bucket.duration:g}s",
        steps=bucket_steps(job, bucket),
        params={"expectedDurationSeconds": f"{bucket.duration:g}"},
    )


def _stage_triggers(project_id: str, stages: Sequence[Stage], stage: Stage):
    prev = predecessor(stages, stage)
    if stage.gate is GatingPredicate.ALWAYS_RUN:
        return (VcsTrigger(),)
    if stage.gate is GatingPredicate.REQUIRES_PREVIOUS_PASSED:
        if prev is None:
            return (VcsTrigger(),)
        return (FinishBuildTrigger(stage_passes_id(project_id, prev)),)
    return ()


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def assemble(
    stages: Sequence[Stage],
    buckets: Mapping[str, Sequence[Bucket]],
    branch_policy: BranchPolicy,
    config: Optional[PipelineConfig] = None,
) -> PipelineGraph:
    """
    Compose the project tree for one branch.

    Root project -> one StagePasses aggregator per stage (depends on every job
    of the stage and on the previous aggregator), one subproject per stage
    holding the job builds, and a Promotion subproject with the nightly
    snapshot build.

    Raises:
        PipelineError: missing/shared buckets or an inconsistent dependency graph
    """
    config = config or PipelineConfig(stages=())
    branch = branch_policy.branch
    project_id = config.project_id(branch)

    consumed: Set[Tuple[str, int]] = set()
    root_build_types: List[BuildType] = []
    subprojects: List[Project] = []

    for stage in stages:
        job_types = [_job_build_type(project_id, job, buckets, consumed) for job in stage.jobs]
        stage_project = Project(
            id=stage_project_id(project_id, stage),
            name=stage.name,
            parent_id=project_id,
            description=stage.description,
            build_types=tuple(job_types),
            build_types_order=tuple(bt.id for bt in job_types),
        )

        prev = predecessor(stages, stage)
        deps = [bt.id for bt in job_types]
        if prev is not None:
            deps.append(stage_passes_id(project_id, prev))

        root_build_types.append(
            BuildType(
                id=stage_passes_id(project_id, stage),
                name=f"Stage: {stage.name} (Trigger)",
                description=stage.description or f"Passes when every build of stage '{stage.name}' passes",
                dependencies=tuple(deps),
                triggers=_stage_triggers(project_id, stages, stage),
            )
        )
        subprojects.append(stage_project)

    subprojects.append(_promotion_project(project_id, stages, branch_policy))

    params = {"teamcity.ui.settings.readOnly": "true"}
    if config.build_scan_tags:
        params["buildScanTags"] = ",".join(config.build_scan_tags)
    params.update(config.params)

    root = Project(
        id=project_id,
        name=branch.display_name,
        parent_id=config.root_project_id,
        params=params,
        build_types=tuple(root_build_types),
        subprojects=tuple(subprojects),
        build_types_order=tuple(bt.id for bt in root_build_types),
        subprojects_order=tuple(p.id for p in subprojects),
        cleanup=cleanup_rules(config.retention_days),
    )

    try:
        dependency_levels(root.all_build_types())
    except GraphError as e:
        raise PipelineError(str(e)) from e

    return PipelineGraph(root=root, branch=branch)


def _promotion_project(project_id: str, stages: Sequence[Stage], branch_policy: BranchPolicy) -> Project:
    promotion = branch_policy.nightly_promotion()
    trigger_stage = next((s for s in stages if ident(s.name) == promotion.trigger_stage), None)
    deps = (stage_passes_id(project_id, trigger_stage),) if trigger_stage is not None else ()

    nightly = BuildType(
        id=f"{project_id}_{promotion.build_type_id}",
        name=promotion.name,
        description=promotion.description,
        steps=(BuildStep("Promote", (promotion.task,)),),
        dependencies=deps,
        triggers=(ScheduleTrigger(hour=promotion.trigger_hour),),
        params={"promotedBranch": branch_policy.branch.value},
    )
    return Project(
        id=f"{project_id}_Promotion",
        name="Promotion",
        parent_id=project_id,
        build_types=(nightly,),
        build_types_order=(nightly.id,),
    )
