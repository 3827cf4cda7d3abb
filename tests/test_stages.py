"""Unit tests for stage construction and the run state machine."""

from __future__ import annotations

import pytest

from stageci.dsl import ALWAYS_RUN, MANUAL_TRIGGER, functional_tests, pipeline, stage, task
from stageci.model import Bucket, GatingPredicate, Job, JobState, Stage, StageState, WorkItem
from stageci.stages import PipelineRun, StageTransitionError, UnknownStageOrJob, build_stages, predecessor


def _stage(name: str, position: int, gate: GatingPredicate, *job_ids: str) -> Stage:
    jobs = tuple(Job(id=j, name=j, stage=name, task="test") for j in job_ids)
    return Stage(name=name, position=position, gate=gate, jobs=jobs)


def _three_stages() -> list[Stage]:
    return [
        _stage("A", 0, GatingPredicate.ALWAYS_RUN, "a1", "a2"),
        _stage("B", 1, GatingPredicate.REQUIRES_PREVIOUS_PASSED, "b1"),
        _stage("C", 2, GatingPredicate.REQUIRES_PREVIOUS_PASSED, "c1"),
    ]


# ---- build_stages ----


def test_build_stages_orders_and_creates_bucket_jobs() -> None:
    config = pipeline(
        stage("Quick", task("Sanity", ":sanityCheck"), functional_tests("Unit", "test", 3), gate=ALWAYS_RUN),
        stage("Nightly", functional_tests("Forking", "forkingIntegTest", 2)),
    )
    buckets = {
        "Quick/Unit": [
            Bucket(0, (WorkItem("org.A", 5, "core"),)),
            Bucket(1, (WorkItem("org.B", 3, "core"),)),
            Bucket(2, ()),
        ],
    }

    stages = build_stages(config, buckets)

    assert [(s.name, s.position) for s in stages] == [("Quick", 0), ("Nightly", 1)]
    assert stages[0].job_ids == ["Sanity", "Unit_1", "Unit_2"]
    assert stages[0].jobs[1].bucket_key == "Quick/Unit"
    assert stages[0].jobs[1].bucket_index == 0
    assert stages[0].jobs[0].task == ":sanityCheck"
    # no partition result -> one job per configured slot
    assert stages[1].job_ids == ["Forking_1", "Forking_2"]
    assert stages[1].gate is GatingPredicate.REQUIRES_PREVIOUS_PASSED


def test_predecessor_is_index_based() -> None:
    stages = _three_stages()

    assert predecessor(stages, stages[0]) is None
    assert predecessor(stages, stages[2]) is stages[1]


def test_duplicate_stage_names_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate stage names"):
        pipeline(stage("A", task("x", ":x")), stage("A", task("y", ":y")))


# ---- PipelineRun ----


def test_happy_path_runs_stages_in_order() -> None:
    run = PipelineRun(_three_stages())

    assert run.start() == ["A"]
    assert run.state("A") is StageState.RUNNING
    assert run.state("B") is StageState.PENDING

    run.record("a1", True)
    assert run.state("B") is StageState.PENDING  # barrier: a2 still running
    assert run.record("a2", True) == ["B"]
    assert run.state("A") is StageState.PASSED

    run.record("b1", True)
    run.record("c1", True)
    assert run.finished
    assert all(run.state(n) is StageState.PASSED for n in "ABC")


def test_failed_predecessor_skips_gated_stage_without_running() -> None:
    run = PipelineRun(_three_stages())
    run.start()

    run.record("a1", True)
    started = run.record("a2", False)

    assert run.state("A") is StageState.FAILED
    assert run.state("B") is StageState.SKIPPED
    assert run.job_state("B", "b1") is JobState.SKIPPED
    assert "B" not in started


def test_skip_does_not_cascade_beyond_direct_predecessor() -> None:
    run = PipelineRun(_three_stages())
    run.start()
    run.record("a1", False)
    run.record("a2", True)

    assert run.state("B") is StageState.SKIPPED
    assert run.state("C") is StageState.RUNNING


def test_abort_skips_unfinished_jobs_and_downstream_stage() -> None:
    run = PipelineRun(_three_stages())
    run.start()
    run.record("a1", True)

    run.abort("A")

    assert run.job_state("A", "a1") is JobState.PASSED
    assert run.job_state("A", "a2") is JobState.SKIPPED
    assert run.state("A") is StageState.FAILED
    assert run.state("B") is StageState.SKIPPED


def test_always_run_starts_after_failed_predecessor() -> None:
    stages = [
        _stage("A", 0, GatingPredicate.ALWAYS_RUN, "a1"),
        _stage("B", 1, GatingPredicate.ALWAYS_RUN, "b1"),
    ]
    run = PipelineRun(stages)
    run.start()

    assert run.record("a1", False) == ["B"]
    assert run.state("B") is StageState.RUNNING


def test_manual_stage_waits_for_trigger() -> None:
    stages = [
        _stage("A", 0, GatingPredicate.ALWAYS_RUN, "a1"),
        _stage("Release", 1, GatingPredicate.MANUAL_TRIGGER, "r1"),
        _stage("After", 2, GatingPredicate.REQUIRES_PREVIOUS_PASSED, "x1"),
    ]
    run = PipelineRun(stages)
    run.start()
    run.record("a1", True)

    assert run.state("Release") is StageState.PENDING
    assert run.state("After") is StageState.PENDING

    assert run.trigger("Release") == ["Release"]
    run.record("r1", True)
    assert run.state("After") is StageState.RUNNING


def test_manual_trigger_before_predecessor_finishes_is_remembered() -> None:
    stages = [
        _stage("A", 0, GatingPredicate.ALWAYS_RUN, "a1"),
        _stage("Release", 1, GatingPredicate.MANUAL_TRIGGER, "r1"),
    ]
    run = PipelineRun(stages)
    run.start()

    assert run.trigger("Release") == []
    assert run.state("Release") is StageState.PENDING
    assert run.record("a1", True) == ["Release"]


def test_stage_without_jobs_passes_immediately() -> None:
    stages = [
        _stage("Empty", 0, GatingPredicate.ALWAYS_RUN),
        _stage("Next", 1, GatingPredicate.REQUIRES_PREVIOUS_PASSED, "n1"),
    ]
    run = PipelineRun(stages)

    assert run.start() == ["Empty", "Next"]
    assert run.state("Empty") is StageState.PASSED


def test_illegal_transitions() -> None:
    run = PipelineRun(_three_stages())
    run.start()

    with pytest.raises(StageTransitionError):
        run.record("b1", True)  # stage B not running
    with pytest.raises(StageTransitionError):
        run.abort("B")
    with pytest.raises(StageTransitionError):
        run.trigger("A")
    with pytest.raises(StageTransitionError):
        run.record("zzz", True)
    with pytest.raises(StageTransitionError):
        run.start()

    run.record("a1", True)
    with pytest.raises(StageTransitionError):
        run.record("a1", False)


def test_unknown_stage_or_job() -> None:
    run = PipelineRun(_three_stages())
    run.start()

    with pytest.raises(UnknownStageOrJob, match="Unknown job: zzz"):
        run.record("zzz", True)
    with pytest.raises(UnknownStageOrJob):
        run.record("a1", True, stage_name="Nope")
    with pytest.raises(UnknownStageOrJob, match="Unknown stage: Nope"):
        run.abort("Nope")
    with pytest.raises(UnknownStageOrJob):
        run.trigger("Nope")
    with pytest.raises(UnknownStageOrJob):
        run.job_state("A", "zzz")
    assert run.job_state("A", "a1") is JobState.RUNNING


def test_snapshot_roundtrip_keeps_progress() -> None:
    run = PipelineRun(_three_stages())
    run.start()
    run.record("a1", True)

    restored = PipelineRun.from_dict(run.to_dict())

    assert restored.to_dict() == run.to_dict()
    assert restored.record("a2", True) == ["B"]


def test_same_job_id_in_two_stages_resolves_to_running_stage() -> None:
    stages = [
        _stage("A", 0, GatingPredicate.ALWAYS_RUN, "unit_1"),
        _stage("B", 1, GatingPredicate.REQUIRES_PREVIOUS_PASSED, "unit_1"),
    ]
    run = PipelineRun(stages)
    run.start()
    run.record("unit_1", True)

    assert run.state("B") is StageState.RUNNING
    run.record("unit_1", False, stage_name="B")
    assert run.state("B") is StageState.FAILED


def test_manual_gate_from_dsl() -> None:
    config = pipeline(stage("Release", task("promote", ":promote"), gate=MANUAL_TRIGGER))

    assert build_stages(config)[0].gate is GatingPredicate.MANUAL_TRIGGER
