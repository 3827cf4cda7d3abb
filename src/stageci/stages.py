# stages.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import PipelineConfig, StageConfig
from .model import Bucket, GatingPredicate, Job, JobState, Stage, StageState


class StageTransitionError(Exception):
    """Raised on an illegal stage or job state change."""
    pass


class UnknownStageOrJob(StageTransitionError):
    """Raised when a stage name or job id is not part of the run."""
    pass


# ----------------------------------------------------------------------
# Stage construction
# ----------------------------------------------------------------------

def _bucket_jobs(
    stage_cfg: StageConfig,
    spec_id: str,
    spec_name: str,
    task: str,
    bucket_count: int,
    buckets: Optional[Mapping[str, Sequence[Bucket]]],
) -> List[Job]:
    key = stage_cfg.bucket_key(spec_id)
    if buckets is not None and key in buckets:
        indices = [b.index for b in buckets[key] if len(b) > 0]
    else:
        indices = list(range(bucket_count))

    return [
        Job(
            id=f"{spec_id}_{i + 1}",
            name=f"{spec_name} ({i + 1})",
            stage=stage_cfg.name,
            task=task,
            bucket_key=key,
            bucket_index=i,
        )
        for i in indices
    ]


def build_stages(
    config: PipelineConfig,
    buckets: Optional[Mapping[str, Sequence[Bucket]]] = None,
) -> List[Stage]:
    """
    Build the ordered stage list.

    Jobs per stage: fixed tasks, then one job per non-empty bucket of every
    functional and performance spec. When `buckets` has no entry for a spec,
    one job per configured bucket slot is created instead.
    """
    stages: List[Stage] = []
    for position, stage_cfg in enumerate(config.stages):
        jobs: List[Job] = [
            Job(id=t.id, name=t.name, stage=stage_cfg.name, task=" ".join(t.tasks))
            for t in stage_cfg.tasks
        ]
        for spec in stage_cfg.functional:
            jobs.extend(_bucket_jobs(stage_cfg, spec.id, spec.name, spec.task, spec.bucket_count, buckets))
        for spec in stage_cfg.performance:
            task = f"{spec.coverage}PerformanceTest"
            jobs.extend(_bucket_jobs(stage_cfg, spec.id, spec.name, task, spec.bucket_count, buckets))

        stages.append(
            Stage(
                name=stage_cfg.name,
                position=position,
                gate=stage_cfg.gate,
                jobs=tuple(jobs),
                description=stage_cfg.description,
            )
        )
    return stages


def predecessor(stages: Sequence[Stage], stage: Stage) -> Optional[Stage]:
    if stage.position == 0:
        return None
    return stages[stage.position - 1]


# ----------------------------------------------------------------------
# Run state machine
# ----------------------------------------------------------------------

class PipelineRun:
    """
    Tracks one execution of the generated pipeline.

    Stage lifecycle: PENDING -> RUNNING -> {PASSED, FAILED}, or
    PENDING -> SKIPPED when the gate is unsatisfied. Stages are evaluated
    strictly in order and a stage is only looked at once its predecessor is
    terminal. A REQUIRES_PREVIOUS_PASSED stage is skipped only when its direct
    predecessor FAILED; a skipped predecessor does not cascade.
    """

    def __init__(self, stages: Sequence[Stage]):
        self.stages: List[Stage] = list(stages)
        self._index: Dict[str, int] = {}
        for s in self.stages:
            if s.name in self._index:
                raise ValueError(f"Duplicate stage name: {s.name}")
            self._index[s.name] = s.position

        self.stage_states: Dict[str, StageState] = {s.name: StageState.PENDING for s in self.stages}
        self.job_states: Dict[str, Dict[str, JobState]] = {
            s.name: {j.id: JobState.PENDING for j in s.jobs} for s in self.stages
        }
        self.triggered: set[str] = set()
        self.started = False

    # ---- lookups ----

    def _stage(self, name: str) -> Stage:
        try:
            return self.stages[self._index[name]]
        except KeyError:
            raise UnknownStageOrJob(f"Unknown stage: {name}")

    def _find_job(self, job_id: str) -> str:
        """Return the name of the running stage owning `job_id`."""
        owners = [s.name for s in self.stages if job_id in self.job_states[s.name]]
        if not owners:
            raise UnknownStageOrJob(f"Unknown job: {job_id}")
        running = [n for n in owners if self.stage_states[n] is StageState.RUNNING]
        return running[0] if running else owners[0]

    def state(self, stage_name: str) -> StageState:
        self._stage(stage_name)
        return self.stage_states[stage_name]

    def job_state(self, stage_name: str, job_id: str) -> JobState:
        self._stage(stage_name)
        try:
            return self.job_states[stage_name][job_id]
        except KeyError:
            raise UnknownStageOrJob(f"Unknown job '{job_id}' in stage '{stage_name}'")

    @property
    def finished(self) -> bool:
        return all(st.terminal for st in self.stage_states.values())

    # ---- transitions ----

    def _set_jobs(self, stage_name: str, state: JobState, only_pending: bool = False) -> None:
        jobs = self.job_states[stage_name]
        for job_id, current in jobs.items():
            if only_pending and current.terminal:
                continue
            jobs[job_id] = state

    def _start_stage(self, stage: Stage) -> None:
        self.stage_states[stage.name] = StageState.RUNNING
        self._set_jobs(stage.name, JobState.RUNNING)
        self._settle(stage)

    def _skip_stage(self, stage: Stage) -> None:
        self.stage_states[stage.name] = StageState.SKIPPED
        self._set_jobs(stage.name, JobState.SKIPPED)

    def _settle(self, stage: Stage) -> None:
        jobs = self.job_states[stage.name]
        if not all(st.terminal for st in jobs.values()):
            return
        passed = all(st is JobState.PASSED for st in jobs.values())
        self.stage_states[stage.name] = StageState.PASSED if passed else StageState.FAILED

    def advance(self) -> List[str]:
        """
        Evaluate gates in order. Returns the names of stages started.
        """
        started: List[str] = []
        if not self.started:
            return started

        for stage in self.stages:
            state = self.stage_states[stage.name]
            if state is StageState.RUNNING:
                self._settle(stage)
                state = self.stage_states[stage.name]
            if state.terminal:
                continue
            if state is StageState.RUNNING:
                break

            prev = predecessor(self.stages, stage)
            if prev is not None and not self.stage_states[prev.name].terminal:
                break

            if stage.gate is GatingPredicate.MANUAL_TRIGGER and stage.name not in self.triggered:
                break
            if (
                stage.gate is GatingPredicate.REQUIRES_PREVIOUS_PASSED
                and prev is not None
                and self.stage_states[prev.name] is StageState.FAILED
            ):
                self._skip_stage(stage)
                continue

            self._start_stage(stage)
            started.append(stage.name)
            if not self.stage_states[stage.name].terminal:
                break

        return started

    def start(self) -> List[str]:
        if self.started:
            raise StageTransitionError("Run already started")
        self.started = True
        return self.advance()

    def record(self, job_id: str, passed: bool, stage_name: Optional[str] = None) -> List[str]:
        """Record a job outcome and advance. Returns stages started as a result."""
        if stage_name is None:
            stage_name = self._find_job(job_id)
        elif job_id not in self.job_states.get(stage_name, {}):
            raise UnknownStageOrJob(f"Unknown job '{job_id}' in stage '{stage_name}'")
        current = self.job_states[stage_name][job_id]
        if current is not JobState.RUNNING:
            raise StageTransitionError(f"Job '{job_id}' is {current.value}, not running")
        self.job_states[stage_name][job_id] = JobState.PASSED if passed else JobState.FAILED
        return self.advance()

    def trigger(self, stage_name: str) -> List[str]:
        stage = self._stage(stage_name)
        if stage.gate is not GatingPredicate.MANUAL_TRIGGER:
            raise StageTransitionError(f"Stage '{stage_name}' is not manually triggered")
        if self.stage_states[stage_name] is not StageState.PENDING:
            raise StageTransitionError(f"Stage '{stage_name}' is {self.stage_states[stage_name].value}")
        self.triggered.add(stage_name)
        return self.advance()

    def abort(self, stage_name: str) -> List[str]:
        """
        Abort a running stage: unfinished jobs become SKIPPED and the stage
        FAILED, then downstream gates resolve against that outcome.
        """
        stage = self._stage(stage_name)
        if self.stage_states[stage_name] is not StageState.RUNNING:
            raise StageTransitionError(
                f"Stage '{stage_name}' is {self.stage_states[stage_name].value}, not running"
            )
        self._set_jobs(stage_name, JobState.SKIPPED, only_pending=True)
        self.stage_states[stage.name] = StageState.FAILED
        return self.advance()

    def running_jobs(self, stage_names: Iterable[str]) -> List[str]:
        return [
            job_id
            for name in stage_names
            for job_id, st in self.job_states[name].items()
            if st is JobState.RUNNING
        ]

    # ---- persistence ----

    def to_dict(self) -> dict:
        return {
            "started": self.started,
            "triggered": sorted(self.triggered),
            "stages": [
                {
                    "name": s.name,
                    "gate": s.gate.value,
                    "description": s.description,
                    "state": self.stage_states[s.name].value,
                    "jobs": [
                        {
                            "id": j.id,
                            "name": j.name,
                            "task": j.task,
                            "bucket_key": j.bucket_key,
                            "bucket_index": j.bucket_index,
                            "state": self.job_states[s.name][j.id].value,
                        }
                        for j in s.jobs
                    ],
                }
                for s in self.stages
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> PipelineRun:
        stages = []
        for position, sd in enumerate(data["stages"]):
            jobs = tuple(
                Job(
                    id=jd["id"],
                    name=jd.get("name", jd["id"]),
                    stage=sd["name"],
                    task=jd.get("task", ""),
                    bucket_key=jd.get("bucket_key"),
                    bucket_index=jd.get("bucket_index"),
                )
                for jd in sd.get("jobs", [])
            )
            stages.append(
                Stage(
                    name=sd["name"],
                    position=position,
                    gate=GatingPredicate(sd["gate"]),
                    jobs=jobs,
                    description=sd.get("description", ""),
                )
            )

        run = cls(stages)
        run.started = bool(data.get("started", False))
        run.triggered = set(data.get("triggered", []))
        for sd in data["stages"]:
            if "state" in sd:
                run.stage_states[sd["name"]] = StageState(sd["state"])
            for jd in sd.get("jobs", []):
                if "state" in jd:
                    run.job_states[sd["name"]][jd["id"]] = JobState(jd["state"])
        return run
