from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable

import sqlalchemy as sa
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from stageci.emit import fingerprint
from stageci.stages import PipelineRun, StageTransitionError, UnknownStageOrJob

from .db import SessionLocal, create_tables
from .models import PipelineRevision, PipelineRunRecord
from .redisq import enqueue_jobs


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await create_tables()
    yield


app = FastAPI(title="StageCI Pipeline Registry", lifespan=lifespan)

# -------------------- Schemas --------------------

class SubmitPipelineRequest(BaseModel):
    repo: str
    graph: dict[str, Any]
    stages: list[dict[str, Any]] = Field(default_factory=list)

class SubmitPipelineResponse(BaseModel):
    project_id: str
    revision: int
    fingerprint: str
    changed: bool

class PipelineResponse(BaseModel):
    project_id: str
    revision: int
    repo: str
    fingerprint: str
    graph: dict[str, Any]
    created_at: datetime

class CreateRunRequest(BaseModel):
    project_id: str

class CompleteJobRequest(BaseModel):
    status: str  # ok|failed
    stage: str | None = None

class RunResponse(BaseModel):
    run_id: str
    status: str
    state: dict[str, Any]

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=404, detail="Run not found")

async def _latest_revision(s, project_id: str) -> PipelineRevision | None:
    q = (
        sa.select(PipelineRevision)
        .where(PipelineRevision.project_id == project_id)
        .order_by(PipelineRevision.revision.desc())
        .limit(1)
    )
    return (await s.execute(q)).scalar_one_or_none()

async def _lock_project(s, project_id: str) -> None:
    # serializes revision numbering per project until the transaction ends
    await s.execute(sa.select(sa.func.pg_advisory_xact_lock(sa.func.hashtext(project_id))))

async def _load_run(s, run_id: uuid.UUID, lock: bool = False) -> PipelineRunRecord | None:
    q = sa.select(PipelineRunRecord).where(PipelineRunRecord.id == run_id)
    if lock:
        q = q.with_for_update()
    return (await s.execute(q)).scalar_one_or_none()

def _run_status(run: PipelineRun) -> str:
    return "finished" if run.finished else "running"

async def _enqueue_started(run_id: str, run: PipelineRun, started: list[str]) -> None:
    for stage_name in started:
        job_ids = run.running_jobs([stage_name])
        if job_ids:
            await enqueue_jobs(run_id, stage_name, job_ids)

# -------------------- Pipelines --------------------

@app.post("/pipelines", response_model=SubmitPipelineResponse)
async def submit_pipeline(req: SubmitPipelineRequest):
    project = req.graph.get("project") or {}
    project_id = project.get("id")
    if not project_id:
        raise HTTPException(status_code=400, detail="graph.project.id is required")

    digest = fingerprint(req.graph)

    async with SessionLocal() as s:
        async with s.begin():
            await _lock_project(s, project_id)
            latest = await _latest_revision(s, project_id)
            if latest and latest.fingerprint == digest:
                return SubmitPipelineResponse(
                    project_id=project_id, revision=latest.revision, fingerprint=digest, changed=False
                )

            revision = PipelineRevision(
                project_id=project_id,
                revision=(latest.revision + 1) if latest else 1,
                repo=req.repo,
                fingerprint=digest,
                graph_json=req.graph,
                stages_json=req.stages,
            )
            s.add(revision)
            await s.flush()

            return SubmitPipelineResponse(
                project_id=project_id, revision=revision.revision, fingerprint=digest, changed=True
            )

@app.get("/pipelines/{project_id}", response_model=PipelineResponse)
async def get_pipeline(project_id: str):
    async with SessionLocal() as s:
        latest = await _latest_revision(s, project_id)
        if not latest:
            raise HTTPException(status_code=404, detail="Pipeline not found")
        return PipelineResponse(
            project_id=latest.project_id,
            revision=latest.revision,
            repo=latest.repo,
            fingerprint=latest.fingerprint,
            graph=latest.graph_json,
            created_at=latest.created_at,
        )

# -------------------- Runs --------------------

@app.post("/runs", response_model=RunResponse)
async def create_run(req: CreateRunRequest):
    async with SessionLocal() as s:
        async with s.begin():
            latest = await _latest_revision(s, req.project_id)
            if not latest:
                raise HTTPException(status_code=404, detail="Pipeline not found")

            try:
                run = PipelineRun.from_dict({"stages": latest.stages_json})
            except (KeyError, ValueError) as e:
                raise HTTPException(status_code=422, detail=f"Stored stages are invalid: {e}")
            started = run.start()

            record = PipelineRunRecord(
                revision_id=latest.id,
                status=_run_status(run),
                state_json=run.to_dict(),
            )
            s.add(record)
            await s.flush()
            run_id = str(record.id)

    # push to Redis after DB commit
    await _enqueue_started(run_id, run, started)
    return RunResponse(run_id=run_id, status=_run_status(run), state=run.to_dict())

async def _transition(run_id: str, change: Callable[[PipelineRun], list[str]]) -> RunResponse:
    async with SessionLocal() as s:
        async with s.begin():
            record = await _load_run(s, _parse_uuid(run_id), lock=True)
            if not record:
                raise HTTPException(status_code=404, detail="Run not found")

            run = PipelineRun.from_dict(record.state_json)
            try:
                started = change(run)
            except UnknownStageOrJob as e:
                raise HTTPException(status_code=404, detail=str(e))
            except StageTransitionError as e:
                raise HTTPException(status_code=409, detail=str(e))

            record.state_json = run.to_dict()
            record.status = _run_status(run)
            record.updated_at = now_utc()

    await _enqueue_started(run_id, run, started)
    return RunResponse(run_id=run_id, status=_run_status(run), state=run.to_dict())

@app.post("/runs/{run_id}/jobs/{job_id}/complete", response_model=RunResponse)
async def complete_job(run_id: str, job_id: str, req: CompleteJobRequest):
    if req.status not in ("ok", "failed"):
        raise HTTPException(status_code=400, detail="status must be ok|failed")
    return await _transition(run_id, lambda run: run.record(job_id, req.status == "ok", stage_name=req.stage))

@app.post("/runs/{run_id}/stages/{stage}/abort", response_model=RunResponse)
async def abort_stage(run_id: str, stage: str):
    return await _transition(run_id, lambda run: run.abort(stage))

@app.post("/runs/{run_id}/stages/{stage}/trigger", response_model=RunResponse)
async def trigger_stage(run_id: str, stage: str):
    return await _transition(run_id, lambda run: run.trigger(stage))

@app.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str):
    async with SessionLocal() as s:
        record = await _load_run(s, _parse_uuid(run_id))
        if not record:
            raise HTTPException(status_code=404, detail="Run not found")
        return RunResponse(run_id=run_id, status=record.status, state=record.state_json)
