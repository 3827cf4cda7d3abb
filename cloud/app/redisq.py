from __future__ import annotations

import json

import redis.asyncio as redis
from .settings import REDIS_URL, QUEUE_NAME

r = redis.from_url(REDIS_URL, decode_responses=True)

def job_message(run_id: str, stage: str, job_id: str) -> str:
    return json.dumps({"run_id": run_id, "stage": stage, "job_id": job_id}, sort_keys=True)

async def enqueue_jobs(run_id: str, stage: str, job_ids: list[str]) -> None:
    # FIFO: push right, agents pop left
    for job_id in job_ids:
        await r.rpush(QUEUE_NAME, job_message(run_id, stage, job_id))
