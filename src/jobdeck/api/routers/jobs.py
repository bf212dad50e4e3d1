"""
Jobs router: list, pause, resume, trigger and delete stored jobs.

Job keys in paths are ``name`` (default group) or ``group.name``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from jobdeck.api.deps import Controller, require_token
from jobdeck.api.schemas import (
    ActionResponse,
    ExecutionHistorySchema,
    ExecutionRecordSchema,
    JobSchema,
)

router = APIRouter(prefix="/jobs", dependencies=[Depends(require_token)])

DEFAULT_HISTORY_COUNT = 50


@router.get("", response_model=list[JobSchema])
async def list_jobs(controller: Controller) -> list[JobSchema]:
    return [JobSchema.from_descriptor(job) for job in await controller.list_jobs()]


# Declared before the /{job_key} routes so "history" is never read as a key
@router.get("/history", response_model=ExecutionHistorySchema)
async def get_history(
    controller: Controller,
    count: int = Query(default=DEFAULT_HISTORY_COUNT, ge=0, description="Records to return"),
) -> ExecutionHistorySchema:
    """Most recent executions, newest first.

    Example::

        GET /api/jobs/history?count=5
        → {"totalCount": 5, "items": [{"jobKey": "DEFAULT.SampleJob", ...}, ...]}
    """
    records = controller.get_recent_history(count)
    return ExecutionHistorySchema(
        total_count=len(records),
        items=[ExecutionRecordSchema.from_record(r) for r in records],
    )


@router.post("/{job_key}/pause", response_model=ActionResponse)
async def pause_job(job_key: str, controller: Controller) -> ActionResponse:
    key = await controller.pause_job(job_key)
    return ActionResponse(success=True, message=f"Job {key} paused")


@router.post("/{job_key}/resume", response_model=ActionResponse)
async def resume_job(job_key: str, controller: Controller) -> ActionResponse:
    key = await controller.resume_job(job_key)
    return ActionResponse(success=True, message=f"Job {key} resumed")


@router.post("/{job_key}/trigger", response_model=ActionResponse)
async def trigger_job(job_key: str, controller: Controller) -> ActionResponse:
    key = await controller.trigger_job(job_key)
    return ActionResponse(success=True, message=f"Job {key} triggered")


@router.delete("/{job_key}", response_model=ActionResponse)
async def delete_job(job_key: str, controller: Controller) -> ActionResponse:
    key = await controller.delete_job(job_key)
    return ActionResponse(success=True, message=f"Job {key} deleted")
