"""
Scheduler router: status and lifecycle of the engine.

Start, standby and shutdown are idempotent: asking for the state the
scheduler is already in answers ``{"success": false}`` instead of an error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from jobdeck.api.deps import Controller, require_token
from jobdeck.api.schemas import ActionResponse, SchedulerStatusSchema, ShutdownRequest
from jobdeck.core.scheduling import LifecycleState

router = APIRouter(prefix="/scheduler", dependencies=[Depends(require_token)])


@router.get("/status", response_model=SchedulerStatusSchema)
async def get_status(controller: Controller) -> SchedulerStatusSchema:
    """Snapshot of the engine: identity, state flags, store and thread pool."""
    return SchedulerStatusSchema.from_status(await controller.get_status())


@router.post("/start", response_model=ActionResponse)
async def start_scheduler(controller: Controller) -> ActionResponse:
    started = await controller.start_scheduler()
    message = "Scheduler started" if started else "Scheduler is already running"
    return ActionResponse(success=started, message=message)


@router.post("/standby", response_model=ActionResponse)
async def standby_scheduler(controller: Controller) -> ActionResponse:
    paused = await controller.standby_scheduler()
    if paused:
        message = "Scheduler is in standby mode"
    elif controller.state is LifecycleState.STANDBY:
        message = "Scheduler is already in standby mode"
    else:
        message = f"Scheduler is not running (state: {controller.state.value})"
    return ActionResponse(success=paused, message=message)


@router.post("/shutdown", response_model=ActionResponse)
async def shutdown_scheduler(
    controller: Controller,
    body: ShutdownRequest | None = None,
    wait_for_jobs_to_complete: bool | None = Query(default=None, alias="waitForJobsToComplete"),
) -> ActionResponse:
    """Shut the scheduler down for good.

    ``waitForJobsToComplete`` (query or JSON body, default ``true``) decides
    whether running jobs are awaited.
    """
    wait = wait_for_jobs_to_complete
    if wait is None and body is not None:
        wait = body.wait_for_jobs_to_complete
    if wait is None:
        wait = True

    shut_down = await controller.shutdown_scheduler(wait_for_jobs=wait)
    message = (
        f"Scheduler shut down (waitForJobsToComplete={str(wait).lower()})"
        if shut_down
        else "Scheduler is already shut down"
    )
    return ActionResponse(success=shut_down, message=message)
