"""
Triggers router: list, pause and resume triggers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from jobdeck.api.deps import Controller, require_token
from jobdeck.api.schemas import ActionResponse, TriggerSchema

router = APIRouter(prefix="/triggers", dependencies=[Depends(require_token)])


@router.get("", response_model=list[TriggerSchema])
async def list_triggers(controller: Controller) -> list[TriggerSchema]:
    return [TriggerSchema.from_descriptor(t) for t in await controller.list_triggers()]


@router.post("/{trigger_key}/pause", response_model=ActionResponse)
async def pause_trigger(trigger_key: str, controller: Controller) -> ActionResponse:
    key = await controller.pause_trigger(trigger_key)
    return ActionResponse(success=True, message=f"Trigger {key} paused")


@router.post("/{trigger_key}/resume", response_model=ActionResponse)
async def resume_trigger(trigger_key: str, controller: Controller) -> ActionResponse:
    key = await controller.resume_trigger(trigger_key)
    return ActionResponse(success=True, message=f"Trigger {key} resumed")
