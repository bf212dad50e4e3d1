"""Scheduler, job, trigger and execution history schemas.

Each schema has a ``from_*`` constructor taking the corresponding domain
object from :mod:`jobdeck.core.scheduling`, so routers never build
responses field by field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from jobdeck.api.schemas.common import CamelModel
from jobdeck.core.scheduling import (
    ExecutionRecord,
    JobDescriptor,
    SchedulerStatus,
    TriggerDescriptor,
)


class SchedulerStatusSchema(CamelModel):
    """Engine identity, lifecycle flags and resources."""

    scheduler_name: str
    instance_id: str
    state: str = Field(description="Stopped, Initializing, Running, Standby, ShuttingDown or Shutdown")
    is_started: bool
    is_shutdown: bool
    in_standby_mode: bool
    job_store_type: str
    thread_pool_type: str
    thread_pool_size: int
    version: str

    @classmethod
    def from_status(cls, status: SchedulerStatus) -> SchedulerStatusSchema:
        return cls(
            scheduler_name=status.scheduler_name,
            instance_id=status.instance_id,
            state=status.state.value,
            is_started=status.is_started,
            is_shutdown=status.is_shutdown,
            in_standby_mode=status.in_standby_mode,
            job_store_type=status.job_store_type,
            thread_pool_type=status.thread_pool_type,
            thread_pool_size=status.thread_pool_size,
            version=status.version,
        )


class JobSchema(CamelModel):
    """A stored job.  Fire times are the latest across its triggers."""

    job_key: str = Field(description="'group.name'")
    group_name: str
    job_name: str
    job_type: str = Field(description="Dotted path of the job class")
    description: str | None = None
    durable: bool = False
    requests_recovery: bool = False
    job_data: dict[str, Any] = Field(default_factory=dict)
    next_fire_time: datetime | None = None
    previous_fire_time: datetime | None = None
    trigger_count: int = 0

    @classmethod
    def from_descriptor(cls, job: JobDescriptor) -> JobSchema:
        return cls(
            job_key=job.key,
            group_name=job.group,
            job_name=job.name,
            job_type=job.job_type,
            description=job.description,
            durable=job.durable,
            requests_recovery=job.requests_recovery,
            job_data=dict(job.data),
            next_fire_time=job.next_fire_time,
            previous_fire_time=job.previous_fire_time,
            trigger_count=job.trigger_count,
        )


class TriggerSchema(CamelModel):
    """A stored trigger joined to its job."""

    trigger_key: str
    group_name: str
    trigger_name: str
    job_key: str
    job_name: str
    description: str | None = None
    trigger_type: str = Field(description="cron, simple or other")
    cron_expression: str | None = None
    repeat_interval_seconds: float | None = None
    repeat_count: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    trigger_state: str = Field(description="Normal, Paused, Complete, Error, Blocked or None")
    misfire_instruction: str
    next_fire_time: datetime | None = None
    previous_fire_time: datetime | None = None

    @classmethod
    def from_descriptor(cls, trigger: TriggerDescriptor) -> TriggerSchema:
        interval = trigger.repeat_interval
        return cls(
            trigger_key=trigger.key,
            group_name=trigger.group,
            trigger_name=trigger.name,
            job_key=trigger.job_key,
            job_name=trigger.job_name,
            description=trigger.description,
            trigger_type=trigger.kind.value,
            cron_expression=trigger.cron_expression,
            repeat_interval_seconds=interval.total_seconds() if interval is not None else None,
            repeat_count=trigger.repeat_count,
            start_time=trigger.start_time,
            end_time=trigger.end_time,
            trigger_state=trigger.state.value,
            misfire_instruction=trigger.misfire_instruction.value,
            next_fire_time=trigger.next_fire_time,
            previous_fire_time=trigger.previous_fire_time,
        )


class ExecutionRecordSchema(CamelModel):
    id: str
    job_key: str
    trigger_key: str
    fire_time: datetime
    duration: float = Field(description="Run time in seconds")
    succeeded: bool
    error_message: str | None = None

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> ExecutionRecordSchema:
        return cls(
            id=record.id,
            job_key=record.job_key,
            trigger_key=record.trigger_key,
            fire_time=record.fire_time,
            duration=record.duration,
            succeeded=record.succeeded,
            error_message=record.error,
        )


class ExecutionHistorySchema(CamelModel):
    """Most recent executions, newest first."""

    total_count: int
    items: list[ExecutionRecordSchema]


class ShutdownRequest(CamelModel):
    """Optional body for ``POST /scheduler/shutdown``."""

    wait_for_jobs_to_complete: bool | None = None
