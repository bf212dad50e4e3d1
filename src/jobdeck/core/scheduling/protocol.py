"""Scheduling engine protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULING ENGINE CONTRACT                                                   │
│                                                                               │
│  The engine stores jobs and triggers and fires them on its own worker pool.  │
│  The control plane never reaches past this protocol:                          │
│                                                                               │
│   ┌────────────────────────┐   lifecycle / queries   ┌──────────────────┐    │
│   │  SchedulerController   │ ──────────────────────► │  SchedulerEngine │    │
│   │  (owns the handle)     │                         │  (APScheduler)   │    │
│   └────────────────────────┘                         └────────┬─────────┘    │
│                                                               │ worker       │
│   ┌────────────────────────┐   before / vetoed / after        │ threads      │
│   │ ExecutionHistory-      │ ◄────────────────────────────────┘              │
│   │ Recorder (JobListener) │                                                 │
│   └────────────────────────┘                                                 │
│                                                                               │
│  Jobs are plain classes with ``execute(context)``; the engine creates one    │
│  instance per firing.  A job may have any number of triggers.                │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .keys import JobKey, TriggerKey


class TriggerState(str, Enum):
    """Current state of a stored trigger."""

    NORMAL = "Normal"
    PAUSED = "Paused"
    COMPLETE = "Complete"
    ERROR = "Error"
    BLOCKED = "Blocked"
    NONE = "None"


class ScheduleKind(str, Enum):
    """How a trigger computes its fire times."""

    CRON = "cron"
    SIMPLE = "simple"
    OTHER = "other"


class MisfireInstruction(str, Enum):
    """What the engine does with fire times missed while it could not fire."""

    SMART_POLICY = "smart_policy"
    FIRE_ONCE_NOW = "fire_once_now"
    DO_NOTHING = "do_nothing"
    IGNORE_MISFIRE_POLICY = "ignore_misfire_policy"


@dataclass(frozen=True)
class JobDetail:
    """A stored job as the engine knows it."""

    key: JobKey
    job_type: str
    description: str | None = None
    durable: bool = False
    requests_recovery: bool = False
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TriggerSpec:
    """Definition of a trigger to schedule.

    ``CRON`` uses ``cron_expression``.  ``SIMPLE`` fires every
    ``repeat_interval``; ``repeat_count`` is the number of repeats after
    the first firing (``None`` repeats forever, ``0`` fires once).
    ``OTHER`` passes an engine-native trigger object through ``native``.
    """

    key: TriggerKey
    job_key: JobKey
    kind: ScheduleKind = ScheduleKind.CRON
    cron_expression: str | None = None
    repeat_interval: timedelta | None = None
    repeat_count: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    description: str | None = None
    misfire_instruction: MisfireInstruction = MisfireInstruction.SMART_POLICY
    native: Any = None


@dataclass(frozen=True)
class TriggerDetail:
    """A stored trigger together with its computed fire times."""

    key: TriggerKey
    job_key: JobKey
    kind: ScheduleKind
    cron_expression: str | None
    repeat_interval: timedelta | None
    repeat_count: int | None
    start_time: datetime | None
    end_time: datetime | None
    next_fire_time: datetime | None
    previous_fire_time: datetime | None
    misfire_instruction: MisfireInstruction
    description: str | None = None


@dataclass(frozen=True)
class EngineMetadata:
    """Static descriptors of the engine's store and thread pool."""

    job_store_type: str
    thread_pool_type: str
    thread_pool_size: int
    version: str


@dataclass
class JobExecutionContext:
    """Everything a job and the listeners see about one firing."""

    job: JobDetail
    trigger_key: TriggerKey
    fire_time: datetime
    scheduled_fire_time: datetime | None = None
    data: dict[str, Any] = field(default_factory=dict)
    run_time: timedelta = timedelta(0)
    result: Any = None


@runtime_checkable
class Job(Protocol):
    """A unit of work.  One instance is created per firing."""

    def execute(self, context: JobExecutionContext) -> Any:
        ...


@runtime_checkable
class JobListener(Protocol):
    """Callbacks invoked by the engine around every job firing.

    Called from engine worker threads, concurrently for jobs that run at
    the same time.
    """

    name: str

    def job_to_be_executed(self, context: JobExecutionContext) -> None:
        ...

    def job_execution_vetoed(self, context: JobExecutionContext) -> None:
        ...

    def job_was_executed(
        self, context: JobExecutionContext, error: BaseException | None
    ) -> None:
        ...


@runtime_checkable
class SchedulerEngine(Protocol):
    """Contract the control plane requires from the scheduling engine.

    Implementations:
        - APSchedulerEngine: APScheduler 3.x ``BackgroundScheduler``

    Unknown keys raise ``JobNotFoundError`` / ``TriggerNotFoundError``;
    mutations after shutdown raise ``SchedulerStateError``.
    """

    @property
    def scheduler_name(self) -> str: ...

    @property
    def instance_id(self) -> str: ...

    @property
    def is_started(self) -> bool: ...

    @property
    def is_shutdown(self) -> bool: ...

    @property
    def in_standby_mode(self) -> bool: ...

    def start(self) -> None:
        """Start firing triggers (also leaves standby mode)."""
        ...

    def standby(self) -> None:
        """Stop firing triggers without shutting down."""
        ...

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        """Stop permanently, optionally waiting for running jobs."""
        ...

    def metadata(self) -> EngineMetadata: ...

    def job_listeners(self) -> list[JobListener]: ...

    def add_job_listener(self, listener: JobListener) -> None: ...

    def job_group_names(self) -> list[str]: ...

    def job_keys(self, group: str) -> list[JobKey]: ...

    def job_detail(self, key: JobKey) -> JobDetail | None: ...

    def triggers_of_job(self, key: JobKey) -> list[TriggerDetail]: ...

    def trigger_group_names(self) -> list[str]: ...

    def trigger_keys(self, group: str) -> list[TriggerKey]: ...

    def trigger(self, key: TriggerKey) -> TriggerDetail | None: ...

    def trigger_state(self, key: TriggerKey) -> TriggerState: ...

    def schedule_job(
        self,
        detail: JobDetail,
        job_class: type[Job],
        triggers: Sequence[TriggerSpec] = (),
        replace: bool = False,
    ) -> None: ...

    def pause_job(self, key: JobKey) -> None: ...

    def resume_job(self, key: JobKey) -> None: ...

    def trigger_job(self, key: JobKey, data: Mapping[str, Any] | None = None) -> None: ...

    def delete_job(self, key: JobKey) -> bool: ...

    def pause_trigger(self, key: TriggerKey) -> None: ...

    def resume_trigger(self, key: TriggerKey) -> None: ...


EngineFactory = Callable[[], SchedulerEngine]


def job_type_name(job_class: type) -> str:
    """Dotted import path used as a job's type identifier."""
    return f"{job_class.__module__}.{job_class.__qualname__}"
