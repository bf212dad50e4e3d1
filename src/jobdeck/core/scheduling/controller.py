"""Scheduler controller.

Owns the engine handle and is the only component that changes engine
state.  The controller drives the lifecycle::

    Stopped ──► Initializing ──► Running ◄──► Standby
                                    │            │
                                    └──► ShuttingDown ──► Shutdown

``Initializing`` and ``ShuttingDown`` are transient markers set while a
transition is in flight; every other state is read from the engine.
``Shutdown`` is terminal for the life of the process.

Startup (:meth:`SchedulerController.start`) runs :meth:`initialize` under the
startup retry policy (three retries, waiting 1s, 2s, 3s) and raises
``StartupError`` once retries are exhausted.  Everything else is reported
on first failure: operations log and re-raise, and the API error translator
decides what the caller sees.

Engine calls block, so they run in worker threads via ``asyncio.to_thread``;
lifecycle transitions are serialized by an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from jobdeck.core.errors import (
    EngineError,
    JobNotFoundError,
    OperationCancelledError,
    SchedulerNotInitializedError,
    SchedulerStateError,
    StartupError,
)
from jobdeck.core.logging import get_logger
from jobdeck.core.retry import RetryContext, RetryStrategy, startup_retry_policy
from jobdeck.core.settings import JobConfig

from .history import ExecutionHistoryRecorder, ExecutionRecord
from .keys import JobKey, TriggerKey
from .protocol import (
    EngineFactory,
    Job,
    MisfireInstruction,
    ScheduleKind,
    SchedulerEngine,
    TriggerState,
)
from .registry import JobPlan, register_job_from_config

logger = get_logger(__name__)

T = TypeVar("T")


class LifecycleState(str, Enum):
    """Lifecycle of the scheduler as seen by the control plane."""

    STOPPED = "Stopped"
    INITIALIZING = "Initializing"
    RUNNING = "Running"
    STANDBY = "Standby"
    SHUTTING_DOWN = "ShuttingDown"
    SHUTDOWN = "Shutdown"


@dataclass(frozen=True)
class SchedulerStatus:
    """Point-in-time snapshot of the engine."""

    scheduler_name: str
    instance_id: str
    state: LifecycleState
    is_started: bool
    is_shutdown: bool
    in_standby_mode: bool
    job_store_type: str
    thread_pool_type: str
    thread_pool_size: int
    version: str


@dataclass(frozen=True)
class JobDescriptor:
    """A stored job with fire times aggregated over its triggers."""

    key: str
    group: str
    name: str
    job_type: str
    description: str | None
    durable: bool
    requests_recovery: bool
    data: Mapping[str, Any] = field(default_factory=dict)
    next_fire_time: datetime | None = None
    previous_fire_time: datetime | None = None
    trigger_count: int = 0


@dataclass(frozen=True)
class TriggerDescriptor:
    """A stored trigger joined to its owning job."""

    key: str
    group: str
    name: str
    job_key: str
    job_name: str
    description: str | None
    kind: ScheduleKind
    cron_expression: str | None
    repeat_interval: timedelta | None
    repeat_count: int | None
    start_time: datetime | None
    end_time: datetime | None
    state: TriggerState
    misfire_instruction: MisfireInstruction
    next_fire_time: datetime | None = None
    previous_fire_time: datetime | None = None


def _latest(values: Iterable[datetime | None]) -> datetime | None:
    present = [value for value in values if value is not None]
    return max(present) if present else None


class SchedulerController:
    """Lifecycle and job/trigger operations over one scheduling engine.

    Example:
        >>> controller = SchedulerController(factory, ExecutionHistoryRecorder(), plans)
        >>> await controller.start()
        >>> await controller.pause_job("SampleJob")
        JobKey(name='SampleJob', group='DEFAULT')
        >>> await controller.stop()
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        recorder: ExecutionHistoryRecorder,
        plans: Sequence[JobPlan] = (),
        *,
        wait_for_jobs_on_stop: bool = True,
        retry_strategy: RetryStrategy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._engine_factory = engine_factory
        self._recorder = recorder
        self._plans: list[JobPlan] = list(plans)
        self._wait_for_jobs_on_stop = wait_for_jobs_on_stop
        self._retry_strategy = retry_strategy or startup_retry_policy()
        self._sleep = sleep

        self._engine: SchedulerEngine | None = None
        self._transition: LifecycleState | None = None
        self._ready = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def recorder(self) -> ExecutionHistoryRecorder:
        return self._recorder

    @property
    def plans(self) -> list[JobPlan]:
        return list(self._plans)

    @property
    def engine(self) -> SchedulerEngine | None:
        return self._engine

    @property
    def state(self) -> LifecycleState:
        if self._transition is not None:
            return self._transition
        engine = self._engine
        if engine is None:
            return LifecycleState.STOPPED
        if engine.is_shutdown:
            return LifecycleState.SHUTDOWN
        if not engine.is_started:
            return LifecycleState.STOPPED
        if engine.in_standby_mode:
            return LifecycleState.STANDBY
        return LifecycleState.RUNNING

    @property
    def is_ready(self) -> bool:
        """True once startup succeeded and until the engine is shut down."""
        return self._ready and self._engine is not None and not self._engine.is_shutdown

    def _require_engine(self) -> SchedulerEngine:
        if self._engine is None:
            raise SchedulerNotInitializedError()
        return self._engine

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Acquire the engine, attach the recorder and scheduled plans, start it.

        Safe to repeat: the recorder is attached once (matched by name) and
        plans already held by the engine are skipped.
        """
        logger.info("scheduler_initializing")
        try:
            engine = await asyncio.to_thread(self._engine_factory)
            if engine is None:
                raise EngineError("Engine factory returned no scheduler")
            self._engine = engine
            await asyncio.to_thread(self._prepare, engine)
        except Exception as e:
            logger.error("scheduler_initialization_failed", error=str(e), exc_info=True)
            raise
        logger.info("scheduler_initialized", scheduler=engine.scheduler_name)

    def _prepare(self, engine: SchedulerEngine) -> None:
        if all(listener.name != self._recorder.name for listener in engine.job_listeners()):
            engine.add_job_listener(self._recorder)
            logger.info("history_listener_registered", listener=self._recorder.name)

        for plan in self._plans:
            if engine.job_detail(plan.key) is None:
                engine.schedule_job(plan.detail, plan.job_class, plan.triggers)
                logger.info("job_registered", job_key=str(plan.key), triggers=len(plan.triggers))

        if not engine.is_started:
            engine.start()
            logger.info("scheduler_started", scheduler=engine.scheduler_name)
        else:
            logger.warning("scheduler_already_running", scheduler=engine.scheduler_name)

    async def start(self, cancel: asyncio.Event | None = None) -> None:
        """Initialize with retries.  Called once when the process starts.

        Raises:
            StartupError: initialization still failed after every retry.
            OperationCancelledError: *cancel* was set before startup finished.
        """
        async with self._lock:
            if self.state is not LifecycleState.STOPPED:
                logger.warning("scheduler_service_already_started", state=self.state.value)
                return

            logger.info("scheduler_service_starting")
            retry = RetryContext(self._retry_strategy, on_retry=self._log_retry, sleep=self._sleep)
            self._transition = LifecycleState.INITIALIZING
            try:
                await retry.run(self.initialize, cancel=cancel)
            except OperationCancelledError:
                logger.warning("scheduler_service_start_cancelled", attempts=retry.attempts)
                raise
            except Exception as e:
                logger.error("scheduler_service_start_failed", attempts=retry.attempts, error=str(e))
                raise StartupError(
                    f"Scheduler failed to start after {retry.attempts} attempts: {e}",
                    cause=e,
                ) from e
            finally:
                self._transition = None

            self._ready = True
            logger.info("scheduler_service_started", attempts=retry.attempts)

    @staticmethod
    def _log_retry(attempt: int, error: BaseException, delay: float) -> None:
        logger.warning(
            "scheduler_start_retry",
            attempt=attempt,
            retry_in_seconds=delay,
            error=str(error),
        )

    async def stop(self, cancel: asyncio.Event | None = None) -> None:
        """Shut the engine down unless it already is.  Called on process exit."""
        async with self._lock:
            self._ready = False
            engine = self._engine
            if engine is None or engine.is_shutdown:
                logger.warning("scheduler_already_shut_down")
                return
            logger.info("scheduler_stopping")
            await self._shutdown(engine, self._wait_for_jobs_on_stop, cancel)
            logger.info("scheduler_stopped")

    async def _shutdown(
        self,
        engine: SchedulerEngine,
        wait_for_jobs: bool,
        cancel: asyncio.Event | None = None,
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Shutdown cancelled before it began")

        self._transition = LifecycleState.SHUTTING_DOWN
        try:
            shutdown = asyncio.ensure_future(asyncio.to_thread(engine.shutdown, wait_for_jobs))
            if cancel is None:
                await shutdown
                return

            cancelled = asyncio.ensure_future(cancel.wait())
            done, _ = await asyncio.wait(
                {shutdown, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
            if shutdown in done:
                cancelled.cancel()
                shutdown.result()
                return
            # The engine keeps draining in its thread; only the wait is abandoned
            raise OperationCancelledError("Stopped waiting for scheduler shutdown")
        finally:
            self._ready = False
            self._transition = None

    # ------------------------------------------------------------------
    # Scheduler operations
    # ------------------------------------------------------------------

    async def start_scheduler(self) -> bool:
        """Start or resume the engine.  False when it is already running.

        Raises:
            SchedulerStateError: the engine has been shut down.
        """
        async with self._lock:
            engine = self._require_engine()
            state = self.state
            if state is LifecycleState.RUNNING:
                return False
            if state is LifecycleState.SHUTDOWN:
                raise SchedulerStateError("Scheduler has been shut down and cannot be restarted")
            await asyncio.to_thread(engine.start)
            logger.info("scheduler_started", previous_state=state.value)
            return True

    async def standby_scheduler(self) -> bool:
        """Put a running engine in standby.  False in every other state."""
        async with self._lock:
            engine = self._require_engine()
            if self.state is not LifecycleState.RUNNING:
                return False
            await asyncio.to_thread(engine.standby)
            logger.info("scheduler_standby")
            return True

    async def shutdown_scheduler(self, wait_for_jobs: bool = True) -> bool:
        """Shut the engine down.  False when it already is."""
        async with self._lock:
            engine = self._require_engine()
            if engine.is_shutdown:
                return False
            await self._shutdown(engine, wait_for_jobs)
            logger.info("scheduler_shutdown", wait_for_jobs=wait_for_jobs)
            return True

    async def get_status(self) -> SchedulerStatus:
        engine = self._require_engine()
        metadata = await asyncio.to_thread(engine.metadata)
        return SchedulerStatus(
            scheduler_name=engine.scheduler_name,
            instance_id=engine.instance_id,
            state=self.state,
            is_started=engine.is_started,
            is_shutdown=engine.is_shutdown,
            in_standby_mode=engine.in_standby_mode,
            job_store_type=metadata.job_store_type,
            thread_pool_type=metadata.thread_pool_type,
            thread_pool_size=metadata.thread_pool_size,
            version=metadata.version,
        )

    # ------------------------------------------------------------------
    # Jobs and triggers
    # ------------------------------------------------------------------

    async def list_jobs(self) -> list[JobDescriptor]:
        engine = self._require_engine()
        try:
            return await asyncio.to_thread(self._collect_jobs, engine)
        except Exception as e:
            logger.error("list_jobs_failed", error=str(e))
            raise

    @staticmethod
    def _collect_jobs(engine: SchedulerEngine) -> list[JobDescriptor]:
        jobs: list[JobDescriptor] = []
        for group in engine.job_group_names():
            for key in engine.job_keys(group):
                detail = engine.job_detail(key)
                if detail is None:
                    continue
                try:
                    triggers = engine.triggers_of_job(key)
                except JobNotFoundError:
                    # deleted between the key listing and this lookup
                    continue
                jobs.append(
                    JobDescriptor(
                        key=str(key),
                        group=key.group,
                        name=key.name,
                        job_type=detail.job_type,
                        description=detail.description,
                        durable=detail.durable,
                        requests_recovery=detail.requests_recovery,
                        data=dict(detail.data),
                        next_fire_time=_latest(t.next_fire_time for t in triggers),
                        previous_fire_time=_latest(t.previous_fire_time for t in triggers),
                        trigger_count=len(triggers),
                    )
                )
        return jobs

    async def list_triggers(self) -> list[TriggerDescriptor]:
        engine = self._require_engine()
        try:
            return await asyncio.to_thread(self._collect_triggers, engine)
        except Exception as e:
            logger.error("list_triggers_failed", error=str(e))
            raise

    @staticmethod
    def _collect_triggers(engine: SchedulerEngine) -> list[TriggerDescriptor]:
        triggers: list[TriggerDescriptor] = []
        for group in engine.trigger_group_names():
            for key in engine.trigger_keys(group):
                trigger = engine.trigger(key)
                if trigger is None:
                    continue
                is_cron = trigger.kind is ScheduleKind.CRON
                triggers.append(
                    TriggerDescriptor(
                        key=str(key),
                        group=key.group,
                        name=key.name,
                        job_key=str(trigger.job_key),
                        job_name=trigger.job_key.name,
                        description=trigger.description,
                        kind=trigger.kind,
                        cron_expression=trigger.cron_expression if is_cron else None,
                        repeat_interval=trigger.repeat_interval,
                        repeat_count=trigger.repeat_count,
                        start_time=trigger.start_time,
                        end_time=trigger.end_time,
                        state=engine.trigger_state(key),
                        misfire_instruction=trigger.misfire_instruction,
                        next_fire_time=trigger.next_fire_time,
                        previous_fire_time=trigger.previous_fire_time,
                    )
                )
        return triggers

    async def _call_engine(
        self, event: str, func: Callable[..., T], *args: Any, **log_fields: Any
    ) -> T:
        try:
            result = await asyncio.to_thread(func, *args)
        except Exception as e:
            logger.error(f"{event}_failed", error=str(e), **log_fields)
            raise
        logger.info(event, **log_fields)
        return result

    async def pause_job(self, job_key: str) -> JobKey:
        key = JobKey.parse(job_key)
        engine = self._require_engine()
        await self._call_engine("job_paused", engine.pause_job, key, job_key=str(key))
        return key

    async def resume_job(self, job_key: str) -> JobKey:
        key = JobKey.parse(job_key)
        engine = self._require_engine()
        await self._call_engine("job_resumed", engine.resume_job, key, job_key=str(key))
        return key

    async def trigger_job(self, job_key: str, data: Mapping[str, Any] | None = None) -> JobKey:
        key = JobKey.parse(job_key)
        engine = self._require_engine()
        await self._call_engine("job_triggered", engine.trigger_job, key, data, job_key=str(key))
        return key

    async def delete_job(self, job_key: str) -> JobKey:
        """Delete a job and its triggers.

        Raises:
            JobNotFoundError: nothing is stored under the key.
        """
        key = JobKey.parse(job_key)
        engine = self._require_engine()
        deleted = await self._call_engine("job_deleted", engine.delete_job, key, job_key=str(key))
        if not deleted:
            raise JobNotFoundError(str(key))
        return key

    async def pause_trigger(self, trigger_key: str) -> TriggerKey:
        key = TriggerKey.parse(trigger_key)
        engine = self._require_engine()
        await self._call_engine("trigger_paused", engine.pause_trigger, key, trigger_key=str(key))
        return key

    async def resume_trigger(self, trigger_key: str) -> TriggerKey:
        key = TriggerKey.parse(trigger_key)
        engine = self._require_engine()
        await self._call_engine(
            "trigger_resumed", engine.resume_trigger, key, trigger_key=str(key)
        )
        return key

    def get_recent_history(self, count: int) -> list[ExecutionRecord]:
        """Up to *count* newest execution records, newest first."""
        return self._recorder.get_recent(count)

    async def register_job(self, job_type: type[Job], config: JobConfig | None = None) -> JobKey:
        """Schedule *job_type* on the running engine, defaulting from *config*."""
        plan = register_job_from_config(job_type, config)
        engine = self._require_engine()
        await self._call_engine(
            "job_registered",
            engine.schedule_job,
            plan.detail,
            plan.job_class,
            plan.triggers,
            job_key=str(plan.key),
        )
        self._plans.append(plan)
        return plan.key
