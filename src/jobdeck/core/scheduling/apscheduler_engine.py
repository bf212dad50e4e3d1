"""APScheduler-based scheduling engine.

Wraps APScheduler 3.x ``BackgroundScheduler`` to provide the
``SchedulerEngine`` protocol.  APScheduler has no notion of jobs with
several triggers, trigger groups or job listeners, so this module keeps
its own registry of jobs and triggers and maps every trigger onto one
APScheduler job (id ``str(trigger_key)``).  All of those APScheduler jobs
call the same execution wrapper, which creates a fresh job instance,
measures run time and notifies the registered job listeners.

Standby maps to ``pause()``/``resume()``; a firing skipped because the
previous run of the same trigger is still executing
(``EVENT_JOB_MAX_INSTANCES``) is reported to listeners as vetoed.

Example::

    >>> engine = APSchedulerEngine(name="JobdeckScheduler", thread_pool_size=4)
    >>> engine.schedule_job(detail, SampleJob, [trigger_spec])
    >>> engine.start()
    >>> # … later …
    >>> engine.shutdown(wait_for_jobs=True)
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

from apscheduler.events import (
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    EVENT_JOB_REMOVED,
    JobEvent,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import STATE_PAUSED, STATE_RUNNING, STATE_STOPPED
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.util import undefined

from jobdeck.core.errors import (
    JobAlreadyExistsError,
    JobNotFoundError,
    SchedulerStateError,
    TriggerNotFoundError,
    ValidationError,
)

from .cron import parse_cron_expression
from .keys import JobKey, TriggerKey
from .protocol import (
    EngineMetadata,
    Job,
    JobDetail,
    JobExecutionContext,
    JobListener,
    MisfireInstruction,
    ScheduleKind,
    TriggerDetail,
    TriggerSpec,
    TriggerState,
)

if TYPE_CHECKING:
    from jobdeck.core.settings import SchedulerSettings

logger = logging.getLogger(__name__)

MANUAL_TRIGGER_GROUP = "MANUAL_TRIGGER"

_MISFIRE_OPTIONS: dict[MisfireInstruction, dict[str, Any]] = {
    MisfireInstruction.SMART_POLICY: {"coalesce": True, "misfire_grace_time": 60},
    MisfireInstruction.FIRE_ONCE_NOW: {"coalesce": True, "misfire_grace_time": None},
    MisfireInstruction.DO_NOTHING: {"coalesce": True, "misfire_grace_time": 1},
    MisfireInstruction.IGNORE_MISFIRE_POLICY: {"coalesce": False, "misfire_grace_time": None},
}


@dataclass
class _StoredJob:
    detail: JobDetail
    job_class: type[Job]
    trigger_keys: list[TriggerKey] = field(default_factory=list)


@dataclass
class _StoredTrigger:
    spec: TriggerSpec
    job_id: str
    paused: bool = False
    complete: bool = False
    error: bool = False
    # APScheduler holds no further fire time; completes after the last firing
    retired: bool = False
    running: int = 0
    fire_count: int = 0
    previous_fire_time: datetime | None = None

    @property
    def fire_limit(self) -> int | None:
        if self.spec.kind is ScheduleKind.SIMPLE and self.spec.repeat_count is not None:
            return self.spec.repeat_count + 1
        return None


def _apscheduler_version() -> str:
    try:
        return version("APScheduler")
    except PackageNotFoundError:
        return "unknown"


class APSchedulerEngine:
    """``SchedulerEngine`` backed by an in-memory APScheduler instance.

    Locking: ``self._lock`` guards the registries and is never held while
    calling into APScheduler, whose job-removal events are dispatched
    while it holds its own job store lock.
    """

    def __init__(
        self,
        name: str = "JobdeckScheduler",
        instance_id: str = "NON_CLUSTERED",
        thread_pool_size: int = 10,
        timezone: Any = "UTC",
    ) -> None:
        self._name = name
        self._instance_id = instance_id
        self._thread_pool_size = thread_pool_size
        self._scheduler = BackgroundScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": ThreadPoolExecutor(thread_pool_size)},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60},
            timezone=timezone,
        )
        self._scheduler.add_listener(
            self._on_scheduler_event,
            EVENT_JOB_REMOVED | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED,
        )

        self._lock = threading.RLock()
        self._jobs: dict[JobKey, _StoredJob] = {}
        self._triggers: dict[TriggerKey, _StoredTrigger] = {}
        self._by_job_id: dict[str, TriggerKey] = {}
        self._manual: dict[str, tuple[JobKey, TriggerKey, dict[str, Any]]] = {}
        self._listeners: list[JobListener] = []
        self._started = False
        self._shutdown = False

    # ------------------------------------------------------------------
    # Identity and lifecycle
    # ------------------------------------------------------------------

    @property
    def scheduler_name(self) -> str:
        return self._name

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def in_standby_mode(self) -> bool:
        return self._scheduler.state == STATE_PAUSED

    def start(self) -> None:
        """Start firing triggers, or leave standby mode."""
        self._ensure_not_shutdown()
        state = self._scheduler.state
        if state == STATE_STOPPED:
            self._scheduler.start()
        elif state == STATE_PAUSED:
            self._scheduler.resume()
        self._started = True
        logger.info("Scheduler %s started", self._name)

    def standby(self) -> None:
        """Stop firing triggers; running jobs are left alone."""
        self._ensure_not_shutdown()
        if self._scheduler.state == STATE_RUNNING:
            self._scheduler.pause()
            logger.info("Scheduler %s in standby mode", self._name)

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        """Stop for good.  With *wait_for_jobs* block until running jobs finish."""
        if self._shutdown:
            return
        self._shutdown = True
        if self._scheduler.state != STATE_STOPPED:
            self._scheduler.shutdown(wait=wait_for_jobs)
        logger.info("Scheduler %s shut down (waited for jobs: %s)", self._name, wait_for_jobs)

    def metadata(self) -> EngineMetadata:
        return EngineMetadata(
            job_store_type=f"{MemoryJobStore.__module__}.{MemoryJobStore.__name__}",
            thread_pool_type=f"{ThreadPoolExecutor.__module__}.{ThreadPoolExecutor.__name__}",
            thread_pool_size=self._thread_pool_size,
            version=_apscheduler_version(),
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def job_listeners(self) -> list[JobListener]:
        with self._lock:
            return list(self._listeners)

    def add_job_listener(self, listener: JobListener) -> None:
        with self._lock:
            self._listeners.append(listener)
        logger.debug("Added job listener %s", listener.name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def job_group_names(self) -> list[str]:
        with self._lock:
            return sorted({key.group for key in self._jobs})

    def job_keys(self, group: str) -> list[JobKey]:
        with self._lock:
            return sorted(key for key in self._jobs if key.group == group)

    def job_detail(self, key: JobKey) -> JobDetail | None:
        with self._lock:
            stored = self._jobs.get(key)
            return stored.detail if stored else None

    def triggers_of_job(self, key: JobKey) -> list[TriggerDetail]:
        with self._lock:
            stored = self._jobs.get(key)
            if stored is None:
                raise JobNotFoundError(str(key))
            snapshot = [(tk, self._triggers[tk]) for tk in stored.trigger_keys if tk in self._triggers]
        return [self._describe(tk, st) for tk, st in snapshot]

    def trigger_group_names(self) -> list[str]:
        with self._lock:
            return sorted({key.group for key in self._triggers})

    def trigger_keys(self, group: str) -> list[TriggerKey]:
        with self._lock:
            return sorted(key for key in self._triggers if key.group == group)

    def trigger(self, key: TriggerKey) -> TriggerDetail | None:
        with self._lock:
            stored = self._triggers.get(key)
        return self._describe(key, stored) if stored else None

    def trigger_state(self, key: TriggerKey) -> TriggerState:
        with self._lock:
            stored = self._triggers.get(key)
            if stored is None:
                return TriggerState.NONE
            if stored.complete:
                return TriggerState.COMPLETE
            if stored.error:
                return TriggerState.ERROR
            if stored.paused:
                return TriggerState.PAUSED
            if stored.running:
                return TriggerState.BLOCKED
            return TriggerState.NORMAL

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def schedule_job(
        self,
        detail: JobDetail,
        job_class: type[Job],
        triggers: Sequence[TriggerSpec] = (),
        replace: bool = False,
    ) -> None:
        """Store *detail* and schedule each of *triggers* for it.

        Raises:
            ValidationError: a trigger is malformed or belongs to another job,
                or a non-durable job has no trigger.
            JobAlreadyExistsError: the job or a trigger key is taken and
                *replace* is false.
        """
        self._ensure_not_shutdown()
        if not triggers and not detail.durable:
            raise ValidationError(
                f"Job {detail.key} is not durable and needs at least one trigger",
                field="triggers",
            )
        seen: set[TriggerKey] = set()
        for spec in triggers:
            if spec.job_key != detail.key:
                raise ValidationError(
                    f"Trigger {spec.key} targets {spec.job_key}, not {detail.key}",
                    field="job_key",
                    value=str(spec.job_key),
                )
            if spec.key in seen:
                raise ValidationError(f"Duplicate trigger {spec.key}", field="key")
            seen.add(spec.key)

        built = [(spec, *self._build_trigger(spec)) for spec in triggers]

        with self._lock:
            existing = self._jobs.get(detail.key)
            if existing is not None and not replace:
                raise JobAlreadyExistsError(str(detail.key))
            for spec in triggers:
                taken = self._triggers.get(spec.key)
                if taken is not None and (not replace or taken.spec.job_key != detail.key):
                    raise JobAlreadyExistsError(str(spec.key))

            stale_ids: list[str] = []
            if existing is not None:
                for tk in existing.trigger_keys:
                    old = self._triggers.pop(tk, None)
                    if old is not None and tk not in seen:
                        self._by_job_id.pop(old.job_id, None)
                        stale_ids.append(old.job_id)

            self._jobs[detail.key] = _StoredJob(detail, job_class, [spec.key for spec in triggers])
            for spec in triggers:
                job_id = str(spec.key)
                self._triggers[spec.key] = _StoredTrigger(spec=spec, job_id=job_id)
                self._by_job_id[job_id] = spec.key

        for job_id in stale_ids:
            self._remove_scheduler_job(job_id)

        for spec, aps_trigger, next_run_time in built:
            self._scheduler.add_job(
                self._fire_trigger,
                trigger=aps_trigger,
                args=[spec.key],
                id=str(spec.key),
                name=str(detail.key),
                max_instances=1,
                replace_existing=replace,
                next_run_time=next_run_time,
                **_MISFIRE_OPTIONS[spec.misfire_instruction],
            )
        logger.info(
            "Scheduled job %s (%s) with %d trigger(s)",
            detail.key,
            detail.job_type,
            len(triggers),
        )

    def pause_job(self, key: JobKey) -> None:
        for trigger_key in self._trigger_keys_of(key):
            self.pause_trigger(trigger_key)

    def resume_job(self, key: JobKey) -> None:
        for trigger_key in self._trigger_keys_of(key):
            self.resume_trigger(trigger_key)

    def trigger_job(self, key: JobKey, data: Mapping[str, Any] | None = None) -> None:
        """Fire *key* once, now, through a one-off trigger."""
        self._ensure_not_shutdown()
        with self._lock:
            if key not in self._jobs:
                raise JobNotFoundError(str(key))
            trigger_key = TriggerKey(name=f"MT_{uuid.uuid4().hex}", group=MANUAL_TRIGGER_GROUP)
            job_id = f"manual:{trigger_key}"
            self._manual[job_id] = (key, trigger_key, dict(data or {}))

        self._scheduler.add_job(
            self._fire_manual,
            trigger=DateTrigger(run_date=self._now()),
            args=[job_id],
            id=job_id,
            name=str(key),
            misfire_grace_time=None,
        )
        logger.info("Job %s triggered manually via %s", key, trigger_key)

    def delete_job(self, key: JobKey) -> bool:
        """Remove a job and all of its triggers.  False if it was not stored."""
        self._ensure_not_shutdown()
        with self._lock:
            stored = self._jobs.pop(key, None)
            if stored is None:
                return False
            job_ids = []
            for trigger_key in stored.trigger_keys:
                removed = self._triggers.pop(trigger_key, None)
                if removed is not None:
                    self._by_job_id.pop(removed.job_id, None)
                    job_ids.append(removed.job_id)

        for job_id in job_ids:
            self._remove_scheduler_job(job_id)
        logger.info("Deleted job %s", key)
        return True

    def pause_trigger(self, key: TriggerKey) -> None:
        stored = self._stored_trigger(key)
        with self._lock:
            stored.paused = True
        if not stored.complete:
            self._call_scheduler(self._scheduler.pause_job, stored.job_id)

    def resume_trigger(self, key: TriggerKey) -> None:
        stored = self._stored_trigger(key)
        with self._lock:
            stored.paused = False
        if not stored.complete:
            # APScheduler drops a job whose trigger has no fire time left
            self._call_scheduler(self._scheduler.resume_job, stored.job_id)
            if stored.retired:
                self._complete_trigger(key)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _fire_trigger(self, trigger_key: TriggerKey) -> None:
        with self._lock:
            stored = self._triggers.get(trigger_key)
            if stored is None or stored.complete:
                return
            owner = self._jobs.get(stored.spec.job_key)
            if owner is None:
                return
            limit = stored.fire_limit
            if limit is not None and stored.fire_count >= limit:
                return
            stored.fire_count += 1
            exhausted = limit is not None and stored.fire_count >= limit
            fire_time = self._now()
            stored.previous_fire_time = fire_time
            stored.running += 1

        ran = False
        try:
            ran = self._execute(owner, trigger_key, fire_time, {})
        finally:
            with self._lock:
                stored.running -= 1
                stored.error = stored.error or not ran
                finished = exhausted or stored.retired

        if not ran:
            self._call_scheduler(self._scheduler.pause_job, stored.job_id)
        elif finished:
            self._complete_trigger(trigger_key)

    def _fire_manual(self, job_id: str) -> None:
        with self._lock:
            entry = self._manual.pop(job_id, None)
            if entry is None:
                return
            job_key, trigger_key, data = entry
            owner = self._jobs.get(job_key)
        if owner is None:
            logger.warning("Manual firing of %s skipped: job no longer exists", job_key)
            return
        self._execute(owner, trigger_key, self._now(), data)

    def _execute(
        self,
        owner: _StoredJob,
        trigger_key: TriggerKey,
        fire_time: datetime,
        extra_data: Mapping[str, Any],
    ) -> bool:
        """Run one firing.  Returns False when the job could not be created."""
        try:
            instance = owner.job_class()
        except Exception:
            logger.exception("Could not create an instance of job %s", owner.detail.key)
            return False

        context = JobExecutionContext(
            job=owner.detail,
            trigger_key=trigger_key,
            fire_time=fire_time,
            data={**owner.detail.data, **extra_data},
        )
        self._notify("job_to_be_executed", context)

        error: BaseException | None = None
        started = time.perf_counter()
        try:
            context.result = instance.execute(context)
        except Exception as e:
            error = e
            logger.exception("Job %s failed (trigger %s)", owner.detail.key, trigger_key)
        context.run_time = timedelta(seconds=time.perf_counter() - started)

        self._notify("job_was_executed", context, error)
        return True

    def _notify(self, method: str, *args: Any) -> None:
        for listener in self.job_listeners():
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("Job listener %s failed in %s", listener.name, method)

    def _on_scheduler_event(self, event: JobEvent) -> None:
        with self._lock:
            trigger_key = self._by_job_id.get(event.job_id)
        if trigger_key is None:
            return
        if event.code == EVENT_JOB_REMOVED:
            self._retire(trigger_key)
            return
        if event.code == EVENT_JOB_MAX_INSTANCES:
            self._veto(trigger_key)
        with self._lock:
            stored = self._triggers.get(trigger_key)
            retired = stored is not None and stored.retired
        # the final firing was dropped, so no run will complete the trigger
        if retired:
            self._complete_trigger(trigger_key)

    def _retire(self, trigger_key: TriggerKey) -> None:
        """Note that APScheduler holds no further fire time for *trigger_key*.

        Removal is reported as soon as the final firing is submitted, before
        it runs, so completion waits for that firing to run or be dropped.
        """
        with self._lock:
            stored = self._triggers.get(trigger_key)
            if stored is not None and not stored.complete:
                stored.retired = True

    def _veto(self, trigger_key: TriggerKey) -> None:
        with self._lock:
            stored = self._triggers.get(trigger_key)
            owner = self._jobs.get(stored.spec.job_key) if stored else None
        if owner is None:
            return
        logger.warning(
            "Firing of %s via %s skipped: previous run still executing",
            owner.detail.key,
            trigger_key,
        )
        context = JobExecutionContext(job=owner.detail, trigger_key=trigger_key, fire_time=self._now())
        self._notify("job_execution_vetoed", context)

    def _complete_trigger(self, trigger_key: TriggerKey) -> None:
        with self._lock:
            stored = self._triggers.get(trigger_key)
            if stored is None or stored.complete:
                return
            stored.complete = True
            owner = self._jobs.get(stored.spec.job_key)
            drop_owner = (
                owner is not None
                and not owner.detail.durable
                and all(
                    self._triggers[tk].complete
                    for tk in owner.trigger_keys
                    if tk in self._triggers
                )
            )
            if drop_owner:
                del self._jobs[owner.detail.key]
                for tk in owner.trigger_keys:
                    removed = self._triggers.pop(tk, None)
                    if removed is not None:
                        self._by_job_id.pop(removed.job_id, None)

        logger.info("Trigger %s complete", trigger_key)
        self._remove_scheduler_job(stored.job_id)
        if drop_owner:
            logger.info("Removed non-durable job %s after its last trigger completed", owner.detail.key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.now(self._scheduler.timezone)

    def _ensure_not_shutdown(self) -> None:
        if self._shutdown:
            raise SchedulerStateError(f"Scheduler {self._name} has been shut down")

    def _trigger_keys_of(self, key: JobKey) -> list[TriggerKey]:
        self._ensure_not_shutdown()
        with self._lock:
            stored = self._jobs.get(key)
            if stored is None:
                raise JobNotFoundError(str(key))
            return list(stored.trigger_keys)

    def _stored_trigger(self, key: TriggerKey) -> _StoredTrigger:
        self._ensure_not_shutdown()
        with self._lock:
            stored = self._triggers.get(key)
        if stored is None:
            raise TriggerNotFoundError(str(key))
        return stored

    def _call_scheduler(self, method: Callable[[str], Any], job_id: str) -> None:
        try:
            method(job_id)
        except JobLookupError:
            logger.debug("Scheduler job %s already gone", job_id)

    def _remove_scheduler_job(self, job_id: str) -> None:
        self._call_scheduler(self._scheduler.remove_job, job_id)

    def _next_fire_time(self, job_id: str) -> datetime | None:
        aps_job = self._scheduler.get_job(job_id)
        if aps_job is None:
            return None
        # Jobs added before start() have no next_run_time until the scheduler computes it
        if hasattr(aps_job, "next_run_time"):
            return aps_job.next_run_time
        return aps_job.trigger.get_next_fire_time(None, self._now())

    def _describe(self, key: TriggerKey, stored: _StoredTrigger) -> TriggerDetail:
        spec = stored.spec
        next_fire = None if stored.complete or stored.paused else self._next_fire_time(stored.job_id)
        return TriggerDetail(
            key=key,
            job_key=spec.job_key,
            kind=spec.kind,
            cron_expression=spec.cron_expression if spec.kind is ScheduleKind.CRON else None,
            repeat_interval=spec.repeat_interval if spec.kind is ScheduleKind.SIMPLE else None,
            repeat_count=spec.repeat_count if spec.kind is ScheduleKind.SIMPLE else None,
            start_time=spec.start_time,
            end_time=spec.end_time,
            next_fire_time=next_fire,
            previous_fire_time=stored.previous_fire_time,
            misfire_instruction=spec.misfire_instruction,
            description=spec.description,
        )

    def _build_trigger(self, spec: TriggerSpec) -> tuple[BaseTrigger, Any]:
        """Translate a TriggerSpec into an APScheduler trigger and first run time."""
        if spec.start_time and spec.end_time and spec.end_time < spec.start_time:
            raise ValidationError(f"Trigger {spec.key} ends before it starts", field="end_time")

        tz = self._scheduler.timezone
        if spec.kind is ScheduleKind.CRON:
            if not spec.cron_expression:
                raise ValidationError(
                    f"Cron trigger {spec.key} has no cron expression", field="cron_expression"
                )
            trigger = parse_cron_expression(
                spec.cron_expression,
                timezone=tz,
                start_date=spec.start_time,
                end_date=spec.end_time,
            )
            return trigger, undefined

        if spec.kind is ScheduleKind.SIMPLE:
            if spec.repeat_count is not None and spec.repeat_count < 0:
                raise ValidationError(
                    f"Trigger {spec.key} repeat count must be >= 0",
                    field="repeat_count",
                    value=spec.repeat_count,
                )
            start = spec.start_time or self._now()
            if spec.repeat_interval is None or spec.repeat_count == 0:
                if spec.repeat_count:
                    raise ValidationError(
                        f"Trigger {spec.key} repeats but has no repeat interval",
                        field="repeat_interval",
                    )
                return DateTrigger(run_date=start, timezone=tz), undefined
            if spec.repeat_interval <= timedelta(0):
                raise ValidationError(
                    f"Trigger {spec.key} repeat interval must be positive",
                    field="repeat_interval",
                    value=str(spec.repeat_interval),
                )
            trigger = IntervalTrigger(
                seconds=spec.repeat_interval.total_seconds(),
                start_date=start,
                end_date=spec.end_time,
                timezone=tz,
            )
            # Simple triggers fire at their start time, not one interval later
            return trigger, start

        if not isinstance(spec.native, BaseTrigger):
            raise ValidationError(
                f"Trigger {spec.key} of kind 'other' needs an APScheduler trigger",
                field="native",
            )
        return spec.native, undefined


class SchedulerFactory:
    """Builds the engine from settings once and hands out that instance.

    Instances are callable, so a factory can be passed wherever an
    ``EngineFactory`` is expected.
    """

    def __init__(self, settings: SchedulerSettings) -> None:
        self._settings = settings
        self._engine: APSchedulerEngine | None = None
        self._lock = threading.Lock()

    def get_scheduler(self) -> APSchedulerEngine:
        with self._lock:
            if self._engine is None:
                self._engine = APSchedulerEngine(
                    name=self._settings.name,
                    instance_id=self._settings.instance_id,
                    thread_pool_size=self._settings.thread_pool_size,
                    timezone=self._settings.timezone,
                )
                logger.debug("Created scheduler engine %s", self._settings.name)
            return self._engine

    def __call__(self) -> APSchedulerEngine:
        return self.get_scheduler()
