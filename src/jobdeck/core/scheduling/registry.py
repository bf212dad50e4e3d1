"""Job registration plans.

Jobs are registered explicitly: the host application hands the builder a
list of job classes, each optionally paired with a :class:`JobConfig`.
Without an explicit descriptor the builder picks the configured entry whose
``type`` contains the class name.  Each entry becomes a :class:`JobPlan`
(job detail plus trigger specs) that the controller schedules on the engine.

Every missing field is defaulted on its own::

    job name      → class name
    job group     → DEFAULT
    trigger name  → "<ClassName>-trigger"
    trigger group → the job's group
    cron          → "0/30 * * * * ?" (every 30 seconds)

Example:
    >>> plans = (
    ...     JobRegistryBuilder(settings.jobs)
    ...     .add(SampleJob)
    ...     .add(CleanupJob, JobConfig(type="CleanupJob", group="maintenance"))
    ...     .build()
    ... )
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from jobdeck.core.errors import ValidationError
from jobdeck.core.settings import JobConfig, TriggerConfig

from .cron import DEFAULT_CRON_EXPRESSION
from .keys import DEFAULT_GROUP, JobKey, TriggerKey
from .protocol import Job, JobDetail, ScheduleKind, TriggerSpec, job_type_name

DEFAULT_CRON = DEFAULT_CRON_EXPRESSION


@dataclass(frozen=True)
class JobPlan:
    """A job class with the detail and triggers it is scheduled under."""

    detail: JobDetail
    job_class: type[Job]
    triggers: tuple[TriggerSpec, ...]

    @property
    def key(self) -> JobKey:
        return self.detail.key


def default_trigger_name(job_type: type) -> str:
    return f"{job_type.__name__}-trigger"


def find_job_config(job_type: type, job_configs: Iterable[JobConfig]) -> JobConfig | None:
    """First configured entry whose ``type`` contains the class name."""
    class_name = job_type.__name__
    for config in job_configs:
        if class_name in config.type:
            return config
    return None


def _cron_trigger(job_type: type, job_key: JobKey, config: TriggerConfig | None) -> TriggerSpec:
    config = config or TriggerConfig()
    return TriggerSpec(
        key=TriggerKey(
            name=config.name or default_trigger_name(job_type),
            group=config.group or job_key.group,
        ),
        job_key=job_key,
        kind=ScheduleKind.CRON,
        cron_expression=config.cron_expression or DEFAULT_CRON,
    )


def register_job_with_defaults(job_type: type[Job]) -> JobPlan:
    """Plan for a job with no configuration: one trigger on the fallback cron."""
    job_key = JobKey(name=job_type.__name__, group=DEFAULT_GROUP)
    detail = JobDetail(key=job_key, job_type=job_type_name(job_type))
    return JobPlan(detail, job_type, (_cron_trigger(job_type, job_key, None),))


def register_job_from_config(job_type: type[Job], config: JobConfig | None) -> JobPlan:
    """Plan for *job_type* from *config*, defaulting each missing field."""
    if config is None:
        return register_job_with_defaults(job_type)

    job_key = JobKey(
        name=config.name or job_type.__name__,
        group=config.group or DEFAULT_GROUP,
    )
    detail = JobDetail(
        key=job_key,
        job_type=job_type_name(job_type),
        description=config.description,
        durable=config.durable,
        data=dict(config.data),
    )
    trigger_configs: Sequence[TriggerConfig | None] = config.triggers or [None]
    triggers = tuple(_cron_trigger(job_type, job_key, tc) for tc in trigger_configs)
    return JobPlan(detail, job_type, triggers)


def import_job_class(path: str) -> type[Job]:
    """Import a job class from ``"package.module:ClassName"``.

    Raises:
        ValidationError: the path is malformed, cannot be imported, or does
            not name a class with an ``execute`` method.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValidationError(
            f"Job class must be given as 'module:ClassName', got {path!r}",
            field="job",
            value=path,
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValidationError(
            f"Cannot import {module_name!r}: {e}", field="job", value=path, cause=e
        ) from e

    job_class = getattr(module, attr, None)
    if not isinstance(job_class, type) or not callable(getattr(job_class, "execute", None)):
        raise ValidationError(f"{path!r} is not a job class", field="job", value=path)
    return job_class


class JobRegistryBuilder:
    """Collects job classes and turns them into :class:`JobPlan` objects."""

    def __init__(self, job_configs: Iterable[JobConfig] = ()) -> None:
        self._job_configs = list(job_configs)
        self._entries: list[tuple[type[Job], JobConfig | None]] = []

    def add(self, job_type: type[Job], descriptor: JobConfig | None = None) -> JobRegistryBuilder:
        if not isinstance(job_type, type) or not callable(getattr(job_type, "execute", None)):
            raise ValidationError(
                f"{job_type!r} is not a job class (needs an execute method)",
                field="job_type",
            )
        self._entries.append((job_type, descriptor))
        return self

    def add_all(
        self, registrations: Iterable[type[Job] | tuple[type[Job], JobConfig | None]]
    ) -> JobRegistryBuilder:
        for entry in registrations:
            if isinstance(entry, tuple):
                self.add(*entry)
            else:
                self.add(entry)
        return self

    def build(self) -> list[JobPlan]:
        """Resolve configuration and build one plan per registered job.

        Raises:
            ValidationError: two registrations resolve to the same job key.
        """
        plans: list[JobPlan] = []
        seen: set[JobKey] = set()
        for job_type, descriptor in self._entries:
            config = descriptor or find_job_config(job_type, self._job_configs)
            plan = register_job_from_config(job_type, config)
            if plan.key in seen:
                raise ValidationError(f"Job {plan.key} is registered more than once", field="key")
            seen.add(plan.key)
            plans.append(plan)
        return plans
