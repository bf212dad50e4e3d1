"""Scheduling for jobdeck.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOBDECK SCHEDULING - control plane over a job scheduling engine             │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from jobdeck.core.scheduling import (                              │   │
│  │       ExecutionHistoryRecorder,                                      │   │
│  │       JobRegistryBuilder,                                            │   │
│  │       SchedulerController,                                           │   │
│  │       SchedulerFactory,                                              │   │
│  │   )                                                                  │   │
│  │                                                                      │   │
│  │   plans = JobRegistryBuilder(settings.jobs).add(SampleJob).build()   │   │
│  │   controller = SchedulerController(                                  │   │
│  │       SchedulerFactory(settings.scheduler),                          │   │
│  │       ExecutionHistoryRecorder(settings.scheduler.history_capacity), │   │
│  │       plans,                                                         │   │
│  │   )                                                                  │   │
│  │   await controller.start()                                           │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Modules:                                                                     │
│  - keys:               JobKey / TriggerKey ("group.name")                    │
│  - protocol:           SchedulerEngine contract, job and trigger models      │
│  - cron:               Quartz-style and crontab expressions → CronTrigger    │
│  - apscheduler_engine: APScheduler 3.x implementation of the contract        │
│  - history:            bounded execution history (job listener)              │
│  - registry:           explicit job registration with per-field defaults     │
│  - controller:         lifecycle state machine and job/trigger operations    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from .apscheduler_engine import APSchedulerEngine, SchedulerFactory
from .controller import (
    JobDescriptor,
    LifecycleState,
    SchedulerController,
    SchedulerStatus,
    TriggerDescriptor,
)
from .cron import DEFAULT_CRON_EXPRESSION, parse_cron_expression
from .history import ExecutionHistoryRecorder, ExecutionRecord
from .keys import DEFAULT_GROUP, JobKey, TriggerKey
from .protocol import (
    EngineMetadata,
    Job,
    JobDetail,
    JobExecutionContext,
    JobListener,
    MisfireInstruction,
    ScheduleKind,
    SchedulerEngine,
    TriggerDetail,
    TriggerSpec,
    TriggerState,
)
from .registry import (
    JobPlan,
    JobRegistryBuilder,
    register_job_from_config,
    register_job_with_defaults,
)

__all__ = [
    # Keys
    "DEFAULT_GROUP",
    "JobKey",
    "TriggerKey",
    # Engine contract
    "EngineMetadata",
    "Job",
    "JobDetail",
    "JobExecutionContext",
    "JobListener",
    "MisfireInstruction",
    "ScheduleKind",
    "SchedulerEngine",
    "TriggerDetail",
    "TriggerSpec",
    "TriggerState",
    # Engine
    "APSchedulerEngine",
    "SchedulerFactory",
    "DEFAULT_CRON_EXPRESSION",
    "parse_cron_expression",
    # History
    "ExecutionHistoryRecorder",
    "ExecutionRecord",
    # Registration
    "JobPlan",
    "JobRegistryBuilder",
    "register_job_from_config",
    "register_job_with_defaults",
    # Controller
    "JobDescriptor",
    "LifecycleState",
    "SchedulerController",
    "SchedulerStatus",
    "TriggerDescriptor",
]
