"""Job classes used by the tests."""

from __future__ import annotations

import threading
import time

from jobdeck.core.scheduling import JobExecutionContext


class SampleJob:
    """Records every context it is executed with."""

    executions: list[JobExecutionContext] = []
    _lock = threading.Lock()

    def execute(self, context: JobExecutionContext) -> str:
        with SampleJob._lock:
            SampleJob.executions.append(context)
        return "done"

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls.executions = []


class CleanupJob:
    def execute(self, context: JobExecutionContext) -> None:
        return None


class FailingJob:
    def execute(self, context: JobExecutionContext) -> None:
        raise RuntimeError("disk full")


class SlowJob:
    """Sleeps long enough for the next firing to overlap."""

    duration = 0.5

    def execute(self, context: JobExecutionContext) -> None:
        time.sleep(self.duration)


class UnbuildableJob:
    def __init__(self) -> None:
        raise RuntimeError("missing dependency")

    def execute(self, context: JobExecutionContext) -> None:
        return None


class NotAJob:
    """Has no execute method."""
