"""Execution history recorder.

A job listener that keeps the most recent job outcomes in memory, newest
first.  It is called from the engine's worker threads, so the buffer is a
``deque(maxlen=capacity)`` behind a ``threading.Lock``; inserting at the
head and evicting the oldest entry is one ``appendleft`` under the lock.
Order is completion order, not fire time.
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from jobdeck.core.logging import get_logger

from .protocol import JobExecutionContext

logger = get_logger(__name__)

DEFAULT_HISTORY_CAPACITY = 100


@dataclass(frozen=True)
class ExecutionRecord:
    """Outcome of one job execution."""

    job_key: str
    trigger_key: str
    fire_time: datetime
    duration: float
    succeeded: bool
    error: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ExecutionHistoryRecorder:
    """Bounded, newest-first log of job executions.

    Example:
        >>> recorder = ExecutionHistoryRecorder(capacity=100)
        >>> engine.add_job_listener(recorder)
        >>> recorder.get_recent(5)
    """

    name = "execution-history"

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._records: deque[ExecutionRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def job_to_be_executed(self, context: JobExecutionContext) -> None:
        logger.debug(
            "job_to_be_executed",
            job_key=str(context.job.key),
            trigger_key=str(context.trigger_key),
        )

    def job_execution_vetoed(self, context: JobExecutionContext) -> None:
        logger.warning(
            "job_execution_vetoed",
            job_key=str(context.job.key),
            trigger_key=str(context.trigger_key),
        )

    def job_was_executed(
        self, context: JobExecutionContext, error: BaseException | None
    ) -> None:
        record = ExecutionRecord(
            job_key=str(context.job.key),
            trigger_key=str(context.trigger_key),
            fire_time=context.fire_time,
            duration=context.run_time.total_seconds(),
            succeeded=error is None,
            error=str(error) if error is not None else None,
        )
        self.add(record)
        if error is None:
            logger.info("job_executed", job_key=record.job_key, duration=record.duration)
        else:
            logger.warning(
                "job_execution_failed",
                job_key=record.job_key,
                duration=record.duration,
                error=record.error,
            )

    def add(self, record: ExecutionRecord) -> None:
        """Insert *record* at the head, evicting the oldest beyond capacity."""
        with self._lock:
            self._records.appendleft(record)

    def get_recent(self, count: int) -> list[ExecutionRecord]:
        """Up to *count* newest records, newest first."""
        if count <= 0:
            return []
        with self._lock:
            return list(self._records)[:count]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
