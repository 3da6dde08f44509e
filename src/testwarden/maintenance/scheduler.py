"""AutomationScheduler: recurring maintenance tasks on keyword schedules."""

from __future__ import annotations

import dataclasses
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..logging_config import get_logger
from .models import ExecutionStatus, ScheduledTask, TaskExecution

logger = get_logger(__name__)

MAX_EXECUTIONS = 1000

_SCHEDULE_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
    "weekly": timedelta(hours=168),
}

TaskHandler = Callable[[ScheduledTask], str]


def calculate_next_run(schedule: str, from_time: datetime) -> datetime:
    """Next firing time; unknown schedule keywords run hourly."""
    return from_time + _SCHEDULE_INTERVALS.get(schedule, timedelta(hours=1))


def default_tasks(now: datetime) -> list[ScheduledTask]:
    return [
        ScheduledTask(
            id="cleanup_task",
            name="Cleanup Obsolete Tests",
            type="cleanup",
            schedule="daily",
            next_run=calculate_next_run("daily", now),
            priority=3,
            max_duration=timedelta(minutes=30),
        ),
        ScheduledTask(
            id="optimization_task",
            name="Optimize Test Performance",
            type="optimization",
            schedule="weekly",
            next_run=calculate_next_run("weekly", now),
            priority=2,
            max_duration=timedelta(hours=1),
        ),
    ]


class AutomationScheduler:
    """Fires due tasks and dispatches them to handlers registered per task type.

    A task without a handler is still recorded as executed, with a note in
    its result.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._tasks: dict[str, ScheduledTask] = {t.id: t for t in default_tasks(clock())}
        self._executions: deque[TaskExecution] = deque(maxlen=MAX_EXECUTIONS)
        self._handlers: dict[str, TaskHandler] = {}

    def add_task(self, task: ScheduledTask) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        with self._lock:
            self._handlers[task_type] = handler

    def tasks(self) -> list[ScheduledTask]:
        with self._lock:
            return sorted(self._tasks.values(), key=lambda t: (t.priority, t.id))

    def executions(self) -> list[TaskExecution]:
        with self._lock:
            return list(self._executions)

    def process_scheduled_tasks(self) -> list[TaskExecution]:
        """Fire every enabled task whose ``next_run`` has passed.

        Returns the finished executions of this tick.
        """
        now = self._clock()
        due: list[tuple[ScheduledTask, Optional[TaskHandler]]] = []
        with self._lock:
            for task in sorted(self._tasks.values(), key=lambda t: (t.priority, t.id)):
                if not task.enabled or task.next_run > now:
                    continue
                self._tasks[task.id] = dataclasses.replace(
                    task, last_run=now, next_run=calculate_next_run(task.schedule, now)
                )
                due.append((task, self._handlers.get(task.type)))

        finished = []
        for task, handler in due:
            finished.append(self._run(task, handler, now))
        return finished

    def _run(self, task: ScheduledTask, handler: Optional[TaskHandler], started: datetime) -> TaskExecution:
        logger.info(f"Running scheduled task {task.id}")
        if handler is None:
            execution = TaskExecution(
                task_id=task.id,
                start_time=started,
                status=ExecutionStatus.COMPLETED,
                end_time=self._clock(),
                result=f"no handler registered for {task.type!r}",
            )
        else:
            try:
                result = handler(task)
            except Exception as e:
                logger.exception(f"Scheduled task {task.id} failed")
                execution = TaskExecution(
                    task_id=task.id,
                    start_time=started,
                    status=ExecutionStatus.FAILED,
                    end_time=self._clock(),
                    error=str(e),
                )
            else:
                ended = self._clock()
                status = ExecutionStatus.COMPLETED
                if ended - started > task.max_duration:
                    status = ExecutionStatus.TIMEOUT
                    logger.warning(f"Scheduled task {task.id} exceeded {task.max_duration}")
                execution = TaskExecution(
                    task_id=task.id,
                    start_time=started,
                    status=status,
                    end_time=ended,
                    result=result or "",
                )
        with self._lock:
            self._executions.append(execution)
        return execution
