"""Task submission and fixed-interval polling."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import quote

from .api import ApiClient
from .errors import TaskError, TaskTimeoutError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 30
POLL_INTERVAL: float = 2.0

COMPLIANCE_AUDIT = "compliance_audit"


class TaskStatus(StrEnum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.DONE, TaskStatus.ERROR})


@dataclass
class Task:
    id: str
    status: TaskStatus
    result: Any = None
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_snapshot(cls, task_id: str, snapshot: Any) -> Task:
        data: dict[str, Any] = snapshot if isinstance(snapshot, dict) else {}
        raw_status = str(data.get("status", ""))
        try:
            status = TaskStatus(raw_status)
        except ValueError:
            # Anything that is not terminal keeps the poll loop going.
            logger.debug("Task %s reported unknown status %r", task_id, raw_status)
            status = TaskStatus.PENDING
        error = data.get("error")
        return cls(
            id=task_id,
            status=status,
            result=data.get("result"),
            error=str(error) if error is not None else None,
            raw=data,
        )

    def to_dict(self) -> dict[str, Any]:
        return {**self.raw, "id": self.id, "status": self.status.value}


class TaskPoller:
    """Submits a task and polls it until done, error, or the attempt budget runs out.

    Poll attempts are strictly sequential. Transport and HTTP errors from the
    ApiClient propagate on the first occurrence; wrap the call to retry them.
    """

    def __init__(
        self,
        api: ApiClient,
        max_attempts: int = MAX_ATTEMPTS,
        interval: float = POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    def submit(self, kind: str, data: Mapping[str, str]) -> str:
        created = self.api.post("/tasks", {"kind": kind, "data": dict(data)})
        task_id = created.get("id") if isinstance(created, dict) else None
        if not task_id:
            raise TaskError(f"Task submission for {kind!r} returned no id")
        logger.info("Submitted %s task %s", kind, task_id)
        return str(task_id)

    def fetch(self, task_id: str) -> Task:
        snapshot = self.api.get(f"/tasks/{quote(task_id, safe='')}")
        return Task.from_snapshot(task_id, snapshot)

    def await_task(
        self,
        task_id: str,
        max_attempts: int | None = None,
        interval: float | None = None,
        on_poll: Callable[[int, Task], None] | None = None,
    ) -> Task:
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        delay = interval if interval is not None else self.interval

        for attempt in range(1, attempts + 1):
            task = self.fetch(task_id)
            if on_poll is not None:
                on_poll(attempt, task)
            if task.status == TaskStatus.DONE:
                return task
            if task.status == TaskStatus.ERROR:
                raise TaskError(task.error or f"Task {task_id} failed")
            if attempt < attempts:
                self._sleep(delay)

        logger.warning("Task %s still pending after %d polls", task_id, attempts)
        raise TaskTimeoutError(task_id, attempts)

    def submit_and_await(
        self,
        kind: str,
        data: Mapping[str, str],
        max_attempts: int | None = None,
        interval: float | None = None,
        on_poll: Callable[[int, Task], None] | None = None,
    ) -> Task:
        task_id = self.submit(kind, data)
        return self.await_task(task_id, max_attempts=max_attempts, interval=interval, on_poll=on_poll)

    def queue_compliance_audit(
        self,
        form: Mapping[str, str],
        on_poll: Callable[[int, Task], None] | None = None,
    ) -> Task:
        return self.submit_and_await(COMPLIANCE_AUDIT, form, on_poll=on_poll)
