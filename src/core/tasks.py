"""Fetch task bookkeeping used for progress and cancellation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class FetchTask:
    """State of one fetch session.

    Cancellation is cooperative: the processor checks ``aborted`` before each
    page and before each resolver.
    """

    task_id: str
    chat_id: object
    aborted: bool = False
    progress: int = 0
    processed: int = 0

    def abort(self) -> None:
        self.aborted = True


class TaskRegistry:
    """Keeps fetch tasks addressable by task id."""

    def __init__(self) -> None:
        self._tasks: Dict[str, FetchTask] = {}

    def create(self, chat_id: object) -> FetchTask:
        task = FetchTask(task_id=uuid.uuid4().hex, chat_id=chat_id)
        self._tasks[task.task_id] = task
        return task

    def get(self, task_id: str) -> Optional[FetchTask]:
        return self._tasks.get(task_id)

    def abort(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        task.abort()
        return True

    def discard(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
