"""Dispatch of incoming commands to the pipeline."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.errors import ConfigError, PipelineError
from core.models import FetchOptions
from core.ports import PlatformClientPort
from core.processor import MessageProcessor
from core.tasks import FetchTask, TaskRegistry

LOGGER = logging.getLogger(__name__)

MESSAGE_FETCH = "message:fetch"
MESSAGE_FETCH_ABORT = "message:fetch:abort"
MESSAGE_SEND = "message:send"
MESSAGE_PROCESS = "message:process"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Turn a datetime or ISO 8601 string into an aware datetime.

    Empty values mean "no bound" and give None. Naive input is taken as UTC,
    matching the UTC-aware dates Telegram returns.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ConfigError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise ConfigError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def fetch_options_from_payload(payload: Dict[str, Any], default_limit: int = 100) -> FetchOptions:
    """Build FetchOptions from a ``message:fetch`` payload."""

    pagination = payload.get("pagination") or {}
    return FetchOptions(
        limit=int(pagination.get("limit", default_limit)),
        offset=int(pagination.get("offset", 0)),
        min_id=payload.get("minId"),
        max_id=payload.get("maxId"),
        start_time=parse_timestamp(payload.get("startTime")),
        end_time=parse_timestamp(payload.get("endTime")),
    )


class CommandHandler:
    """Consumes command topics and runs them against the processor."""

    def __init__(
        self,
        processor: MessageProcessor,
        client: PlatformClientPort,
        tasks: Optional[TaskRegistry] = None,
        default_limit: int = 100,
    ) -> None:
        self._processor = processor
        self._client = client
        self._tasks = tasks or TaskRegistry()
        self._default_limit = default_limit
        self._running: Dict[str, "asyncio.Task[int]"] = {}

    @property
    def tasks(self) -> TaskRegistry:
        return self._tasks

    async def handle(self, topic: str, payload: Dict[str, Any]) -> Any:
        if topic == MESSAGE_FETCH:
            return self.start_fetch(payload)
        if topic == MESSAGE_FETCH_ABORT:
            return self._tasks.abort(payload["taskId"])
        if topic == MESSAGE_SEND:
            return await self._client.send_message(payload["chatId"], payload["content"])
        if topic == MESSAGE_PROCESS:
            return await self._processor.process(payload.get("messages", []))
        raise ConfigError(f"Unknown command topic: {topic}")

    def start_fetch(self, payload: Dict[str, Any]) -> str:
        """Start a fetch session in the background and return its task id.

        The session cleans up after itself when it ends; ``wait`` is only
        needed by callers that want the result.
        """

        chat_id = payload["chatId"]
        options = fetch_options_from_payload(payload, self._default_limit)
        task = self._tasks.create(chat_id)
        runner = asyncio.ensure_future(self._processor.fetch(task.chat_id, options, task))
        self._running[task.task_id] = runner
        runner.add_done_callback(lambda done: self._fetch_done(task, done))
        return task.task_id

    def running(self) -> int:
        """Number of fetch sessions still in progress."""

        return len(self._running)

    async def wait(self, task_id: str) -> int:
        """Wait for a fetch session started by ``start_fetch``.

        Raises KeyError once the session has finished and been cleaned up.
        """

        runner = self._running.get(task_id)
        if runner is None:
            raise KeyError(task_id)
        return await runner

    def _fetch_done(self, task: FetchTask, runner: "asyncio.Task[int]") -> None:
        self._running.pop(task.task_id, None)
        self._tasks.discard(task.task_id)
        if runner.cancelled():
            LOGGER.info("Fetch task %s cancelled", task.task_id)
            return

        exc = runner.exception()
        if exc is None:
            LOGGER.debug("Fetch task %s finished with %s messages", task.task_id, runner.result())
        elif isinstance(exc, PipelineError):
            LOGGER.error("Fetch task %s failed: %s", task.task_id, exc)
        else:
            LOGGER.error("Fetch task %s crashed", task.task_id, exc_info=exc)
