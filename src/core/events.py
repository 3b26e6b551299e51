"""In-process event sink and the topics the core emits."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Set

LOGGER = logging.getLogger(__name__)

MESSAGE_DATA = "message:data"
MESSAGE_FETCH_PROGRESS = "message:fetch:progress"
STORAGE_RECORD_MESSAGES = "storage:record:messages"

Handler = Callable[[dict], Any]


class EventBus:
    """Fire-and-forget topic dispatcher implementing ``EventSinkPort``.

    Plain callables run inline; coroutine handlers are scheduled on the
    running loop. Handler failures are logged and never reach the emitter.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._background: Set["asyncio.Future[Any]"] = set()

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._handlers[topic].append(handler)

    def emit(self, topic: str, payload: dict) -> None:
        for handler in list(self._handlers.get(topic, ())):
            try:
                result = handler(payload)
            except Exception:
                LOGGER.exception("Event handler failed for %s", topic)
                continue
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._background.add(future)
                future.add_done_callback(self._handler_done)

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""

        while self._background:
            await asyncio.wait(list(self._background))

    def _handler_done(self, future: "asyncio.Future[Any]") -> None:
        self._background.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error("Async event handler failed: %s", exc)
