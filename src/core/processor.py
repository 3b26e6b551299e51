"""Core message resolution pipeline.

This module is integration-agnostic. It relies on ports for the platform,
the event sink and an injected converter, enabling other frontends or
adapters without changes here.

For every batch the order is strict:
1) Convert native messages (conversion failures are skipped)
2) Emit the converted batch on ``message:data``
3) Run each registered resolver in order, merging its output by uuid
4) Emit the final batch on ``storage:record:messages``
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from core.config import FetchConfig
from core.errors import ConversionError, ResolverError
from core.events import MESSAGE_DATA, MESSAGE_FETCH_PROGRESS, STORAGE_RECORD_MESSAGES
from core.fetcher import FetchDriver
from core.merge import merge_resolved
from core.models import CanonicalMessage, FetchOptions, release_media_bytes
from core.ports import EventSinkPort
from core.resolvers import RUN, Resolver, ResolverRegistry
from core.tasks import FetchTask

LOGGER = logging.getLogger(__name__)

Converter = Callable[[Any], CanonicalMessage]


class MessageProcessor:
    """Orchestrates fetch, conversion, the resolver chain and emission."""

    def __init__(
        self,
        converter: Converter,
        resolvers: ResolverRegistry,
        sink: EventSinkPort,
        fetcher: Optional[FetchDriver] = None,
        fetch_config: Optional[FetchConfig] = None,
    ) -> None:
        self._convert = converter
        self._resolvers = resolvers
        self._sink = sink
        self._fetcher = fetcher
        self._fetch_config = fetch_config or FetchConfig()

    def convert(self, native_messages: Iterable[Any]) -> List[CanonicalMessage]:
        """Convert native messages, skipping the ones that cannot be converted."""

        converted: List[CanonicalMessage] = []
        for native in native_messages:
            try:
                converted.append(self._convert(native))
            except ConversionError as exc:
                LOGGER.debug("Skipping message: %s", exc)
        return converted

    async def process(
        self,
        native_messages: Iterable[Any],
        task: Optional[FetchTask] = None,
    ) -> List[CanonicalMessage]:
        """Run one batch of native messages through the whole pipeline.

        Returns the final batch with raw media bytes released.
        """

        batch = self.convert(native_messages)
        LOGGER.debug("Converted %s messages", len(batch))
        if not batch:
            return []

        # Return the converted messages first so consumers can render early.
        self._sink.emit(MESSAGE_DATA, {"messages": batch})

        batch = await self.resolve(batch, task)
        self._sink.emit(STORAGE_RECORD_MESSAGES, {"messages": batch})
        return release_media_bytes(batch)

    async def resolve(
        self,
        batch: Sequence[CanonicalMessage],
        task: Optional[FetchTask] = None,
    ) -> List[CanonicalMessage]:
        """Apply every resolver in registry order and return the merged batch."""

        current = list(batch)
        for name, resolver in self._resolvers.entries():
            if task is not None and task.aborted:
                LOGGER.info("Task %s aborted, skipping remaining resolvers", task.task_id)
                break

            LOGGER.debug("Process messages with resolver %s", name)
            try:
                result = await self._run_resolver(resolver, current)
            except Exception as exc:
                # The stage contributes nothing; the chain goes on with the
                # batch as it was before this resolver.
                LOGGER.warning("%s", ResolverError(name, exc))
                continue

            if result:
                current = merge_resolved(current, result)
        return current

    async def _run_resolver(
        self,
        resolver: Resolver,
        batch: List[CanonicalMessage],
    ) -> List[CanonicalMessage]:
        if resolver.mode == RUN:
            return list(await resolver.run(list(batch)))

        result: List[CanonicalMessage] = []
        async for message in resolver.stream(list(batch)):
            result.append(message)
            self._sink.emit(MESSAGE_DATA, {"messages": [message]})
        return result

    async def fetch(self, chat_id: Any, options: FetchOptions, task: FetchTask) -> int:
        """Fetch and process pages for ``chat_id`` until done or aborted.

        ``NotAuthorized`` and ``FetchFailed`` propagate to the caller; an
        empty platform response simply ends the session.
        """

        if self._fetcher is None:
            raise RuntimeError("MessageProcessor was built without a fetch driver")

        pages = self._fetcher.iter_pages(
            chat_id,
            options,
            self._fetch_config.page_size,
            should_stop=lambda: task.aborted,
        )
        try:
            async for page in pages:
                processed = await self.process(page, task)
                task.processed += len(processed)
                task.progress = _progress(task.processed, options.limit)
                self._sink.emit(
                    MESSAGE_FETCH_PROGRESS,
                    {"task_id": task.task_id, "progress": task.progress},
                )
        finally:
            await pages.aclose()

        if task.aborted:
            LOGGER.info("Task %s aborted, no further pages", task.task_id)
        else:
            task.progress = 100
            self._sink.emit(MESSAGE_FETCH_PROGRESS, {"task_id": task.task_id, "progress": 100})
        LOGGER.info("Fetched %s messages from %s", task.processed, chat_id)
        return task.processed


def _progress(done: int, limit: int) -> int:
    if limit <= 0:
        return 100
    return min(100, int(done * 100 / limit))
