from __future__ import annotations

import asyncio

from core.events import MESSAGE_DATA, EventBus


def test_sync_handlers_receive_payload() -> None:
    bus = EventBus()
    received: list[dict] = []
    bus.subscribe(MESSAGE_DATA, received.append)

    bus.emit(MESSAGE_DATA, {"messages": [1]})
    bus.emit("other:topic", {"messages": [2]})

    assert received == [{"messages": [1]}]


def test_failing_handler_does_not_block_others() -> None:
    bus = EventBus()
    received: list[dict] = []

    def broken(payload: dict) -> None:
        raise RuntimeError("handler bug")

    bus.subscribe(MESSAGE_DATA, broken)
    bus.subscribe(MESSAGE_DATA, received.append)

    bus.emit(MESSAGE_DATA, {"messages": []})

    assert received == [{"messages": []}]


def test_async_handlers_are_scheduled_and_drained() -> None:
    bus = EventBus()
    received: list[dict] = []

    async def handler(payload: dict) -> None:
        await asyncio.sleep(0)
        received.append(payload)

    async def failing(payload: dict) -> None:
        raise RuntimeError("async handler bug")

    bus.subscribe(MESSAGE_DATA, handler)
    bus.subscribe(MESSAGE_DATA, failing)

    async def run() -> None:
        bus.emit(MESSAGE_DATA, {"messages": [1]})
        assert received == []
        await bus.drain()

    asyncio.run(run())
    assert received == [{"messages": [1]}]
