from __future__ import annotations

import pytest

from core.errors import ConfigError
from core.resolvers import RUN, STREAM, ResolverRegistry


class DummyRunResolver:
    mode = RUN

    async def run(self, messages):
        return list(messages)


class DummyStreamResolver:
    mode = STREAM

    async def stream(self, messages):
        for message in messages:
            yield message


def test_entries_keep_registration_order() -> None:
    registry = ResolverRegistry()
    first, second, third = DummyStreamResolver(), DummyRunResolver(), DummyRunResolver()
    registry.register("media", first)
    registry.register("embedding", second)
    registry.register("links", third)

    assert [name for name, _ in registry.entries()] == ["media", "embedding", "links"]
    assert registry.entries()[0][1] is first
    assert len(registry) == 3
    assert "embedding" in registry


def test_duplicate_name_is_rejected() -> None:
    registry = ResolverRegistry()
    registry.register("media", DummyStreamResolver())
    with pytest.raises(ConfigError):
        registry.register("media", DummyRunResolver())
    assert len(registry) == 1


def test_resolver_without_mode_is_rejected() -> None:
    class NoMode:
        async def run(self, messages):
            return messages

    with pytest.raises(ConfigError):
        ResolverRegistry().register("bad", NoMode())


def test_mode_without_method_is_rejected() -> None:
    class MissingRun:
        mode = RUN

    with pytest.raises(ConfigError):
        ResolverRegistry().register("bad", MissingRun())
