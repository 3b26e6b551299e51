"""Resolver capability and the ordered resolver registry (core domain)."""

from __future__ import annotations

from collections import OrderedDict
from typing import AsyncIterator, List, Protocol, Sequence, Tuple, Union

from core.errors import ConfigError
from core.models import CanonicalMessage

RUN = "run"
STREAM = "stream"


class BatchResolver(Protocol):
    """Whole batch in, whole batch (or a subset) out."""

    mode: str  # always RUN

    async def run(self, messages: Sequence[CanonicalMessage]) -> List[CanonicalMessage]:
        ...


class StreamResolver(Protocol):
    """Yields resolved messages one by one so they can be emitted early."""

    mode: str  # always STREAM

    def stream(self, messages: Sequence[CanonicalMessage]) -> AsyncIterator[CanonicalMessage]:
        ...


Resolver = Union[BatchResolver, StreamResolver]


class ResolverRegistry:
    """Named resolvers applied in insertion order.

    Later resolvers see the cumulative output of earlier ones, so the order
    of ``register`` calls is significant.
    """

    def __init__(self) -> None:
        self._resolvers: "OrderedDict[str, Resolver]" = OrderedDict()

    def register(self, name: str, resolver: Resolver) -> None:
        if name in self._resolvers:
            raise ConfigError(f"Resolver already registered: {name}")
        mode = getattr(resolver, "mode", None)
        if mode == RUN and not callable(getattr(resolver, "run", None)):
            raise ConfigError(f"Resolver {name} declares mode 'run' without a run() method")
        if mode == STREAM and not callable(getattr(resolver, "stream", None)):
            raise ConfigError(f"Resolver {name} declares mode 'stream' without a stream() method")
        if mode not in (RUN, STREAM):
            raise ConfigError(f"Resolver {name} has unsupported mode: {mode!r}")
        self._resolvers[name] = resolver

    def entries(self) -> List[Tuple[str, Resolver]]:
        return list(self._resolvers.items())

    def __len__(self) -> int:
        return len(self._resolvers)

    def __contains__(self, name: object) -> bool:
        return name in self._resolvers
