"""Observer bindings and the registry that holds them.

An observer is anything that wants PM clock ticks — typically a set of
performance-monitoring accumulators for one monitored entity.  It
registers under a unique name with an :class:`ObserverBinding`: up to
three endpoints, one per tick it cares about.

The registry is owned by the scheduler and only mutated from inside
the scheduler's event loop, so it carries no locking.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

type TickEndpoint = Callable[[int], Awaitable[None] | None]
"""Callable receiving the nominal boundary instant (monotonic ms).

May be a plain function or a coroutine function.
"""


@dataclass(frozen=True, slots=True)
class ObserverBinding:
    """Immutable set of tick endpoints exposed by one observer.

    Every endpoint is optional; an observer that only cares about the
    24-hour tick leaves the 15-minute endpoints unset and is skipped for
    those ticks.

    Attributes:
        current_window: Receives the 15-minute tick for the current
            15-minute accumulator.
        historical_window: Receives the 15-minute tick for the
            historical 15-minute register.
        current_day: Receives the 24-hour tick for the current 24-hour
            accumulator.
    """

    current_window: TickEndpoint | None = None
    historical_window: TickEndpoint | None = None
    current_day: TickEndpoint | None = None


class ObserverRegistry:
    """Mapping from observer name to :class:`ObserverBinding`.

    Re-registering a name replaces the previous binding entirely; there
    is no merging of endpoints.  Iteration order carries no meaning.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, ObserverBinding] = {}

    def register(self, name: str, binding: ObserverBinding) -> None:
        """Insert or replace the binding for *name* (last write wins)."""
        self._bindings[name] = binding

    def unregister(self, name: str) -> None:
        """Remove *name*.  Unknown names are ignored."""
        self._bindings.pop(name, None)

    def get(self, name: str) -> ObserverBinding | None:
        return self._bindings.get(name)

    def names(self) -> list[str]:
        return list(self._bindings)

    def items(self) -> list[tuple[str, ObserverBinding]]:
        """Snapshot of ``(name, binding)`` pairs.

        A copy, so endpoints may register or unregister observers while a
        dispatch iterates over the snapshot.
        """
        return list(self._bindings.items())

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._bindings))
