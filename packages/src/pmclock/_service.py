"""Named scheduler instances with explicit lifetime.

:class:`ServiceRegistry` is the single scheduling authority of a
process: it starts at most one :class:`~pmclock._scheduler.ClockScheduler`
per well-known name and resolves that name for unrelated callers.  The
composition root creates one registry and hands it out; there is no
module-level instance.

Usage::

    services = ServiceRegistry()
    handle = await services.start()                  # 900 s / 86400 s
    services.register_monitors("port-1", binding)    # by well-known name
    ...
    await services.stop(handle)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pmclock._clock import ClockPort, SystemClock
from pmclock._dispatch import DispatchRouter
from pmclock._errors import AlreadyRunningError, ConfigurationError, NotRunningError
from pmclock._offset import OffsetSource, OffsetWatcher
from pmclock._registry import ObserverBinding
from pmclock._scheduler import ClockScheduler
from pmclock._settings import DEFAULT_SCHEDULE, SchedulerSettings

logger = logging.getLogger(__name__)

DEFAULT_NAME = "pmclock"


def resolve_schedule(
    config: SchedulerSettings | Mapping[str, Any] | None,
) -> SchedulerSettings:
    """Validate *config* into :class:`SchedulerSettings`.

    ``None`` selects :data:`~pmclock._settings.DEFAULT_SCHEDULE`.  A
    mapping must provide both periods.

    Raises:
        ConfigurationError: If a period is missing or invalid.
    """
    if config is None:
        return DEFAULT_SCHEDULE
    if isinstance(config, SchedulerSettings):
        return config
    try:
        return SchedulerSettings.model_validate(dict(config))
    except ValidationError as exc:
        msg = f"invalid scheduler configuration: {exc}"
        raise ConfigurationError(msg) from exc


class ServiceRegistry:
    """Starts, stops and looks up schedulers by name."""

    def __init__(self) -> None:
        self._services: dict[str, ClockScheduler] = {}

    async def start(
        self,
        config: SchedulerSettings | Mapping[str, Any] | None = None,
        *,
        name: str = DEFAULT_NAME,
        clock: ClockPort | None = None,
        offset_source: OffsetSource | None = None,
        router: DispatchRouter | None = None,
    ) -> ClockScheduler:
        """Create and start the scheduler registered as *name*.

        Args:
            config: Tick periods.  ``None`` uses 900 s / 86400 s.
            name: Well-known scheduler name.
            clock: Clock override (defaults to :class:`SystemClock`).
            offset_source: Offset-change source override (defaults to an
                :class:`OffsetWatcher` on *clock*).
            router: Dispatch router override.

        Returns:
            The running scheduler, which doubles as the handle for
            :meth:`stop`.

        Raises:
            ConfigurationError: If *config* is invalid.
            AlreadyRunningError: If *name* already has a running scheduler.
        """
        settings = resolve_schedule(config)
        existing = self._services.get(name)
        if existing is not None and existing.running:
            raise AlreadyRunningError(name)

        resolved_clock = clock if clock is not None else SystemClock()
        resolved_source = (
            offset_source if offset_source is not None else OffsetWatcher(resolved_clock)
        )
        scheduler = ClockScheduler(
            settings,
            clock=resolved_clock,
            offset_source=resolved_source,
            router=router,
            name=name,
        )
        await scheduler.start()
        self._services[name] = scheduler
        return scheduler

    async def stop(self, handle: ClockScheduler) -> None:
        """Stop *handle* and release its name."""
        await handle.stop()
        if self._services.get(handle.name) is handle:
            del self._services[handle.name]

    async def stop_all(self) -> None:
        for scheduler in list(self._services.values()):
            await self.stop(scheduler)

    def lookup(self, name: str = DEFAULT_NAME) -> ClockScheduler:
        """Return the running scheduler registered as *name*.

        Raises:
            NotRunningError: If no scheduler runs under *name*.
        """
        scheduler = self._services.get(name)
        if scheduler is None or not scheduler.running:
            msg = f"no scheduler running as '{name}'"
            raise NotRunningError(msg)
        return scheduler

    def register_monitors(
        self,
        observer: str,
        binding: ObserverBinding,
        *,
        name: str = DEFAULT_NAME,
    ) -> None:
        """Register *observer* with the scheduler called *name*."""
        self.lookup(name).register_monitors(observer, binding)

    def unregister_monitors(self, observer: str, *, name: str = DEFAULT_NAME) -> None:
        """Unregister *observer* from the scheduler called *name*."""
        self.lookup(name).unregister_monitors(observer)

    def __contains__(self, name: object) -> bool:
        return name in self._services
