"""Application orchestrator for a pmclock process.

The :class:`App` class is the composition root.  It collects observers
to register at start-up and an optional lifespan context manager, then
runs the full lifecycle via :meth:`run` (or :meth:`cli` with argument
parsing).

Typical usage::

    import pmclock

    app = pmclock.App(name="pmclock", version="0.1.0")
    app.observer("port-1", pmclock.ObserverBinding(current_window=on_15m))

    app.run()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from pmclock._clock import ClockPort, SystemClock
from pmclock._context import AppContext
from pmclock._logging import configure_logging
from pmclock._offset import OffsetSource, OffsetWatcher
from pmclock._registry import ObserverBinding
from pmclock._service import ServiceRegistry
from pmclock._settings import Settings

logger = logging.getLogger(__name__)

TICK_LOGGER_NAME = "tick-log"

type LifespanFunc = Callable[[AppContext], AbstractAsyncContextManager[None]]
"""Type alias for the lifespan parameter."""


@asynccontextmanager
async def _noop_lifespan(_ctx: AppContext) -> AsyncIterator[None]:
    """No-op lifespan used when no user lifespan is provided."""
    yield


def tick_logger_binding(target: logging.Logger | None = None) -> ObserverBinding:
    """Observer binding that logs every tick it receives at INFO."""
    log = target if target is not None else logging.getLogger("pmclock.ticks")

    def current_window(start_time: int) -> None:
        log.info("15-minute window closed at %d ms", start_time)

    def historical_window(start_time: int) -> None:
        log.debug("15-minute history rolled at %d ms", start_time)

    def current_day(start_time: int) -> None:
        log.info("24-hour window closed at %d ms", start_time)

    return ObserverBinding(
        current_window=current_window,
        historical_window=historical_window,
        current_day=current_day,
    )


class App:
    """Central composition root and application orchestrator.

    Args:
        name: Application name; also the scheduler's well-known name.
        version: Application version string.
        description: Short description for CLI help text.
        settings_class: Settings subclass to instantiate at startup.
        lifespan: Async context manager run around the scheduler's
            lifetime.  Receives an :class:`AppContext`.
        log_ticks: Register an observer that logs every tick.
    """

    def __init__(
        self,
        name: str = "pmclock",
        version: str = "0.0.0",
        *,
        description: str = "PM clock: 15-minute and 24-hour boundary ticks",
        settings_class: type[Settings] = Settings,
        lifespan: LifespanFunc | None = None,
        log_ticks: bool = False,
    ) -> None:
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class
        self._lifespan: LifespanFunc = (
            lifespan if lifespan is not None else _noop_lifespan
        )
        self._log_ticks = log_ticks
        self._observers: dict[str, ObserverBinding] = {}

    def observer(self, name: str, binding: ObserverBinding) -> None:
        """Register *binding* as observer *name* once the scheduler starts.

        Re-registering a name replaces the earlier binding.
        """
        self._observers[name] = binding

    # --- Lifecycle ---------------------------------------------------------

    def run(
        self,
        *,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        offset_source: OffsetSource | None = None,
    ) -> None:
        """Start the application (blocking, synchronous entrypoint).

        Wraps :meth:`_run_async` in :func:`asyncio.run`, handling
        ``KeyboardInterrupt`` for clean Ctrl-C shutdown.  All parameters
        are optional and intended for programmatic or test use.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                    offset_source=offset_source,
                ),
            )

    def cli(self) -> None:
        """Start the application with CLI argument parsing."""
        from pmclock._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        offset_source: OffsetSource | None = None,
    ) -> None:
        """Async orchestration.

        1. Bootstrap (settings, logging, clock, offset watcher).
        2. Start the scheduler and register observers.
        3. Enter lifespan, block until shutdown or scheduler exit.
        4. Tear down (exit lifespan, stop scheduler, close watcher).
        """
        # --- Phase 1: Bootstrap ---
        resolved_settings = settings if settings is not None else self._settings_class()
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        resolved_clock = clock if clock is not None else SystemClock()
        owned_watcher: OffsetWatcher | None = None
        if offset_source is None:
            owned_watcher = OffsetWatcher(
                resolved_clock,
                poll_interval=resolved_settings.offset.poll_interval,
                tolerance_ms=resolved_settings.offset.tolerance_ms,
            )
            offset_source = owned_watcher

        # --- Phase 2: Scheduler and observers ---
        services = ServiceRegistry()
        scheduler = await services.start(
            resolved_settings.scheduler,
            name=self._name,
            clock=resolved_clock,
            offset_source=offset_source,
        )
        if self._log_ticks:
            scheduler.register_monitors(TICK_LOGGER_NAME, tick_logger_binding())
        for observer_name, binding in self._observers.items():
            scheduler.register_monitors(observer_name, binding)

        shutdown_event = self._install_signal_handlers(shutdown_event)

        # --- Phase 3: Run ---
        app_context = AppContext(
            settings=resolved_settings,
            services=services,
            scheduler=scheduler,
        )
        lifespan_cm = self._lifespan(app_context)
        try:
            await lifespan_cm.__aenter__()
        except BaseException:
            await self._teardown(services, owned_watcher)
            raise

        try:
            await self._wait_for_exit(shutdown_event, scheduler.wait_closed())
        finally:
            # Teardown errors are logged but don't mask scheduler errors.
            exc_info = sys.exc_info()
            try:
                await lifespan_cm.__aexit__(*exc_info)
            except Exception:
                logger.exception("Lifespan teardown error")
            finally:
                del exc_info
            await self._teardown(services, owned_watcher)

        logger.info("Shutdown complete")

    # --- _run_async helpers ------------------------------------------------

    @staticmethod
    async def _teardown(
        services: ServiceRegistry,
        watcher: OffsetWatcher | None,
    ) -> None:
        await services.stop_all()
        if watcher is not None:
            await watcher.aclose()

    @staticmethod
    async def _wait_for_exit(
        shutdown_event: asyncio.Event,
        closed: Awaitable[None],
    ) -> None:
        """Block until shutdown is requested or the scheduler ends.

        A scheduler that ended with an exception re-raises it here.
        """
        shutdown_task = asyncio.ensure_future(shutdown_event.wait())
        closed_task = asyncio.ensure_future(closed)
        done, pending = await asyncio.wait(
            {shutdown_task, closed_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if closed_task in done and shutdown_task not in done:
            closed_task.result()
            logger.warning("Scheduler exited before shutdown was requested")

    def _install_signal_handlers(
        self,
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event
