"""Application context handed to lifespan functions.

Provides :class:`AppContext`, injected into the ``lifespan`` async
context manager of :class:`~pmclock._app.App`.  Code before ``yield``
runs once the scheduler is armed; that is where observer processes are
usually started and registered.
"""

from __future__ import annotations

from pmclock._registry import ObserverBinding
from pmclock._scheduler import ClockScheduler
from pmclock._service import ServiceRegistry
from pmclock._settings import Settings


class AppContext:
    """Runtime context for application lifespan code.

    Gives access to the settings, the running scheduler and the
    :class:`ServiceRegistry` that owns it.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        services: ServiceRegistry,
        scheduler: ClockScheduler,
    ) -> None:
        self._settings = settings
        self._services = services
        self._scheduler = scheduler

    @property
    def settings(self) -> Settings:
        """Application settings instance."""
        return self._settings

    @property
    def services(self) -> ServiceRegistry:
        return self._services

    @property
    def scheduler(self) -> ClockScheduler:
        """The running scheduler."""
        return self._scheduler

    def register_monitors(self, name: str, binding: ObserverBinding) -> None:
        """Shortcut for ``scheduler.register_monitors``."""
        self._scheduler.register_monitors(name, binding)

    def unregister_monitors(self, name: str) -> None:
        """Shortcut for ``scheduler.unregister_monitors``."""
        self._scheduler.unregister_monitors(name)
