"""pmclock.

Clock-aligned 15-minute and 24-hour tick scheduler for network-element
performance monitoring.
"""

from importlib.metadata import PackageNotFoundError, version

from pmclock._alignment import advance, next_daily_boundary, next_quarter_boundary, resync
from pmclock._app import App, LifespanFunc, tick_logger_binding
from pmclock._clock import ClockPort, SystemClock
from pmclock._context import AppContext
from pmclock._dispatch import DispatchRouter, TickClass, TickEvent
from pmclock._errors import (
    AlreadyRunningError,
    ConfigurationError,
    ErrorPayload,
    ErrorReporter,
    NotRunningError,
    PmClockError,
    build_error_payload,
)
from pmclock._logging import JsonFormatter, configure_logging
from pmclock._offset import OffsetSource, OffsetSubscription, OffsetWatcher
from pmclock._registry import ObserverBinding, ObserverRegistry, TickEndpoint
from pmclock._scheduler import ClockScheduler
from pmclock._service import DEFAULT_NAME, ServiceRegistry
from pmclock._settings import (
    DEFAULT_SCHEDULE,
    LoggingSettings,
    OffsetSettings,
    SchedulerSettings,
    Settings,
)

try:
    __version__ = version("pmclock")
except PackageNotFoundError:
    # Source checkout without installed metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # App
    "App",
    "AppContext",
    "LifespanFunc",
    "tick_logger_binding",
    # Alignment
    "advance",
    "next_daily_boundary",
    "next_quarter_boundary",
    "resync",
    # Clock
    "ClockPort",
    "SystemClock",
    "OffsetSource",
    "OffsetSubscription",
    "OffsetWatcher",
    # Scheduling
    "ClockScheduler",
    "DEFAULT_NAME",
    "DispatchRouter",
    "ObserverBinding",
    "ObserverRegistry",
    "ServiceRegistry",
    "TickClass",
    "TickEndpoint",
    "TickEvent",
    # Errors
    "AlreadyRunningError",
    "ConfigurationError",
    "ErrorPayload",
    "ErrorReporter",
    "NotRunningError",
    "PmClockError",
    "build_error_payload",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "DEFAULT_SCHEDULE",
    "LoggingSettings",
    "OffsetSettings",
    "SchedulerSettings",
    "Settings",
]
