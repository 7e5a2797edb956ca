"""Exceptions and structured error reporting for the PM clock.

Two concerns live here:

* The **exception hierarchy** raised by the public API.  Everything
  derives from :class:`PmClockError`.
* **Endpoint failure reporting.**  Observer endpoints run
  fire-and-forget; when one raises, the failure is converted into a
  structured JSON payload and reported, never propagated — the
  schedule must not suffer from a misbehaving observer.

Payload schema::

    {
        "error_type": "endpoint_error",
        "message": "Human-readable error description",
        "observer": "port-1" | null,
        "endpoint": "current_window" | null,
        "tick_class": "15m" | null,
        "timestamp": "2026-02-14T12:34:56+00:00",
        "details": {}
    }

Reporting behaviour:

- **Dual output** — every payload is logged at WARNING and handed to
  the optional sink (e.g. an alarm or metrics collaborator).
- **Fire-and-forget** — sink failures are logged, never propagated.

Consumers supply their own ``error_type_map`` to map exception classes
to machine-readable type strings.  Unknown exceptions fall back to the
generic ``"endpoint_error"`` type.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PmClockError(Exception):
    """Base class for all pmclock errors."""


class ConfigurationError(PmClockError):
    """Missing or invalid scheduler configuration; start is refused."""


class AlreadyRunningError(PmClockError):
    """A scheduler is already running under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"scheduler '{name}' is already running")
        self.name = name


class NotRunningError(PmClockError):
    """The scheduler addressed is not running."""


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Immutable structured error payload for one endpoint failure."""

    error_type: str
    message: str
    observer: str | None
    endpoint: str | None
    tick_class: str | None
    timestamp: str
    details: dict[str, object] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialise to a JSON string."""
        return json.dumps(asdict(self), default=str)


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------


def build_error_payload(
    error: BaseException,
    *,
    error_type_map: dict[type[BaseException], str] | None = None,
    observer: str | None = None,
    endpoint: str | None = None,
    tick_class: str | None = None,
    details: dict[str, object] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ErrorPayload:
    """Convert an exception into a structured :class:`ErrorPayload`.

    Looks up the exact class of the exception; subclasses are not matched.

    Args:
        error: The exception to convert.
        error_type_map: Optional mapping from exception types to
            machine-readable ``error_type`` strings.  Falls back to
            ``"endpoint_error"`` for unmapped types.
        observer: Name of the observer whose endpoint failed.
        endpoint: Endpoint attribute name (e.g. ``"current_day"``).
        tick_class: Tick class being dispatched (``"15m"`` / ``"24h"``).
        details: Additional context.  Defaults to an empty dict.
        clock: Optional callable returning a :class:`~datetime.datetime`.
            Defaults to ``datetime.now(UTC)``.
    """
    resolved_map = error_type_map or {}
    error_type = resolved_map.get(type(error), "endpoint_error")
    now = clock() if clock is not None else datetime.now(UTC)
    return ErrorPayload(
        error_type=error_type,
        message=str(error),
        observer=observer,
        endpoint=endpoint,
        tick_class=tick_class,
        timestamp=now.isoformat(),
        details=details or {},
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class ErrorReporter:
    """Reports endpoint failures as structured payloads.

    Args:
        sink: Optional callable receiving each :class:`ErrorPayload`.
        error_type_map: Pluggable mapping from exception types to
            machine-readable type strings.
        clock: Optional callable returning a :class:`~datetime.datetime`
            for deterministic testing.
    """

    sink: Callable[[ErrorPayload], None] | None = None
    error_type_map: dict[type[BaseException], str] = field(default_factory=dict)
    clock: Callable[[], datetime] | None = field(default=None, repr=False)
    reported: int = field(default=0, init=False)

    def report(
        self,
        error: BaseException,
        *,
        observer: str | None = None,
        endpoint: str | None = None,
        tick_class: str | None = None,
    ) -> None:
        """Build, log and forward a payload for *error*.

        The whole pipeline is fire-and-forget: failures at any stage
        are logged but never propagated to the caller.
        """
        try:
            payload = build_error_payload(
                error,
                error_type_map=self.error_type_map,
                observer=observer,
                endpoint=endpoint,
                tick_class=tick_class,
                clock=self.clock,
            )
        except Exception:
            logger.exception(
                "Failed to build error payload for %r (observer=%s)",
                error,
                observer,
            )
            return

        self.reported += 1
        logger.warning(
            "Endpoint %s of observer '%s' failed on %s tick: %s",
            endpoint,
            observer,
            tick_class,
            payload.message,
            extra={"error": asdict(payload)},
        )
        if self.sink is None:
            return
        try:
            self.sink(payload)
        except Exception:
            logger.exception("Error sink failed for observer '%s'", observer)
