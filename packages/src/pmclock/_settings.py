"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Variables carry the ``PMCLOCK_`` prefix and nested models use
``__`` as the delimiter, e.g. ``PMCLOCK_SCHEDULER__PERIOD_15M=300``.

The schema covers three concerns:

* **Scheduler** — the two tick periods and the hour of day the 24-hour
  tick is aligned to.
* **Offset** — how the production offset watcher samples the clock.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **seconds** unless the field name says otherwise.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings — nested via composition)
# -------------------------------------------------------------------


class SchedulerSettings(BaseModel):
    """Tick periods of the two boundary classes.

    Both periods are required when the model is built explicitly;
    :data:`DEFAULT_SCHEDULE` holds the G.7710 defaults.  The model is
    frozen: periods never change while a scheduler runs.

    Environment variables (with ``__`` nesting)::

        PMCLOCK_SCHEDULER__PERIOD_15M=900
        PMCLOCK_SCHEDULER__PERIOD_24H=86400
        PMCLOCK_SCHEDULER__DAILY_HOUR=24
    """

    model_config = ConfigDict(frozen=True)

    period_15m: Annotated[int, Field(gt=0)] = Field(
        description="Length of the 15-minute class period in seconds.",
    )
    period_24h: Annotated[int, Field(gt=0)] = Field(
        description="Length of the 24-hour class period in seconds.",
    )
    daily_hour: Annotated[int, Field(ge=1, le=24)] = Field(
        default=24,
        description=(
            "Hour of day (UTC) the first 24-hour tick is aligned to. "
            "24 means midnight."
        ),
    )


DEFAULT_SCHEDULE = SchedulerSettings(period_15m=900, period_24h=86400)


class OffsetSettings(BaseModel):
    """Sampling of the system-to-monotonic clock offset."""

    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description="Seconds between two offset samples.",
    )
    tolerance_ms: Annotated[int, Field(ge=0)] = Field(
        default=100,
        description=(
            "Offset movement (ms) below which no change is published. "
            "Absorbs jitter between the two clock reads."
        ),
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for log
      aggregators.
    - ``"text"`` — human-readable timestamped lines for development.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: 'json' or 'text'.",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum log file size in megabytes before rotation.",
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for a pmclock process.

    Example ``.env``::

        PMCLOCK_SCHEDULER__PERIOD_15M=900
        PMCLOCK_SCHEDULER__PERIOD_24H=86400
        PMCLOCK_OFFSET__POLL_INTERVAL=0.5
        PMCLOCK_LOGGING__LEVEL=DEBUG
        PMCLOCK_LOGGING__FORMAT=text

    Overriding one scheduler period through the environment requires
    setting both: the nested model replaces the default as a whole and
    a missing period is a configuration error.
    """

    model_config = SettingsConfigDict(
        env_prefix="PMCLOCK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    scheduler: SchedulerSettings = Field(
        default_factory=lambda: DEFAULT_SCHEDULE,
        description="Tick periods.",
    )
    offset: OffsetSettings = Field(
        default_factory=OffsetSettings,
        description="Clock offset sampling.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
