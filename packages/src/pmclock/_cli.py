"""Command line entry for a pmclock :class:`~pmclock._app.App`.

One Typer command, no subcommands.  Flags adjust the loaded settings
(log level and format, the two tick periods, the ``.env`` path) before
the async lifecycle starts.  The process exits with :data:`EXIT_OK`
after a clean shutdown, :data:`EXIT_CONFIG_ERROR` when the settings do
not validate and :data:`EXIT_RUNTIME_ERROR` when the run itself fails.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from pmclock._errors import ConfigurationError
from pmclock._service import resolve_schedule
from pmclock._settings import LoggingSettings

if TYPE_CHECKING:
    from pmclock._app import App
    from pmclock._settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 3

_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation
)
_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation
)


def _choice(value: str | None, choices: tuple[str, ...], flag: str) -> str | None:
    """Normalise *value* to the casing of *choices* or reject it."""
    if value is None:
        return None
    for choice in choices:
        if value.lower() == choice.lower():
            return choice
    raise typer.BadParameter(
        f"'{value}' is not one of {', '.join(choices)}",
        param_hint=f"'{flag}'",
    )


def _load_settings(
    app: App, env_file: str, periods: dict[str, int | None]
) -> Settings:
    settings: Settings = app._settings_class(_env_file=env_file)  # type: ignore[call-arg]
    overrides = {key: value for key, value in periods.items() if value is not None}
    if overrides:
        # Merge so a single flag keeps the other period from the environment.
        settings.scheduler = resolve_schedule(
            settings.scheduler.model_dump() | overrides,
        )
    return settings


def build_cli(app: App) -> typer.Typer:
    """Return the Typer command that runs *app*."""
    name, version = app._name, app._version
    cli = typer.Typer(help=f"{name} v{version}: {app._description}")

    @cli.callback(invoke_without_command=True)
    def main(
        version_flag: Annotated[
            bool | None,
            typer.Option("--version", is_eager=True, help="Print the version."),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Root log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="json or text."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to the .env file."),
        ] = ".env",
        period_15m: Annotated[
            int | None,
            typer.Option("--period-15m", help="15m tick period in seconds."),
        ] = None,
        period_24h: Annotated[
            int | None,
            typer.Option("--period-24h", help="24h tick period in seconds."),
        ] = None,
        log_ticks: Annotated[
            bool,
            typer.Option("--log-ticks/--no-log-ticks", help="Log each delivered tick."),
        ] = False,
    ) -> None:
        if version_flag:
            typer.echo(f"{name} v{version}")
            raise typer.Exit()

        level = _choice(log_level, _LOG_LEVELS, "--log-level")
        fmt = _choice(log_format, _LOG_FORMATS, "--log-format")
        app._log_ticks = log_ticks

        try:
            settings = _load_settings(
                app, env_file, {"period_15m": period_15m, "period_24h": period_24h}
            )
        except (ValidationError, ConfigurationError) as exc:
            logger.error("Configuration error: %s", exc)
            raise SystemExit(EXIT_CONFIG_ERROR) from exc

        logging_overrides = {
            key: value for key, value in (("level", level), ("format", fmt)) if value
        }
        if logging_overrides:
            settings.logging = settings.logging.model_copy(update=logging_overrides)

        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(app._run_async(settings=settings))
        except SystemExit:
            raise
        except Exception as exc:
            logger.error("Runtime error: %s", exc)
            sys.exit(EXIT_RUNTIME_ERROR)

    return cli
