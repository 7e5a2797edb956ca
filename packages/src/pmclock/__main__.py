"""Console entrypoint: ``pmclock`` / ``python -m pmclock``."""

from __future__ import annotations

from pmclock import App, __version__


def main() -> None:
    App(name="pmclock", version=__version__).cli()


if __name__ == "__main__":
    main()
