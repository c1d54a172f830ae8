"""Entry point for the ephstack CLI."""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from commands import register as register_commands


def _configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Install a Rich log handler before any command runs."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def _build_app() -> typer.Typer:
    """Create the Typer application with all commands registered."""

    application = typer.Typer(help="Ephemeral OpenStack instance manager", callback=_configure_logging)
    register_commands(application)
    return application


def main() -> None:
    """Execute the Typer application."""

    app = _build_app()
    app()


if __name__ == "__main__":
    main()
