"""Subpackage with CLI command implementations for ephstack."""

from __future__ import annotations

import typer


def register(app: typer.Typer) -> None:
	"""Register all CLI commands on the provided Typer application."""

	from . import configure, create, destroy

	create.register(app)
	destroy.register(app)
	configure.register(app)
