"""Typer commands responsible for destroying servers and inspecting state."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import questionary
import typer
from rich.console import Console
from rich.panel import Panel

from ephstack_core import EphstackError, resolve_config
from services.lifecycle import InstanceLifecycle
from services.providers import build_cloud_provider, build_ssh_service
from services.state import InstanceState
from ui.formatters import state_table


def register(app_root: typer.Typer) -> None:
    """Register the destroy and status commands with the Typer application."""

    app_root.command("destroy")(destroy)
    app_root.command("status")(status)


def destroy(
    instance: str = typer.Argument(..., help="Instance name whose server should be destroyed"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Configuration ini file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Destroy the server recorded for INSTANCE and clear its state."""

    console = Console()
    state = InstanceState.for_instance(instance)
    if not state.get("server_id"):
        typer.secho(f"Instance {instance} has no server, nothing to do.", fg=typer.colors.YELLOW)
        return

    console.print(Panel(state_table(instance, state), title="Deletion confirmation"))
    if not yes and not questionary.confirm("Continue?", default=True).ask():
        typer.secho("Operation cancelled", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    server_id = state["server_id"]
    try:
        config = resolve_config(interactive=False, config_path=config_path)
        lifecycle = InstanceLifecycle(
            config,
            instance_name=instance,
            provider_factory=build_cloud_provider,
            ssh=build_ssh_service(),
        )
        lifecycle.destroy(state)
    except EphstackError as exc:
        typer.secho(f"Server deletion failed: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    console.print(f"[green]Server {server_id} of instance {instance} destroyed.[/green]")


def status(
    instance: str = typer.Argument(..., help="Instance name to inspect"),
) -> None:
    """Show the persisted state of INSTANCE."""

    console = Console()
    console.print(state_table(instance, InstanceState.for_instance(instance)))
