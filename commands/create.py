"""Typer command implementing the server creation flow."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import questionary
import typer
from rich.console import Console
from rich.panel import Panel

from ephstack_core import EphstackError, InstanceConfig, resolve_config, with_overrides
from services.lifecycle import InstanceLifecycle
from services.providers import build_cloud_provider, build_ssh_service
from services.state import InstanceState
from ui.formatters import config_summary_table, state_table


def register(app_root: typer.Typer) -> None:
    """Register this module's command with the Typer application."""

    app_root.command("create")(create)


def create(
    instance: str = typer.Argument(..., help="Instance name used for state and default server naming"),
    image: Optional[str] = typer.Option(None, "--image", help="Image id, name or /regex/"),
    flavor: Optional[str] = typer.Option(None, "--flavor", help="Flavor id, name or /regex/"),
    network: Optional[List[str]] = typer.Option(None, "--network", help="Network id, name or /regex/ (repeatable)"),
    name: Optional[str] = typer.Option(None, "--name", help="Server name (generated when omitted)"),
    floating_ip_pool: Optional[str] = typer.Option(None, "--floating-ip-pool", help="Pool to allocate an address from"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Configuration ini file"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Skip interactive prompts"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Provision a new server for INSTANCE and bootstrap SSH access."""

    console = Console()
    try:
        config = resolve_config(interactive=not non_interactive, config_path=config_path)
        config = with_overrides(
            config,
            image_ref=image,
            flavor_ref=flavor,
            network_ref=tuple(network) if network else None,
            server_name=name,
            floating_ip_pool=floating_ip_pool,
        )
    except EphstackError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    state = InstanceState.for_instance(instance)
    if state.get("server_id"):
        typer.secho(
            f"Instance {instance} already has server {state['server_id']}; destroy it first.",
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(code=1)

    console.print(Panel(config_summary_table(config), title="Configuration overview"))
    if not yes and not non_interactive:
        if not questionary.confirm("Provision server?", default=True).ask():
            typer.secho("Operation cancelled by user", fg=typer.colors.YELLOW)
            raise typer.Exit(code=1)

    lifecycle = _build_lifecycle(config, instance)
    try:
        server = lifecycle.create(state)
    except EphstackError as exc:
        typer.secho(
            f"Server creation failed at stage {lifecycle.stage.value}: {exc}",
            fg=typer.colors.RED,
        )
        if state:
            console.print(state_table(instance, state))
        raise typer.Exit(code=1)

    console.print(
        f"[green]Server created successfully: {server.name} ({server.identifier}) at {state['hostname']}[/green]"
    )


def _build_lifecycle(config: InstanceConfig, instance: str) -> InstanceLifecycle:
    return InstanceLifecycle(
        config,
        instance_name=instance,
        provider_factory=build_cloud_provider,
        ssh=build_ssh_service(),
    )
