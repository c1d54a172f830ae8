"""CLI helpers for managing ephstack configuration files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ephstack_core import EphstackError, resolve_config, resolve_config_path
from ui.formatters import config_summary_table

app = typer.Typer(help="Manage ephstack configuration files")

_TEMPLATE = """[ephstack]
# openstack_auth_url = https://keystone.example:5000/v3
# openstack_tenant = my-project
# openstack_region = RegionOne
# image_ref = /Ubuntu 24.04/
# flavor_ref = m1.small
# network_ref = private
# key_name =
# security_groups = default, ssh
# username = root
# port = 22
# floating_ip_pool = public
# openstack_network_name =
# use_ipv6 = false
# disable_ssl_validation = false
# user_data = ~/cloud-init.yaml

[ephstack.secrets]
# openstack_username =
# openstack_api_key =
"""


def register(app_root: typer.Typer) -> None:
    """Attach configuration-related subcommands to the CLI."""

    app_root.add_typer(app, name="config")


@app.command("init")
def init_config(
    path: Optional[Path] = typer.Option(None, "--path", help="Destination for the ini file"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Overwrite when the file already exists"),
) -> None:
    """Create a template configuration file with explanatory comments."""

    destination = (path or resolve_config_path()).expanduser()
    if destination.exists() and not overwrite:
        typer.secho(f"Configuration file already exists: {destination}", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(_TEMPLATE, encoding="ascii")

    try:
        os.chmod(destination, 0o600)
    except (PermissionError, NotImplementedError):  # pragma: no cover - platform specific
        pass

    typer.secho(f"Template saved to {destination}", fg=typer.colors.GREEN)


@app.command("show")
def show_config(
    path: Optional[Path] = typer.Option(None, "--path", help="Configuration ini file"),
) -> None:
    """Print the effective configuration with secrets masked."""

    try:
        config = resolve_config(interactive=False, config_path=path)
    except EphstackError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    Console().print(config_summary_table(config))
