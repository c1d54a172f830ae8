"""Formatting helpers for rich-rendered CLI output."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping

from rich import box
from rich.table import Table

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ephstack_core import InstanceConfig

_SECRET_PLACEHOLDER = "•••••"


def config_summary_table(config: "InstanceConfig") -> Table:
    """Return a Rich table summarising the current instance configuration."""

    table = Table(title="Configuration", box=box.ROUNDED, show_header=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Value", overflow="fold")

    for label, value, secret in _iter_config_fields(config):
        table.add_row(label, _format_value(value, secret))
    return table


def state_table(instance: str, state: Mapping[str, str]) -> Table:
    """Return a Rich table describing the persisted state of an instance."""

    table = Table(title=f"Instance {instance}", box=box.ROUNDED, show_header=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Value", overflow="fold")
    if not state:
        table.add_row("status", "[dim]not created[/dim]")
    for key, value in state.items():
        table.add_row(key, value)
    return table


def _iter_config_fields(config: "InstanceConfig") -> Iterator[tuple[str, Any, bool]]:
    """Yield tuples describing configuration fields for summary rendering."""

    mapping = (
        ("OpenStack username", config.openstack_username, False),
        ("OpenStack password", config.openstack_api_key, True),
        ("OpenStack auth URL", config.openstack_auth_url, False),
        ("Tenant", config.openstack_tenant, False),
        ("Region", config.openstack_region, False),
        ("Image", config.image_ref, False),
        ("Flavor", config.flavor_ref, False),
        ("Networks", ", ".join(config.network_ref), False),
        ("Server name", config.server_name, False),
        ("Key pair", config.key_name, False),
        ("SSH", f"{config.username} (port {config.port})", False),
        ("Private key", config.private_key_path, False),
        ("Floating IP", config.floating_ip or config.floating_ip_pool, False),
        ("IP version", "IPv6" if config.use_ipv6 else "IPv4", False),
    )
    for item in mapping:
        yield item


def _format_value(value: Any, secret: bool) -> str:
    """Return formatted configuration value for display."""

    if not value:
        return "[dim]n/a[/dim]"
    if secret:
        return _SECRET_PLACEHOLDER
    return str(value)
