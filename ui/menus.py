"""Interactive questionary-based menus for the ephstack CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import questionary
from rich.console import Console

from ephstack_core import InstanceConfig, with_overrides
from ui.formatters import config_summary_table

_PROMPT_LOOP_NOTE = "Provide OpenStack credentials. Leave blank to keep the current value."


@dataclass(frozen=True)
class _CredentialField:
    """Description of a credential prompt."""

    name: str
    label: str
    secret: bool = False

    def message(self, current_value: Optional[str]) -> str:
        """Build a prompt message including the current value hint."""

        if self.secret and current_value:
            return f"{self.label} – leave blank to keep existing value"
        if current_value:
            return f"{self.label} (current: {self._short_value_hint(current_value)})"
        return self.label

    def _short_value_hint(self, value: str) -> str:
        if len(value) <= 24:
            return value
        return f"{value[:24]}…"


_FIELDS: tuple[_CredentialField, ...] = (
    _CredentialField("openstack_auth_url", "OpenStack auth URL"),
    _CredentialField("openstack_username", "OpenStack username"),
    _CredentialField("openstack_api_key", "OpenStack password", secret=True),
    _CredentialField("openstack_tenant", "OpenStack project (tenant)"),
)


def prompt_credentials(config: InstanceConfig, console: Optional[Console] = None) -> InstanceConfig:
    """Prompt user for credential values, returning an updated config object."""

    console = console or Console()
    console.print("[bold]ephstack credentials[/bold]")
    console.print(_PROMPT_LOOP_NOTE)

    current = config
    while True:
        overrides: dict[str, Optional[str]] = {}
        for field in _FIELDS:
            overrides[field.name] = _prompt_field(field, current)

        updated = with_overrides(current, **overrides)
        console.print(config_summary_table(updated))
        confirmed = questionary.confirm("Accept the configuration above?", default=True).ask()
        if confirmed:
            return updated
        console.print("[yellow]Reopening credential prompts...[/yellow]")
        current = updated


def _prompt_field(field: _CredentialField, config: InstanceConfig) -> Optional[str]:
    """Prompt user for a single credential field."""

    current_value = getattr(config, field.name)
    asker: Callable[..., questionary.Question]
    kwargs: dict[str, object] = {}
    if field.secret:
        asker = questionary.password
    else:
        asker = questionary.text
        if current_value:
            kwargs["default"] = current_value

    answer = asker(field.message(current_value), **kwargs).ask()
    if answer is None:
        return current_value

    normalized = answer.strip()
    return normalized or current_value
