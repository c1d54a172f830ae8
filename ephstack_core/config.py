"""Instance configuration management for the ephstack CLI."""

from __future__ import annotations

import configparser
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError, field_validator

from .errors import ConfigurationInvalidError

REQUIRED_CREDENTIALS = (
    "openstack_username",
    "openstack_api_key",
    "openstack_auth_url",
)

DEFAULT_USERNAME = "root"
DEFAULT_PORT = 22
_KEY_CANDIDATES = ("~/.ssh/id_rsa", "~/.ssh/id_dsa")


class _ConfigSchema(BaseModel):
    """Validation schema coercing raw INI/environment strings into typed values."""

    openstack_username: Optional[str] = None
    openstack_api_key: Optional[str] = None
    openstack_auth_url: Optional[str] = None
    openstack_tenant: Optional[str] = None
    openstack_region: Optional[str] = None
    openstack_service_name: Optional[str] = None
    openstack_domain: Optional[str] = None
    openstack_network_name: Optional[str] = None
    image_ref: Optional[str] = None
    flavor_ref: Optional[str] = None
    network_ref: tuple[str, ...] = ()
    server_name: Optional[str] = None
    key_name: Optional[str] = None
    security_groups: tuple[str, ...] = ()
    username: str = DEFAULT_USERNAME
    port: int = DEFAULT_PORT
    private_key_path: Optional[str] = None
    public_key_path: Optional[str] = None
    floating_ip_pool: Optional[str] = None
    floating_ip: Optional[str] = None
    use_ipv6: bool = False
    public_ip_order: int = 0
    private_ip_order: int = 0
    disable_ssl_validation: bool = False
    user_data: Optional[str] = None
    server_wait: int = 600
    ssh_timeout: int = 300

    @field_validator("network_ref", "security_groups", mode="before")
    @classmethod
    def _split_list(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(item.strip() for item in value.split(",") if item.strip())
        return value


@dataclass(frozen=True, slots=True)
class InstanceConfig:
    """Immutable options driving a single instance lifecycle."""

    openstack_username: Optional[str] = None
    openstack_api_key: Optional[str] = None
    openstack_auth_url: Optional[str] = None
    openstack_tenant: Optional[str] = None
    openstack_region: Optional[str] = None
    openstack_service_name: Optional[str] = None
    openstack_domain: Optional[str] = None
    openstack_network_name: Optional[str] = None
    image_ref: Optional[str] = None
    flavor_ref: Optional[str] = None
    network_ref: tuple[str, ...] = ()
    server_name: Optional[str] = None
    key_name: Optional[str] = None
    security_groups: tuple[str, ...] = ()
    username: str = DEFAULT_USERNAME
    port: int = DEFAULT_PORT
    private_key_path: Optional[str] = None
    public_key_path: Optional[str] = None
    floating_ip_pool: Optional[str] = None
    floating_ip: Optional[str] = None
    use_ipv6: bool = False
    public_ip_order: int = 0
    private_ip_order: int = 0
    disable_ssl_validation: bool = False
    user_data: Optional[str] = None
    server_wait: int = 600
    ssh_timeout: int = 300

    def __post_init__(self) -> None:
        private_key, public_key = resolve_key_paths(self.private_key_path, self.public_key_path)
        object.__setattr__(self, "private_key_path", private_key)
        object.__setattr__(self, "public_key_path", public_key)

    @property
    def has_credentials(self) -> bool:
        """Return True when the full credential group is present."""

        return all(getattr(self, name) for name in REQUIRED_CREDENTIALS)

    def validate_credentials(self) -> None:
        """Reject a partially supplied credential group.

        Supplying none of the credentials is allowed: the SDK then falls back to
        its own ``clouds.yaml`` / ``OS_CLOUD`` lookup.
        """

        missing = [name for name in REQUIRED_CREDENTIALS if not getattr(self, name)]
        if missing and len(missing) != len(REQUIRED_CREDENTIALS):
            raise ConfigurationInvalidError(
                "Incomplete OpenStack credentials, missing: {}".format(", ".join(missing))
            )

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "InstanceConfig":
        """Validate raw values and build a configuration instance."""

        try:
            data = _ConfigSchema(**{k: v for k, v in values.items() if v is not None})
        except ValidationError as exc:
            raise ConfigurationInvalidError(f"Invalid configuration: {exc}") from exc
        return cls(**data.model_dump())

    @classmethod
    def from_sources(cls, *, ini_path: Path | None = None) -> "InstanceConfig":
        """Load configuration from ini file and environment variables."""

        merged: dict[str, Any] = {}
        if ini_path and ini_path.exists():
            merged.update(_load_ini_values(ini_path))
        merged.update(_load_env_values())
        return cls.from_mapping(merged)


def resolve_key_paths(
    private_key: Optional[str],
    public_key: Optional[str],
    *,
    exists: Callable[[str], bool] = os.path.exists,
) -> tuple[Optional[str], Optional[str]]:
    """Fill in the local RSA (preferred) or DSA key pair when none is configured."""

    if not private_key:
        for candidate in _KEY_CANDIDATES:
            expanded = os.path.expanduser(candidate)
            if exists(expanded):
                private_key = expanded
                break
    if not public_key and private_key:
        public_key = f"{private_key}.pub"
    return private_key, public_key


def resolve_default_config_path() -> Path:
    """Return path to default configuration file location."""

    if _is_frozen_binary():
        executable = Path(sys.executable).resolve()
        return executable.parent / "ephstack.ini"
    return Path("~/.config/ephstack/config.ini").expanduser()


def resolve_config_path() -> Path:
    """Resolve configuration file path, honoring environment overrides."""

    override = os.getenv("EPHSTACK_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    return resolve_default_config_path()


def resolve_config(
    interactive: bool = True,
    *,
    config_path: Path | None = None,
    persist_prompt: bool = True,
) -> InstanceConfig:
    """Build instance configuration, optionally prompting for missing credentials."""

    path = config_path or resolve_config_path()
    config = InstanceConfig.from_sources(ini_path=path)
    if not interactive or config.has_credentials:
        return config

    from ui.menus import prompt_credentials  # Imported lazily to avoid cycles

    updated = prompt_credentials(config)
    if persist_prompt:
        _maybe_persist_config(updated, path)
    return updated


def with_overrides(config: InstanceConfig, **overrides: Any) -> InstanceConfig:
    """Return new configuration instance with the non-empty overrides applied."""

    applied = {key: value for key, value in overrides.items() if value is not None}
    if not applied:
        return config
    return replace(config, **applied)


def save_config_to_ini(config: InstanceConfig, path: Path) -> None:
    """Persist configuration values to an ini file, separating secrets."""

    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # Preserve field case

    general: dict[str, str] = {}
    secrets: dict[str, str] = {}

    for field in _CONFIG_FIELDS:
        value = getattr(config, field)
        if value is None or value == ():
            continue
        target = secrets if field in _SENSITIVE_FIELDS else general
        target[field] = _format_ini_value(value)

    parser[CONFIG_SECTION] = general
    if secrets:
        parser[SECRETS_SECTION] = secrets

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        parser.write(handle)

    with suppress(PermissionError, NotImplementedError):
        os.chmod(path, 0o600)


def _format_ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, tuple):
        return ", ".join(value)
    return str(value)


def _get_env(key: str) -> Optional[str]:
    """Return environment variable value with blank strings normalized to None."""
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


CONFIG_SECTION = "ephstack"
SECRETS_SECTION = "ephstack.secrets"
_CONFIG_FIELDS = tuple(field.name for field in fields(InstanceConfig))
_SENSITIVE_FIELDS = {
    "openstack_username",
    "openstack_api_key",
}
# Conventional OpenStack client variables, overridden by EPHSTACK_* ones.
_OS_ENV_ALIASES = {
    "openstack_username": "OS_USERNAME",
    "openstack_api_key": "OS_PASSWORD",
    "openstack_auth_url": "OS_AUTH_URL",
    "openstack_tenant": "OS_PROJECT_NAME",
    "openstack_region": "OS_REGION_NAME",
    "openstack_domain": "OS_USER_DOMAIN_NAME",
}


def _load_env_values() -> dict[str, Optional[str]]:
    values: dict[str, Optional[str]] = {}
    for field in _CONFIG_FIELDS:
        value = _get_env(f"EPHSTACK_{field.upper()}")
        if value is None and field in _OS_ENV_ALIASES:
            value = _get_env(_OS_ENV_ALIASES[field])
        if value is not None:
            values[field] = value
    return values


def _load_ini_values(path: Path) -> dict[str, Optional[str]]:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str
    if not parser.read(path, encoding="utf-8"):
        return {}

    values: dict[str, Optional[str]] = {}
    for field in _CONFIG_FIELDS:
        section = SECRETS_SECTION if field in _SENSITIVE_FIELDS else CONFIG_SECTION
        if parser.has_option(section, field):
            raw = parser.get(section, field)
            values[field] = raw.strip() or None
    return values


def _maybe_persist_config(config: InstanceConfig, path: Path) -> None:
    from questionary import confirm

    message = f"Save configuration (including credentials) to {path}?"
    should_save = confirm(message, default=False).ask()
    if not should_save:
        return

    try:
        save_config_to_ini(config, path)
    except OSError as exc:
        print(f"[WARN] Failed to save configuration: {exc}")


def _is_frozen_binary() -> bool:
    """Return True when running from a PyInstaller-style frozen binary."""

    return bool(getattr(sys, "frozen", False))
