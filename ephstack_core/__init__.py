"""Core helpers used by the ephstack CLI."""

from .config import (
    InstanceConfig,
    resolve_config,
    resolve_config_path,
    resolve_default_config_path,
    save_config_to_ini,
    with_overrides,
)
from .errors import (
    AddressUnavailableError,
    ConfigurationInvalidError,
    EphstackError,
    PoolExhaustedError,
    ProviderError,
    RemoteCommandError,
    UnreachableError,
)
from .naming import EnvironmentProbe, LocalEnvironment, generate_name

__all__ = [
    "InstanceConfig",
    "resolve_config",
    "resolve_config_path",
    "resolve_default_config_path",
    "save_config_to_ini",
    "with_overrides",
    "AddressUnavailableError",
    "ConfigurationInvalidError",
    "EphstackError",
    "PoolExhaustedError",
    "ProviderError",
    "RemoteCommandError",
    "UnreachableError",
    "EnvironmentProbe",
    "LocalEnvironment",
    "generate_name",
]
