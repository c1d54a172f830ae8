"""Exception hierarchy shared by the lifecycle core and its bindings."""

from __future__ import annotations


class EphstackError(RuntimeError):
    """Base class for every failure the CLI reports to the user."""


class ConfigurationInvalidError(EphstackError):
    """Raised when configuration values are incomplete or malformed."""


class AddressUnavailableError(EphstackError):
    """No address of the requested IP version could be found for a server."""


class PoolExhaustedError(EphstackError):
    """The floating IP pool has no unattached address left."""

    def __init__(self, pool: str) -> None:
        super().__init__(f"No free floating IP address in pool {pool!r}")
        self.pool = pool


class UnreachableError(EphstackError):
    """The remote shell did not become reachable before the deadline."""

    def __init__(self, host: str, port: int, timeout: float) -> None:
        super().__init__(f"SSH on {host}:{port} not reachable after {timeout:g}s")
        self.host = host
        self.port = port
        self.timeout = timeout


class ProviderError(EphstackError):
    """Opaque failure reported by the cloud provider client."""


class RemoteCommandError(ProviderError):
    """A command executed over SSH exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        super().__init__(f"Remote command failed (exit {exit_code}): {stderr.strip()}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
