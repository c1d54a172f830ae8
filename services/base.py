"""Abstract base classes defining the collaborator contracts of the lifecycle core.

These ABCs keep the orchestration logic independent from a concrete cloud
SDK or SSH library. Concrete implementations live in dedicated modules
(for example ``services.openstack`` and ``services.ssh``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Mapping, Optional, Sequence


@dataclass(slots=True)
class ResourceRef:
    """An image, flavor or network as listed by the provider."""

    identifier: str
    name: str


@dataclass(slots=True)
class FloatingAddress:
    """Entry of the provider's floating address inventory."""

    address: str
    pool: Optional[str]
    fixed_address: Optional[str] = None
    attached_to: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return not self.fixed_address and not self.attached_to


@dataclass(slots=True)
class ServerRequest:
    """Input parameters required to create a server."""

    name: str
    image_id: Optional[str]
    flavor_id: Optional[str]
    key_name: Optional[str] = None
    security_groups: Sequence[str] = ()
    networks: Sequence[str] = ()
    user_data: Optional[str] = None


@dataclass(slots=True)
class ServerHandle:
    """Reference to a live or provisioning server."""

    identifier: str
    name: str
    admin_password: Optional[str] = None
    resource: Any = field(default=None, repr=False)


class AddressSource(ABC):
    """Address views a server may expose, probed explicitly by capability."""

    @abstractmethod
    def address_groups(self) -> Optional[Mapping[str, Sequence[Mapping[str, Any]]]]:
        """Return the structured network-group map, or None when unavailable."""

    @abstractmethod
    def supports_visibility(self) -> bool:
        """Return True when public/private address lists can be read."""

    @abstractmethod
    def public_addresses(self) -> Sequence[str]:
        """Return public addresses; only meaningful when ``supports_visibility``."""

    @abstractmethod
    def private_addresses(self) -> Sequence[str]:
        """Return private addresses; only meaningful when ``supports_visibility``."""

    @abstractmethod
    def flat_addresses(self) -> Sequence[str]:
        """Return every known address regardless of network naming."""


@dataclass(slots=True)
class AddressRecord(AddressSource):
    """Plain-data address source.

    ``public`` and ``private`` set to None mean the provider cannot classify
    addresses by visibility, which is different from an empty list.
    """

    groups: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None
    public: Optional[Sequence[str]] = None
    private: Optional[Sequence[str]] = None
    flat: Sequence[str] = ()

    def address_groups(self) -> Optional[Mapping[str, Sequence[Mapping[str, Any]]]]:
        return self.groups

    def supports_visibility(self) -> bool:
        return self.public is not None or self.private is not None

    def public_addresses(self) -> Sequence[str]:
        return list(self.public or ())

    def private_addresses(self) -> Sequence[str]:
        return list(self.private or ())

    def flat_addresses(self) -> Sequence[str]:
        return list(self.flat)


class CloudProvider(ABC):
    """Operations required from any infrastructure provider."""

    @abstractmethod
    def list_images(self) -> Sequence[ResourceRef]:
        """Return images available to the account, in provider order."""

    @abstractmethod
    def list_flavors(self) -> Sequence[ResourceRef]:
        """Return flavors available for provisioning, in provider order."""

    @abstractmethod
    def list_networks(self) -> Sequence[ResourceRef]:
        """Return networks visible to the account, in provider order."""

    @abstractmethod
    def list_floating_ips(self) -> Sequence[FloatingAddress]:
        """Return the floating address inventory."""

    @abstractmethod
    def create_server(self, request: ServerRequest) -> ServerHandle:
        """Request a new server matching the request."""

    @abstractmethod
    def wait_until_active(self, server: ServerHandle, *, timeout: int) -> ServerHandle:
        """Block until the server is running and return a refreshed handle."""

    @abstractmethod
    def find_server(self, server_id: str) -> Optional[ServerHandle]:
        """Return the server with the given id, or None when it does not exist."""

    @abstractmethod
    def delete_server(self, server: ServerHandle) -> None:
        """Destroy a previously provisioned server."""

    @abstractmethod
    def associate_address(self, server: ServerHandle, address: str) -> None:
        """Attach a floating address to the server."""

    @abstractmethod
    def address_source(self, server: ServerHandle) -> AddressSource:
        """Return the address views exposed by the server."""


class RemoteSession(ABC):
    """An open remote shell able to run command sequences."""

    @abstractmethod
    def run(self, commands: Sequence[str]) -> list[str]:
        """Run each command in order and return their standard output."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""

    def __enter__(self) -> "RemoteSession":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class SSHService(ABC):
    """Abstraction for reaching and executing commands on remote servers."""

    @abstractmethod
    def wait_for_sshd(self, host: str, port: int, *, timeout: float) -> None:
        """Block until an SSH daemon answers on host:port or raise ``UnreachableError``."""

    @abstractmethod
    def open_session(
        self,
        host: str,
        username: str,
        *,
        port: int = 22,
        password: str | None = None,
        key_path: str | None = None,
    ) -> RemoteSession:
        """Open an authenticated session on the remote host."""
