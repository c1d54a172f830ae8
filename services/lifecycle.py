"""Create and destroy a single server, keeping the persisted instance state in sync."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Callable, MutableMapping, Optional

from ephstack_core import ConfigurationInvalidError, InstanceConfig
from ephstack_core.naming import EnvironmentProbe, LocalEnvironment, generate_name
from services.addresses import select_ip
from services.base import CloudProvider, ServerHandle, ServerRequest, SSHService
from services.bootstrap import hint_commands, key_setup_commands, read_public_key
from services.floating_ip import allocate_from_pool, attach_address
from services.resolver import resolve_reference, resolve_references

logger = logging.getLogger(__name__)

SERVER_ID_KEY = "server_id"
HOSTNAME_KEY = "hostname"

ProviderFactory = Callable[[InstanceConfig], CloudProvider]


class LifecycleStage(enum.Enum):
    """Progress of a create call."""

    UNPROVISIONED = "unprovisioned"
    REQUESTED = "requested"
    ADDRESS_ASSIGNED = "address_assigned"
    SHELL_READY = "shell_ready"
    BOOTSTRAPPED = "bootstrapped"


class InstanceLifecycle:
    """Drive the provisioning sequence of one instance.

    ``state`` mappings passed to :meth:`create` and :meth:`destroy` are
    updated as soon as each value is known, so a failure part-way through
    still leaves enough behind for a later destroy.
    """

    def __init__(
        self,
        config: InstanceConfig,
        *,
        instance_name: str,
        provider_factory: ProviderFactory,
        ssh: SSHService,
        environment: Optional[EnvironmentProbe] = None,
    ) -> None:
        self._config = config
        self._instance_name = instance_name
        self._provider_factory = provider_factory
        self._ssh = ssh
        self._environment = environment or LocalEnvironment()
        self._provider: Optional[CloudProvider] = None
        self.stage = LifecycleStage.UNPROVISIONED

    @property
    def config(self) -> InstanceConfig:
        return self._config

    def _get_provider(self) -> CloudProvider:
        if self._provider is None:
            self._provider = self._provider_factory(self._config)
        return self._provider

    def create(self, state: MutableMapping[str, str]) -> ServerHandle:
        """Provision, address and bootstrap a new server."""

        self._config.validate_credentials()
        # Local files are read before anything is created remotely.
        public_key = self._load_public_key()
        provider = self._get_provider()

        request = self.build_request(provider)
        server = provider.create_server(request)
        state[SERVER_ID_KEY] = server.identifier
        logger.info("Server created", extra={"server_id": server.identifier, "server_name": server.name})
        server = provider.wait_until_active(server, timeout=self._config.server_wait)
        self.stage = LifecycleStage.REQUESTED

        hostname = self._assign_address(provider, server)
        state[HOSTNAME_KEY] = hostname
        self.stage = LifecycleStage.ADDRESS_ASSIGNED

        self._ssh.wait_for_sshd(hostname, self._config.port, timeout=self._config.ssh_timeout)
        self.stage = LifecycleStage.SHELL_READY

        if public_key:
            self._setup_ssh_key(server, hostname, public_key)
        self._add_hint(hostname)
        self.stage = LifecycleStage.BOOTSTRAPPED
        logger.info("Server bootstrapped", extra={"server_id": server.identifier, "hostname": hostname})
        return server

    def destroy(self, state: MutableMapping[str, str]) -> None:
        """Delete the server recorded in ``state``; a no-op when nothing was created."""

        server_id = state.get(SERVER_ID_KEY)
        if not server_id:
            return

        # Configuration errors leave the state untouched.
        provider = self._get_provider()
        try:
            server = provider.find_server(server_id)
            if server is None:
                logger.info("Server already gone, skipping delete", extra={"server_id": server_id})
            else:
                provider.delete_server(server)
                logger.info("Server destroyed", extra={"server_id": server_id})
        finally:
            state.pop(SERVER_ID_KEY, None)
            state.pop(HOSTNAME_KEY, None)

    def build_request(self, provider: CloudProvider) -> ServerRequest:
        """Assemble creation parameters, resolving references against provider listings."""

        config = self._config
        image_id = resolve_reference(config.image_ref, provider.list_images()) if config.image_ref else None
        flavor_id = resolve_reference(config.flavor_ref, provider.list_flavors()) if config.flavor_ref else None
        networks: list[str] = []
        if config.network_ref:
            networks = resolve_references(config.network_ref, provider.list_networks())

        return ServerRequest(
            name=config.server_name or generate_name(self._instance_name, self._environment),
            image_id=image_id,
            flavor_id=flavor_id,
            key_name=config.key_name,
            security_groups=config.security_groups,
            networks=networks,
            user_data=self._read_user_data(),
        )

    def _read_user_data(self) -> Optional[str]:
        path = self._config.user_data
        if not path:
            return None
        user_data = Path(path).expanduser()
        if not user_data.exists():
            logger.warning("User data file not found, ignoring", extra={"path": str(user_data)})
            return None
        try:
            return user_data.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationInvalidError(f"Cannot read user data file {user_data}: {exc}") from exc

    def _load_public_key(self) -> Optional[str]:
        config = self._config
        if config.key_name:
            logger.info("Using provider key pair", extra={"key_name": config.key_name})
            return None
        if not config.public_key_path:
            logger.warning("No public key configured, skipping key setup")
            return None
        try:
            return read_public_key(config.public_key_path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationInvalidError(
                f"Cannot read public key {config.public_key_path}: {exc}"
            ) from exc

    def _assign_address(self, provider: CloudProvider, server: ServerHandle) -> str:
        config = self._config
        if config.floating_ip:
            return attach_address(provider, server, config.floating_ip)
        if config.floating_ip_pool:
            return allocate_from_pool(provider, server, config.floating_ip_pool)
        return select_ip(
            provider.address_source(server),
            use_ipv6=config.use_ipv6,
            network_name=config.openstack_network_name,
            public_ip_order=config.public_ip_order,
            private_ip_order=config.private_ip_order,
        )

    def _setup_ssh_key(self, server: ServerHandle, hostname: str, public_key: str) -> None:
        config = self._config
        commands = key_setup_commands(public_key, config.username)
        credentials = (
            {"password": server.admin_password}
            if server.admin_password
            else {"key_path": config.private_key_path}
        )
        with self._ssh.open_session(hostname, config.username, port=config.port, **credentials) as session:
            session.run(commands)

    def _add_hint(self, hostname: str) -> None:
        config = self._config
        with self._ssh.open_session(
            hostname,
            config.username,
            port=config.port,
            key_path=config.private_key_path,
        ) as session:
            session.run(hint_commands())
