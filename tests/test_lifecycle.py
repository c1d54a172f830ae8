"""Tests for the instance lifecycle orchestration."""

from __future__ import annotations

import random
import tempfile
import unittest
from pathlib import Path
from typing import Optional, Sequence

from ephstack_core import InstanceConfig
from ephstack_core.errors import (
    AddressUnavailableError,
    ConfigurationInvalidError,
    PoolExhaustedError,
    ProviderError,
    RemoteCommandError,
    UnreachableError,
)
from ephstack_core.naming import EnvironmentProbe
from services.base import (
    AddressRecord,
    AddressSource,
    CloudProvider,
    FloatingAddress,
    RemoteSession,
    ResourceRef,
    ServerHandle,
    ServerRequest,
    SSHService,
)
from services.lifecycle import HOSTNAME_KEY, SERVER_ID_KEY, InstanceLifecycle, LifecycleStage

_CREDENTIALS = {
    "openstack_username": "hello",
    "openstack_api_key": "world",
    "openstack_auth_url": "http://keystone",
}


class _FakeEnvironment(EnvironmentProbe):
    def login(self) -> Optional[str]:
        return "user"

    def hostname(self) -> str:
        return "host"


class _FakeProvider(CloudProvider):
    def __init__(self) -> None:
        self.images = [ResourceRef("img-1", "Ubuntu 22.04"), ResourceRef("img-2", "Fedora")]
        self.flavors = [ResourceRef("2", "m1.small")]
        self.networks = [ResourceRef("net-1", "vlan1"), ResourceRef("net-2", "vlan2")]
        self.floating_ips: list[FloatingAddress] = []
        self.addresses = AddressRecord(public=["1.2.3.4"], private=["10.0.0.2"])
        self.admin_password: Optional[str] = "aloha"
        self.requests: list[ServerRequest] = []
        self.associated: list[str] = []
        self.deleted: list[str] = []
        self.live: set[str] = set()
        self.delete_error: Optional[Exception] = None

    def list_images(self) -> Sequence[ResourceRef]:
        return self.images

    def list_flavors(self) -> Sequence[ResourceRef]:
        return self.flavors

    def list_networks(self) -> Sequence[ResourceRef]:
        return self.networks

    def list_floating_ips(self) -> Sequence[FloatingAddress]:
        return self.floating_ips

    def create_server(self, request: ServerRequest) -> ServerHandle:
        self.requests.append(request)
        self.live.add("test123")
        return ServerHandle(identifier="test123", name=request.name, admin_password=self.admin_password)

    def wait_until_active(self, server: ServerHandle, *, timeout: int) -> ServerHandle:
        return server

    def find_server(self, server_id: str) -> Optional[ServerHandle]:
        if server_id not in self.live:
            return None
        return ServerHandle(identifier=server_id, name="hello")

    def delete_server(self, server: ServerHandle) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(server.identifier)
        self.live.discard(server.identifier)

    def associate_address(self, server: ServerHandle, address: str) -> None:
        self.associated.append(address)

    def address_source(self, server: ServerHandle) -> AddressSource:
        return self.addresses


class _FakeSession(RemoteSession):
    def __init__(self, service: "_FakeSSHService") -> None:
        self._service = service

    def run(self, commands: Sequence[str]) -> list[str]:
        if self._service.command_error is not None:
            raise self._service.command_error
        self._service.commands.extend(commands)
        return ["" for _ in commands]

    def close(self) -> None:
        return None


class _FakeSSHService(SSHService):
    def __init__(self) -> None:
        self.reachable = True
        self.command_error: Optional[Exception] = None
        self.waited: list[tuple[str, int]] = []
        self.sessions: list[dict] = []
        self.commands: list[str] = []

    def wait_for_sshd(self, host: str, port: int, *, timeout: float) -> None:
        self.waited.append((host, port))
        if not self.reachable:
            raise UnreachableError(host, port, timeout)

    def open_session(self, host, username, *, port=22, password=None, key_path=None) -> RemoteSession:
        self.sessions.append(
            {"host": host, "username": username, "port": port, "password": password, "key_path": key_path}
        )
        return _FakeSession(self)


class InstanceLifecycleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.tmp = Path(self._tmpdir.name)
        self.public_key = self.tmp / "id_rsa.pub"
        self.public_key.write_text("ssh-rsa AAAAKEY user@host\n", encoding="utf-8")

        self.provider = _FakeProvider()
        self.ssh = _FakeSSHService()
        self.factory_calls = 0
        self.state: dict[str, str] = {}

    def _factory(self, _config: InstanceConfig) -> CloudProvider:
        self.factory_calls += 1
        return self.provider

    def _config(self, **overrides) -> InstanceConfig:
        values = {
            **_CREDENTIALS,
            "image_ref": "img-1",
            "flavor_ref": "2",
            "private_key_path": str(self.tmp / "id_rsa"),
            "public_key_path": str(self.public_key),
        }
        values.update(overrides)
        return InstanceConfig(**values)

    def _lifecycle(self, config: InstanceConfig) -> InstanceLifecycle:
        return InstanceLifecycle(
            config,
            instance_name="potatoes",
            provider_factory=self._factory,
            ssh=self.ssh,
            environment=_FakeEnvironment(),
        )


class CreateTests(InstanceLifecycleTestCase):
    def test_create_provisions_and_bootstraps(self) -> None:
        lifecycle = self._lifecycle(self._config())

        server = lifecycle.create(self.state)

        self.assertEqual("test123", server.identifier)
        self.assertRegex(self.provider.requests[0].name, r"^potatoes-user-host-[a-z0-9]{7}$")
        self.assertEqual("img-1", self.provider.requests[0].image_id)
        self.assertEqual("2", self.provider.requests[0].flavor_id)
        self.assertEqual({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"}, self.state)
        self.assertEqual([("1.2.3.4", 22)], self.ssh.waited)
        self.assertEqual([], self.provider.associated)
        self.assertEqual(LifecycleStage.BOOTSTRAPPED, lifecycle.stage)
        self.assertEqual(
            [
                "mkdir -p ~/.ssh",
                "echo 'ssh-rsa AAAAKEY user@host' >> ~/.ssh/authorized_keys",
                "passwd -l root",
                "sudo mkdir -p /etc/chef/ohai/hints",
                "sudo touch /etc/chef/ohai/hints/openstack.json",
            ],
            self.ssh.commands,
        )

    def test_key_setup_uses_admin_password_then_key(self) -> None:
        self._lifecycle(self._config()).create(self.state)

        key_session, hint_session = self.ssh.sessions
        self.assertEqual("aloha", key_session["password"])
        self.assertIsNone(key_session["key_path"])
        self.assertIsNone(hint_session["password"])
        self.assertEqual(str(self.tmp / "id_rsa"), hint_session["key_path"])

    def test_key_setup_falls_back_to_private_key_without_password(self) -> None:
        self.provider.admin_password = None

        self._lifecycle(self._config()).create(self.state)

        self.assertEqual(str(self.tmp / "id_rsa"), self.ssh.sessions[0]["key_path"])

    def test_partial_credentials_fail_before_provider_is_built(self) -> None:
        for missing in _CREDENTIALS:
            with self.subTest(missing=missing):
                config = self._config(**{missing: None})
                with self.assertRaises(ConfigurationInvalidError):
                    self._lifecycle(config).create(self.state)
                self.assertEqual(0, self.factory_calls)
                self.assertEqual({}, self.state)

    def test_configured_server_name_is_used(self) -> None:
        self._lifecycle(self._config(server_name="puppy")).create(self.state)

        self.assertEqual("puppy", self.provider.requests[0].name)

    def test_references_are_resolved(self) -> None:
        config = self._config(image_ref="/Ubuntu/", flavor_ref="m1.small", network_ref=("vlan2", "net-1"))

        self._lifecycle(config).create(self.state)

        request = self.provider.requests[0]
        self.assertEqual("img-1", request.image_id)
        self.assertEqual("2", request.flavor_id)
        self.assertEqual(["net-2", "net-1"], list(request.networks))

    def test_user_data_file_is_read(self) -> None:
        user_data = self.tmp / "cloud-init.yaml"
        user_data.write_text("#cloud-config\n", encoding="utf-8")

        self._lifecycle(self._config(user_data=str(user_data))).create(self.state)

        self.assertEqual("#cloud-config\n", self.provider.requests[0].user_data)

    def test_missing_user_data_file_is_ignored(self) -> None:
        self._lifecycle(self._config(user_data=str(self.tmp / "nope"))).create(self.state)

        self.assertIsNone(self.provider.requests[0].user_data)

    def test_missing_public_key_fails_before_server_is_created(self) -> None:
        lifecycle = self._lifecycle(self._config(public_key_path=str(self.tmp / "missing.pub")))

        with self.assertRaises(ConfigurationInvalidError):
            lifecycle.create(self.state)

        self.assertEqual([], self.provider.requests)
        self.assertEqual({}, self.state)
        self.assertEqual(LifecycleStage.UNPROVISIONED, lifecycle.stage)

    def test_missing_public_key_is_ignored_with_key_name(self) -> None:
        config = self._config(key_name="mine", public_key_path=str(self.tmp / "missing.pub"))

        self._lifecycle(config).create(self.state)

        self.assertEqual("test123", self.state[SERVER_ID_KEY])

    def test_unreadable_user_data_fails_before_server_is_created(self) -> None:
        with self.assertRaises(ConfigurationInvalidError):
            self._lifecycle(self._config(user_data=str(self.tmp))).create(self.state)

        self.assertEqual([], self.provider.requests)
        self.assertEqual({}, self.state)

    def test_floating_ip_pool_address_is_attached(self) -> None:
        self.provider.floating_ips = [
            FloatingAddress("1.1.1.1", "some_other_pool"),
            FloatingAddress("5.5.5.5", "swimmers"),
        ]

        self._lifecycle(self._config(floating_ip_pool="swimmers")).create(self.state)

        self.assertEqual(["5.5.5.5"], self.provider.associated)
        self.assertEqual("5.5.5.5", self.state[HOSTNAME_KEY])
        self.assertEqual([("5.5.5.5", 22)], self.ssh.waited)

    def test_explicit_floating_ip_beats_pool(self) -> None:
        self.provider.floating_ips = [FloatingAddress("5.5.5.5", "swimmers")]

        self._lifecycle(self._config(floating_ip="7.7.7.7", floating_ip_pool="swimmers")).create(self.state)

        self.assertEqual(["7.7.7.7"], self.provider.associated)
        self.assertEqual("7.7.7.7", self.state[HOSTNAME_KEY])

    def test_exhausted_pool_keeps_server_id_only(self) -> None:
        self.provider.floating_ips = [FloatingAddress("1.1.1.1", "some_other_pool")]
        lifecycle = self._lifecycle(self._config(floating_ip_pool="swimmers"))

        with self.assertRaises(PoolExhaustedError):
            lifecycle.create(self.state)

        self.assertEqual({SERVER_ID_KEY: "test123"}, self.state)
        self.assertEqual(LifecycleStage.REQUESTED, lifecycle.stage)
        self.assertEqual([], self.ssh.waited)

    def test_missing_address_keeps_server_id_only(self) -> None:
        self.provider.addresses = AddressRecord(public=["::1"], private=[])

        with self.assertRaises(AddressUnavailableError):
            self._lifecycle(self._config()).create(self.state)

        self.assertEqual({SERVER_ID_KEY: "test123"}, self.state)

    def test_ipv6_address_selected_when_requested(self) -> None:
        self.provider.addresses = AddressRecord(public=["1.2.3.4", "2001:db8::1"], private=[])

        self._lifecycle(self._config(use_ipv6=True)).create(self.state)

        self.assertEqual("2001:db8::1", self.state[HOSTNAME_KEY])

    def test_unreachable_server_keeps_id_and_hostname(self) -> None:
        self.ssh.reachable = False
        lifecycle = self._lifecycle(self._config(port=2222))

        with self.assertRaises(UnreachableError):
            lifecycle.create(self.state)

        self.assertEqual({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"}, self.state)
        self.assertEqual(LifecycleStage.ADDRESS_ASSIGNED, lifecycle.stage)
        self.assertEqual([("1.2.3.4", 2222)], self.ssh.waited)
        self.assertEqual([], self.ssh.sessions)

    def test_key_name_skips_key_setup(self) -> None:
        self._lifecycle(self._config(key_name="mine")).create(self.state)

        self.assertEqual("mine", self.provider.requests[0].key_name)
        self.assertEqual(1, len(self.ssh.sessions))
        self.assertNotIn("passwd -l root", self.ssh.commands)
        self.assertIn("sudo touch /etc/chef/ohai/hints/openstack.json", self.ssh.commands)

    def test_bootstrap_failure_propagates(self) -> None:
        self.ssh.command_error = RemoteCommandError("mkdir -p ~/.ssh", 1, "denied")
        lifecycle = self._lifecycle(self._config())

        with self.assertRaises(RemoteCommandError):
            lifecycle.create(self.state)

        self.assertEqual(LifecycleStage.SHELL_READY, lifecycle.stage)
        self.assertEqual({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"}, self.state)


class DestroyTests(InstanceLifecycleTestCase):
    def test_destroy_without_server_id_does_nothing(self) -> None:
        self._lifecycle(self._config()).destroy(self.state)

        self.assertEqual(0, self.factory_calls)
        self.assertEqual({}, self.state)

    def test_destroy_of_absent_server_clears_state(self) -> None:
        self.state.update({SERVER_ID_KEY: "gone", HOSTNAME_KEY: "1.2.3.4"})

        self._lifecycle(self._config()).destroy(self.state)

        self.assertEqual([], self.provider.deleted)
        self.assertEqual({}, self.state)

    def test_destroy_deletes_live_server(self) -> None:
        lifecycle = self._lifecycle(self._config())
        lifecycle.create(self.state)

        lifecycle.destroy(self.state)

        self.assertEqual(["test123"], self.provider.deleted)
        self.assertEqual({}, self.state)
        self.assertEqual(1, self.factory_calls)

    def test_delete_error_still_clears_state(self) -> None:
        self.provider.live.add("test123")
        self.provider.delete_error = ProviderError("boom")
        self.state.update({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"})

        with self.assertRaises(ProviderError):
            self._lifecycle(self._config()).destroy(self.state)

        self.assertEqual({}, self.state)

    def test_configuration_error_keeps_state(self) -> None:
        self.provider.live.add("test123")
        self.state.update({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"})

        def _validating_factory(config: InstanceConfig) -> CloudProvider:
            config.validate_credentials()
            return self.provider

        lifecycle = InstanceLifecycle(
            self._config(openstack_api_key=None),
            instance_name="potatoes",
            provider_factory=_validating_factory,
            ssh=self.ssh,
            environment=_FakeEnvironment(),
        )

        with self.assertRaises(ConfigurationInvalidError):
            lifecycle.destroy(self.state)

        self.assertEqual({SERVER_ID_KEY: "test123", HOSTNAME_KEY: "1.2.3.4"}, self.state)
        self.assertEqual({"test123"}, self.provider.live)

    def test_destroy_after_failed_create(self) -> None:
        self.ssh.reachable = False
        lifecycle = self._lifecycle(self._config())
        with self.assertRaises(UnreachableError):
            lifecycle.create(self.state)

        lifecycle.destroy(self.state)

        self.assertEqual(["test123"], self.provider.deleted)
        self.assertEqual({}, self.state)


class GeneratedNameTests(InstanceLifecycleTestCase):
    def test_build_request_is_deterministic_with_seeded_rng(self) -> None:
        lifecycle = self._lifecycle(self._config())

        random.seed(3)
        first = lifecycle.build_request(self.provider).name
        random.seed(3)
        second = lifecycle.build_request(self.provider).name

        self.assertEqual(first, second)


if __name__ == "__main__":  # pragma: no cover - convenience
    unittest.main()
