"""OpenStack implementation of the ``CloudProvider`` contract."""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from openstack import exceptions as sdk_exceptions

from ephstack_core.errors import ProviderError
from services.base import (
    AddressRecord,
    AddressSource,
    CloudProvider,
    FloatingAddress,
    ResourceRef,
    ServerHandle,
    ServerRequest,
)


logger = logging.getLogger(__name__)

_ADDRESS_TYPE_KEY = "OS-EXT-IPS:type"
_VISIBILITY = {"floating": "public", "fixed": "private"}


def build_address_record(
    addresses: Optional[Mapping[str, Sequence[Mapping[str, Any]]]],
    *,
    access_ipv4: Optional[str] = None,
    access_ipv6: Optional[str] = None,
) -> AddressRecord:
    """Translate a Nova ``addresses`` payload into an ``AddressRecord``.

    Visibility lists are only offered when every entry carries the extended
    address type; deployments without that extension get ``None`` for both.
    """

    groups = {name: list(entries or ()) for name, entries in (addresses or {}).items()}
    entries = [entry for group in groups.values() for entry in group]

    public: Optional[list[str]] = None
    private: Optional[list[str]] = None
    if entries and all(entry.get(_ADDRESS_TYPE_KEY) in _VISIBILITY for entry in entries):
        public = [e["addr"] for e in entries if _VISIBILITY[e[_ADDRESS_TYPE_KEY]] == "public"]
        private = [e["addr"] for e in entries if _VISIBILITY[e[_ADDRESS_TYPE_KEY]] == "private"]

    flat = [entry["addr"] for entry in entries if entry.get("addr")]
    for extra in (access_ipv4, access_ipv6):
        if extra and extra not in flat:
            flat.append(extra)

    return AddressRecord(groups=groups or None, public=public, private=private, flat=flat)


class OpenStackCloudProvider(CloudProvider):
    """OpenStack implementation backed by an ``openstacksdk`` connection."""

    def __init__(self, connection: Any) -> None:
        self._conn = connection

    def _to_handle(self, server: Any) -> ServerHandle:
        return ServerHandle(
            identifier=str(server.id),
            name=getattr(server, "name", None) or str(server.id),
            admin_password=getattr(server, "admin_password", None),
            resource=server,
        )

    def list_images(self) -> Sequence[ResourceRef]:
        logger.debug("Listing images")
        return self._call("list images", lambda: [_ref(item) for item in self._conn.image.images()])

    def list_flavors(self) -> Sequence[ResourceRef]:
        logger.debug("Listing flavors")
        return self._call("list flavors", lambda: [_ref(item) for item in self._conn.compute.flavors()])

    def list_networks(self) -> Sequence[ResourceRef]:
        logger.debug("Listing networks")
        return self._call("list networks", lambda: [_ref(item) for item in self._conn.network.networks()])

    def list_floating_ips(self) -> Sequence[FloatingAddress]:
        logger.debug("Listing floating IPs")

        def _list() -> list[FloatingAddress]:
            pools = {str(net.id): net.name for net in self._conn.network.networks()}
            return [
                FloatingAddress(
                    address=fip.floating_ip_address,
                    pool=pools.get(str(fip.floating_network_id)),
                    fixed_address=fip.fixed_ip_address,
                    attached_to=fip.port_id,
                )
                for fip in self._conn.network.ips()
            ]

        return self._call("list floating IPs", _list)

    def create_server(self, request: ServerRequest) -> ServerHandle:
        logger.info("Creating server via OpenStack", extra={"server_name": request.name})
        create_kwargs: dict[str, Any] = {
            "name": request.name,
            "image_id": request.image_id,
            "flavor_id": request.flavor_id,
        }
        if request.key_name:
            create_kwargs["key_name"] = request.key_name
        if request.security_groups:
            create_kwargs["security_groups"] = [{"name": group} for group in request.security_groups]
        if request.networks:
            create_kwargs["networks"] = [{"uuid": net_id} for net_id in request.networks]
        if request.user_data:
            create_kwargs["user_data"] = base64.b64encode(request.user_data.encode("utf-8")).decode("ascii")

        server = self._call("create server", lambda: self._conn.compute.create_server(**create_kwargs))
        return self._to_handle(server)

    def wait_until_active(self, server: ServerHandle, *, timeout: int) -> ServerHandle:
        logger.debug("Waiting for server to become active", extra={"server_id": server.identifier})
        refreshed = self._call(
            "wait for server",
            lambda: self._conn.compute.wait_for_server(server.resource, status="ACTIVE", wait=timeout),
        )
        handle = self._to_handle(refreshed)
        # The admin password is only returned by the create call.
        handle.admin_password = handle.admin_password or server.admin_password
        return handle

    def find_server(self, server_id: str) -> Optional[ServerHandle]:
        logger.debug("Looking up server", extra={"server_id": server_id})
        try:
            server = self._conn.compute.get_server(server_id)
        except sdk_exceptions.NotFoundException:
            return None
        except sdk_exceptions.SDKException as exc:
            logger.error("OpenStack API error while fetching server", exc_info=exc)
            raise ProviderError(f"Failed to fetch server {server_id}: {exc}") from exc
        return self._to_handle(server)

    def delete_server(self, server: ServerHandle) -> None:
        logger.info("Deleting server via OpenStack", extra={"server_id": server.identifier})
        self._call(
            "delete server",
            lambda: self._conn.compute.delete_server(server.identifier, ignore_missing=True),
        )

    def associate_address(self, server: ServerHandle, address: str) -> None:
        logger.info("Associating floating IP", extra={"server_id": server.identifier, "address": address})

        def _associate() -> None:
            fip = self._conn.network.find_ip(address)
            if fip is None:
                raise ProviderError(f"Floating IP {address} not found")
            ports = list(self._conn.network.ports(device_id=server.identifier))
            if not ports:
                raise ProviderError(f"Server {server.identifier} has no network port")
            self._conn.network.update_ip(fip, port_id=ports[0].id)

        self._call("associate floating IP", _associate)

    def address_source(self, server: ServerHandle) -> AddressSource:
        resource = server.resource
        return build_address_record(
            getattr(resource, "addresses", None),
            access_ipv4=getattr(resource, "access_ipv4", None),
            access_ipv6=getattr(resource, "access_ipv6", None),
        )

    def _call(self, action: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except sdk_exceptions.SDKException as exc:
            logger.error("OpenStack API error", extra={"action": action}, exc_info=exc)
            raise ProviderError(f"Failed to {action}: {exc}") from exc


def _ref(resource: Any) -> ResourceRef:
    return ResourceRef(identifier=str(resource.id), name=getattr(resource, "name", None) or "")
