"""Address classification and reachable-address selection."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Iterable, Mapping, Optional, Sequence

from ephstack_core.errors import AddressUnavailableError
from services.base import AddressSource

logger = logging.getLogger(__name__)


def parse_ips(
    public: Optional[Iterable[str]],
    private: Optional[Iterable[str]],
    *,
    use_ipv6: bool = False,
) -> tuple[list[str], list[str]]:
    """Filter public and private address lists down to one IP version.

    Missing lists come back empty; relative order is kept.
    """

    version = 6 if use_ipv6 else 4
    return (
        [addr for addr in public or () if ip_version(addr) == version],
        [addr for addr in private or () if ip_version(addr) == version],
    )


def ip_version(address: str) -> Optional[int]:
    """Return 4 or 6 for a literal IP address, None for anything else."""

    try:
        return ipaddress.ip_address(str(address).strip()).version
    except ValueError:
        return None


def select_ip(
    source: AddressSource,
    *,
    use_ipv6: bool = False,
    network_name: Optional[str] = None,
    public_ip_order: int = 0,
    private_ip_order: int = 0,
) -> str:
    """Pick the address used to reach a server.

    A configured network group wins. Otherwise public addresses are preferred
    over private ones, read from the visibility lists when the provider
    supports them, else from the conventional ``public``/``private`` groups,
    else from the flat address list.
    """

    version = 6 if use_ipv6 else 4
    groups = source.address_groups() or {}

    if network_name and network_name in groups:
        for entry in groups[network_name] or ():
            if entry.get("addr") and _entry_version(entry) == version:
                logger.debug("Using configured network group", extra={"network": network_name})
                return entry["addr"]
        logger.warning(
            "Configured network group has no address of the requested version",
            extra={"network": network_name, "version": version},
        )

    if source.supports_visibility():
        public: Sequence[str] = source.public_addresses()
        private: Sequence[str] = source.private_addresses()
    else:
        logger.debug("Provider cannot classify addresses, reading network groups")
        public = _group_addresses(groups.get("public"))
        private = _group_addresses(groups.get("private"))

    if not public and not private:
        flat = source.flat_addresses()
        public, private = flat, flat

    public_matches, private_matches = parse_ips(public, private, use_ipv6=use_ipv6)
    for candidates, index in ((public_matches, public_ip_order), (private_matches, private_ip_order)):
        if 0 <= index < len(candidates):
            return candidates[index]

    raise AddressUnavailableError(f"Could not find an IPv{version} address for the server")


def _entry_version(entry: Mapping[str, Any]) -> Optional[int]:
    tagged = entry.get("version")
    if tagged is not None:
        try:
            return int(tagged)
        except (TypeError, ValueError):
            return None
    return ip_version(entry.get("addr", ""))


def _group_addresses(entries: Optional[Sequence[Mapping[str, Any]]]) -> list[str]:
    return [entry["addr"] for entry in entries or () if entry.get("addr")]
