"""Floating address allocation."""

from __future__ import annotations

import logging

from ephstack_core.errors import PoolExhaustedError
from services.base import CloudProvider, ServerHandle

logger = logging.getLogger(__name__)


def allocate_from_pool(provider: CloudProvider, server: ServerHandle, pool: str) -> str:
    """Attach the first unassigned address of ``pool`` to the server and return it."""

    for entry in provider.list_floating_ips():
        if entry.pool == pool and entry.is_free:
            logger.info(
                "Attaching floating IP from pool",
                extra={"pool": pool, "address": entry.address, "server_id": server.identifier},
            )
            return attach_address(provider, server, entry.address)
    raise PoolExhaustedError(pool)


def attach_address(provider: CloudProvider, server: ServerHandle, address: str) -> str:
    """Attach a specific floating address to the server and return it."""

    logger.info("Associating floating IP", extra={"address": address, "server_id": server.identifier})
    provider.associate_address(server, address)
    return address
