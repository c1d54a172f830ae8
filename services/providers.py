"""Factory helpers for constructing service implementations from configuration."""

from __future__ import annotations

import logging
from typing import Any

import openstack
from openstack import exceptions as sdk_exceptions

from ephstack_core import InstanceConfig
from ephstack_core.errors import ProviderError
from services.base import CloudProvider, SSHService
from services.openstack import OpenStackCloudProvider
from services.ssh import ParamikoSSHService

logger = logging.getLogger(__name__)


def connection_kwargs(config: InstanceConfig) -> dict[str, Any]:
    """Translate configuration into ``openstack.connect`` keyword arguments."""

    kwargs: dict[str, Any] = {}
    if config.has_credentials:
        kwargs.update(
            auth_url=config.openstack_auth_url,
            username=config.openstack_username,
            password=config.openstack_api_key,
        )
        if config.openstack_domain:
            kwargs["user_domain_name"] = config.openstack_domain
            kwargs["project_domain_name"] = config.openstack_domain
    if config.openstack_tenant:
        kwargs["project_name"] = config.openstack_tenant
    if config.openstack_region:
        kwargs["region_name"] = config.openstack_region
    if config.openstack_service_name:
        kwargs["compute_service_name"] = config.openstack_service_name
    if config.disable_ssl_validation:
        kwargs["verify"] = False
    return kwargs


def build_cloud_provider(config: InstanceConfig) -> CloudProvider:
    """Instantiate a cloud provider matching the instance configuration."""

    config.validate_credentials()
    kwargs = connection_kwargs(config)
    if config.disable_ssl_validation:
        logger.warning("SSL certificate validation is disabled for the OpenStack API")
    try:
        connection = openstack.connect(**kwargs)
    except sdk_exceptions.SDKException as exc:
        logger.error("Failed to configure OpenStack connection", exc_info=exc)
        raise ProviderError(f"Failed to connect to OpenStack: {exc}") from exc
    return OpenStackCloudProvider(connection)


def build_ssh_service() -> SSHService:
    """Create default SSH service for remote operations."""

    return ParamikoSSHService()
