"""
Remote factory.

Binds references to OciRemote handles, keeping one HTTP transport per
registry host so every remote on that host shares connections and tokens.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Union

import httpx

from ..models import Platform
from ..settings import Settings
from .reference import Reference, parse_reference
from .registry_http import RegistryHTTP
from .remote import OciRemote

logger = logging.getLogger(__name__)

# bind(reference, platform) -> OciRemote
RemoteFactory = Callable[[Union[str, Reference], Platform], OciRemote]


class HttpRemoteFactory:
    """
    Create OciRemote handles backed by RegistryHTTP.

    Examples:
        >>> with HttpRemoteFactory(settings) as bind:
        ...     remote = bind("ghcr.io/org/bundles/core:0.1.0", platform)
        ...     manifest = remote.fetch_root_manifest()
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._clients: Dict[str, RegistryHTTP] = {}

    def registry_for(self, host: str) -> RegistryHTTP:
        """Return the shared transport for a registry host."""
        if host not in self._clients:
            logger.debug(f"Opening registry client for {host} (insecure={self.settings.registry_insecure})")
            self._clients[host] = RegistryHTTP(host, self.settings, transport=self._transport)
        return self._clients[host]

    def __call__(self, reference: Union[str, Reference], platform: Platform) -> OciRemote:
        if isinstance(reference, str):
            reference = parse_reference(reference)
        return OciRemote(reference, platform, self.registry_for(reference.registry))

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def __enter__(self) -> HttpRemoteFactory:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def make_remote_factory(settings: Settings) -> HttpRemoteFactory:
    """
    Create the production remote factory.

    Args:
        settings: Registry configuration

    Returns:
        HttpRemoteFactory; close it (or use it as a context manager) when done
    """
    return HttpRemoteFactory(settings)


__all__ = ["RemoteFactory", "HttpRemoteFactory", "make_remote_factory"]
