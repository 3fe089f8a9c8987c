"""
Operations Facade - Application service layer.

Provides a clean interface between the CLI and the publisher, centralizing
command orchestration and configuration while keeping CLI commands thin
and testable.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..models import Bundle, Index, Platform
from ..publisher import PublishResult, publish_bundle, signature_from_bytes
from ..settings import Settings
from ..storage.oci_errors import OciNotFound
from ..storage.oci_media_types import MULTI_OS
from ..storage.reference import Reference, parse_reference
from ..storage.registry_factory import RemoteFactory, make_remote_factory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes per-invocation policy so it is not scattered across commands.
    """
    insecure: bool = False        # Plain HTTP / no TLS verification
    verbose: bool = False         # Show detailed output


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Exceptions bubble up unchanged for central
    mapping to exit codes. When no remote factory is injected the facade
    creates one from settings and closes it in ``close()``.
    """

    def __init__(self, config: OpsConfig, bind: Optional[RemoteFactory] = None,
                 settings: Optional[Settings] = None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            bind: Remote factory (if None, created from settings)
            settings: Optional settings (if None, loaded from environment)
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        if config.insecure:
            settings = settings.with_insecure(True)
        self.settings = settings

        self._owned = None
        if bind is None:
            self._owned = make_remote_factory(settings)
            bind = self._owned
        self.bind = bind

    def publish(self, bundle_yaml: str, destination: str, *,
                signature_path: Optional[str] = None) -> PublishResult:
        """
        Publish a bundle YAML file to a registry location.

        Args:
            bundle_yaml: Path to the bundle YAML
            destination: Registry location, e.g. ``oci://ghcr.io/org/bundles``
            signature_path: Optional detached signature of the bundle YAML

        Returns:
            PublishResult with the destination reference
        """
        bundle = Bundle.from_yaml_file(bundle_yaml)

        signature = None
        if signature_path is not None:
            path = Path(signature_path)
            if not path.exists():
                raise FileNotFoundError(f"Signature file not found: {path}")
            signature = path.read_bytes()
            logger.debug(f"Read {len(signature)} signature bytes from {path}")

        return publish_bundle(bundle, destination, signature_from_bytes(signature), bind=self.bind)

    def inspect(self, reference: str) -> tuple[Reference, Index]:
        """
        Fetch the platform index of a published bundle.

        Args:
            reference: ``[oci://]registry/repository:tag``

        Returns:
            (parsed reference, index at the tag)

        Raises:
            ValueError: If the reference has no tag
            OciNotFound: If no index exists at the tag
        """
        ref = parse_reference(reference)
        if not ref.tag:
            raise ValueError(f"inspect needs a tagged reference: {reference}")

        remote = self.bind(ref, Platform(architecture="", os=MULTI_OS))
        index = remote.fetch_index()
        if index is None:
            raise OciNotFound(f"No bundle index at {ref}")
        return ref, index

    def close(self) -> None:
        if self._owned is not None:
            self._owned.close()
            self._owned = None

    def __enter__(self) -> Operations:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
