"""
Package re-publication.

Copies one package from its source repository into the bundle's
destination repository and returns the descriptor of the package's root
manifest as it now lives there.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .models import Bundle, Descriptor, Manifest, Package
from .storage.oci_media_types import ANNOTATION_TITLE
from .storage.remote import OciRemote

__all__ = ["PusherConfig", "PackagePusher"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PusherConfig:
    """
    Context for pushing one package of a bundle.

    Attributes:
        bundle: The bundle being published
        remote_dst: Destination remote (the bundle's repository)
        remote_src: Source remote for this package
        pkg_root_manifest: Root manifest fetched from the source
        pkg_root_descriptor: Descriptor of the fetched root manifest bytes
        pkg_root_payload: The root manifest bytes exactly as fetched
        pkg_iter: Zero-based position of the package in the bundle
        num_pkgs: Total number of packages in the bundle
    """
    bundle: Bundle
    remote_dst: OciRemote
    remote_src: OciRemote
    pkg_root_manifest: Manifest
    pkg_root_descriptor: Descriptor
    pkg_root_payload: bytes
    pkg_iter: int
    num_pkgs: int


class PackagePusher:
    """
    Re-publish a single package into the destination repository.

    Each call to ``push`` performs the copy exactly once; retries belong to
    the transport (connection failures only), never to this level.
    """

    def __init__(self, package: Package, config: PusherConfig):
        self.package = package
        self.config = config

    @property
    def progress(self) -> str:
        return f"[{self.config.pkg_iter + 1}/{self.config.num_pkgs}]"

    def push(self) -> Descriptor:
        """
        Copy the package's blobs and root manifest to the destination.

        Blobs are copied before the manifest that references them, so the
        returned descriptor is resolvable as soon as this returns. A manifest
        the destination already holds was pushed together with its blobs, so
        nothing is written for it.

        Returns:
            Descriptor of the package root manifest in the destination,
            titled with the package name

        Raises:
            OciError: If any fetch or push fails
        """
        cfg = self.config
        src, dst = cfg.remote_src, cfg.remote_dst
        logger.info(f"{self.progress} Pushing package {self.package.name} from {src.repo_reference}")

        if dst.manifest_exists(cfg.pkg_root_descriptor.digest):
            logger.debug(f"{self.progress} {self.package.name} manifest {cfg.pkg_root_descriptor.digest} already present")
            return self._titled(cfg.pkg_root_descriptor)

        blobs = list(cfg.pkg_root_manifest.layers)
        if cfg.pkg_root_manifest.config is not None:
            blobs.insert(0, cfg.pkg_root_manifest.config)

        copied = 0
        for blob in blobs:
            if dst.copy_blob_from(src, blob):
                copied += 1
        logger.debug(
            f"{self.progress} {copied} of {len(blobs)} blobs copied, "
            f"{len(blobs) - copied} already present in {dst.repo_reference.repository}"
        )

        # Push the fetched bytes unchanged so the digest matches the source
        pushed = dst.push_manifest_bytes(cfg.pkg_root_payload, cfg.pkg_root_descriptor.media_type)

        descriptor = self._titled(pushed)
        logger.debug(f"{self.progress} Pushed {self.package.name} manifest {descriptor.digest}")
        return descriptor

    def _titled(self, descriptor: Descriptor) -> Descriptor:
        return descriptor.model_copy(update={"annotations": {ANNOTATION_TITLE: self.package.name}})
