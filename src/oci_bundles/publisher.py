"""
Bundle publishing.

Main entry point for publishing a bundle to an OCI registry. Re-publishes
every package under the bundle's destination repository, pushes the bundle
metadata (and signature) as blobs, assembles the root manifest and
registers it in the repository's platform index.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import yaml

from .errors import BundleConfigError, BundleSerializationError
from .index import get_index, update_index
from .models import Bundle, BundleBuild, BundleMetadata, Descriptor, Manifest, Package, Platform
from .pusher import PackagePusher, PusherConfig
from .settings import Settings
from .storage.oci_media_types import (
    ANNOTATION_AUTHORS,
    ANNOTATION_DESCRIPTION,
    ANNOTATION_DOCUMENTATION,
    ANNOTATION_SOURCE,
    ANNOTATION_TITLE,
    ANNOTATION_URL,
    ANNOTATION_VENDOR,
    ANNOTATION_VERSION,
    BUNDLE_CONFIG_MEDIA_TYPE,
    BUNDLE_LAYER_MEDIA_TYPE,
    BUNDLE_YAML,
    BUNDLE_YAML_SIGNATURE,
    MULTI_OS,
    OCI_CONFIG_VERSION,
    OCI_IMAGE_MANIFEST,
)
from .storage.reference import Reference, ensure_oci_prefix, reference_from_metadata
from .storage.registry_factory import RemoteFactory, make_remote_factory
from .storage.remote import OciRemote

__all__ = [
    "Unsigned",
    "Signed",
    "Signature",
    "signature_from_bytes",
    "PublishResult",
    "BundlePublisher",
    "publish_bundle",
    "manifest_annotations_from_metadata",
    "push_manifest_config_from_metadata",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unsigned:
    """Publish without a signature layer."""


@dataclass(frozen=True)
class Signed:
    """Publish with a detached signature of the bundle YAML."""
    signature: bytes

    def __post_init__(self):
        if not self.signature:
            raise ValueError("Signed requires a non-empty signature; use Unsigned instead")


Signature = Union[Unsigned, Signed]


def signature_from_bytes(data: Optional[bytes]) -> Signature:
    """Empty or missing signature bytes mean unsigned."""
    if not data:
        return Unsigned()
    return Signed(signature=data)


@dataclass(frozen=True)
class PublishResult:
    """
    Outcome of a successful publish.

    Attributes:
        reference: Destination reference (repository and tag)
        root_manifest: Descriptor of the bundle's root manifest
        index: Descriptor of the index pushed under the tag
    """
    reference: Reference
    root_manifest: Descriptor
    index: Descriptor


@dataclass(frozen=True)
class _SourcePackage:
    package: Package
    remote: OciRemote
    root_manifest: Manifest
    descriptor: Descriptor
    payload: bytes


def manifest_annotations_from_metadata(metadata: BundleMetadata) -> Dict[str, str]:
    """
    Annotations shown by registry UIs for the root manifest.

    Empty metadata fields are left out.
    """
    candidates = {
        ANNOTATION_TITLE: metadata.name,
        ANNOTATION_VERSION: metadata.version,
        ANNOTATION_DESCRIPTION: metadata.description,
        ANNOTATION_URL: metadata.url,
        ANNOTATION_AUTHORS: metadata.authors,
        ANNOTATION_DOCUMENTATION: metadata.documentation,
        ANNOTATION_SOURCE: metadata.source,
        ANNOTATION_VENDOR: metadata.vendor,
    }
    return {key: value for key, value in candidates.items() if value}


def push_manifest_config_from_metadata(remote: OciRemote, metadata: BundleMetadata,
                                       build: BundleBuild) -> Descriptor:
    """
    Push the root manifest's config blob.

    Args:
        remote: Destination remote
        metadata: Bundle metadata (name, description, architecture)
        build: Build provenance; its architecture wins when set

    Returns:
        Descriptor of the pushed config blob
    """
    config = {
        "architecture": build.architecture or metadata.architecture,
        "ociVersion": OCI_CONFIG_VERSION,
        "annotations": {
            ANNOTATION_TITLE: metadata.name,
            ANNOTATION_DESCRIPTION: metadata.description or "",
        },
    }
    try:
        payload = json.dumps(config, sort_keys=True, separators=(',', ':')).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise BundleSerializationError(f"Cannot encode bundle config: {e}") from e

    return remote.push_layer(payload, BUNDLE_CONFIG_MEDIA_TYPE)


class BundlePublisher:
    """
    Publish bundles to OCI registries.

    Every step is a durable write and later steps reference descriptors
    produced by earlier ones, so the steps run strictly in order. The first
    failure aborts the publish and nothing is rolled back; the root manifest
    and index are only written once every package has been pushed.

    Examples:
        >>> with make_remote_factory(settings) as bind:
        ...     result = BundlePublisher(bind).publish(bundle, "ghcr.io/org/bundles")
        >>> str(result.reference)
        'ghcr.io/org/bundles/core:0.1.0'
    """

    def __init__(self, bind: RemoteFactory):
        """
        Args:
            bind: Factory turning (reference, platform) into an OciRemote
        """
        self.bind = bind

    def publish(self, bundle: Bundle, output: str, signature: Signature = Unsigned()) -> PublishResult:
        """
        Publish a bundle under ``<output>/<name>:<version>``.

        Args:
            bundle: Bundle to publish
            output: Destination location, with or without ``oci://``
            signature: Signed or Unsigned

        Returns:
            PublishResult with the destination reference and pushed descriptors

        Raises:
            BundleConfigError: If the bundle has no architecture (before any I/O)
            ReferenceResolutionError: If the destination reference cannot be derived
            BundleSerializationError: If the bundle metadata cannot be encoded
            OciError: Any transport failure, unwrapped
        """
        metadata = bundle.metadata
        if not metadata.architecture:
            raise BundleConfigError("architecture is required for bundling")

        output = ensure_oci_prefix(output)
        ref = reference_from_metadata(output, metadata)
        platform = Platform(architecture=metadata.architecture, os=MULTI_OS)
        remote = self.bind(ref, platform)
        dst_ref = remote.repo_reference
        logger.info(f"Publishing {metadata.name} to {dst_ref}")

        # Packages first, in declaration order
        layers = self._package_layers(bundle, remote, platform)

        layers.append(self._push_bundle_yaml(bundle, remote))

        if isinstance(signature, Signed):
            sig_desc = remote.push_layer(signature.signature, BUNDLE_LAYER_MEDIA_TYPE)
            sig_desc = sig_desc.model_copy(update={"annotations": {ANNOTATION_TITLE: BUNDLE_YAML_SIGNATURE}})
            logger.debug(f"Pushed {BUNDLE_YAML_SIGNATURE}: {sig_desc.digest}")
            layers.append(sig_desc)

        config_desc = push_manifest_config_from_metadata(remote, metadata, bundle.build)
        logger.debug(f"Pushed config: {config_desc.digest}")

        index = get_index(remote)

        root_manifest = Manifest(
            schema_version=2,
            media_type=OCI_IMAGE_MANIFEST,
            config=config_desc,
            layers=layers,
            annotations=manifest_annotations_from_metadata(metadata),
        )
        root_desc = remote.push_manifest(root_manifest, OCI_IMAGE_MANIFEST)
        logger.debug(f"Pushed root manifest {root_desc.digest} with {len(layers)} layers")

        index_desc = update_index(index, remote, bundle, root_desc)
        logger.info(f"Published {dst_ref} ({root_desc.digest})")

        return PublishResult(reference=dst_ref, root_manifest=root_desc, index=index_desc)

    def _package_layers(self, bundle: Bundle, remote: OciRemote, platform: Platform) -> List[Descriptor]:
        """Run each package through fetch -> push and collect descriptors in order."""
        layers = []
        num_pkgs = len(bundle.packages)
        for pkg_iter, package in enumerate(bundle.packages):
            source = self._fetch_source(package, platform)
            layers.append(self._push_package(bundle, remote, source, pkg_iter, num_pkgs))
        return layers

    def _fetch_source(self, package: Package, platform: Platform) -> _SourcePackage:
        src = self.bind(package.url, platform)
        manifest, descriptor, payload = src.fetch_root()
        return _SourcePackage(package=package, remote=src, root_manifest=manifest,
                              descriptor=descriptor, payload=payload)

    def _push_package(self, bundle: Bundle, remote: OciRemote, source: _SourcePackage,
                      pkg_iter: int, num_pkgs: int) -> Descriptor:
        config = PusherConfig(
            bundle=bundle,
            remote_dst=remote,
            remote_src=source.remote,
            pkg_root_manifest=source.root_manifest,
            pkg_root_descriptor=source.descriptor,
            pkg_root_payload=source.payload,
            pkg_iter=pkg_iter,
            num_pkgs=num_pkgs,
        )
        return PackagePusher(source.package, config).push()

    def _push_bundle_yaml(self, bundle: Bundle, remote: OciRemote) -> Descriptor:
        try:
            payload = bundle.to_yaml_bytes()
        except yaml.YAMLError as e:
            raise BundleSerializationError(f"Cannot marshal {BUNDLE_YAML}: {e}") from e

        desc = remote.push_layer(payload, BUNDLE_LAYER_MEDIA_TYPE)
        desc = desc.model_copy(update={"annotations": {ANNOTATION_TITLE: BUNDLE_YAML}})
        logger.debug(f"Pushed {BUNDLE_YAML}: {desc.digest}")
        return desc


def publish_bundle(bundle: Bundle, output: str,
                   signature: Union[Signature, bytes, None] = None, *,
                   bind: Optional[RemoteFactory] = None,
                   settings: Optional[Settings] = None) -> PublishResult:
    """
    Publish a bundle, creating the registry clients when none are given.

    Args:
        bundle: Bundle to publish
        output: Destination location
        signature: Signed/Unsigned, raw signature bytes, or None
        bind: Remote factory (created from settings if None)
        settings: Settings (loaded from env if None and no factory given)

    Returns:
        PublishResult
    """
    if not isinstance(signature, (Signed, Unsigned)):
        signature = signature_from_bytes(signature)

    if bind is not None:
        return BundlePublisher(bind).publish(bundle, output, signature)

    if settings is None:
        from .settings import create_settings_from_env
        settings = create_settings_from_env()

    with make_remote_factory(settings) as factory:
        return BundlePublisher(factory).publish(bundle, output, signature)
