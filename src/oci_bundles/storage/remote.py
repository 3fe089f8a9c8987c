"""
Registry client bound to one reference and platform.

OciRemote is the handle the publisher works with: it knows which
repository and tag it points at, which platform it selects from an index,
and turns byte-level registry operations into Descriptor bookkeeping.
"""
from __future__ import annotations

import json
import logging
from typing import Optional, Union

from pydantic import ValidationError

from ..models import Descriptor, Index, Manifest, Platform, canonical_json, sha256_digest
from .oci_errors import OciError, OciNotFound, OciUnsupportedMediaType
from .oci_media_types import INDEX_MEDIA_TYPES, OCI_IMAGE_MANIFEST
from .oci_registry import OciRegistry
from .reference import Reference

__all__ = ["OciRemote"]

logger = logging.getLogger(__name__)


def _decode_json(payload: bytes, what: str) -> dict:
    try:
        document = json.loads(payload.decode('utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise OciUnsupportedMediaType(f"Invalid JSON in {what}: {e}") from e
    if not isinstance(document, dict):
        raise OciUnsupportedMediaType(f"Expected a JSON object in {what}")
    return document


class OciRemote:
    """
    A registry repository bound to a (reference, platform) pair.

    Every push returns the Descriptor of what was pushed; those descriptors
    are the only handles callers carry between steps.
    """

    def __init__(self, reference: Reference, platform: Platform, registry: OciRegistry):
        """
        Args:
            reference: Repository and tag/digest this remote points at
            platform: Platform selected when the reference resolves to an index
            registry: Transport for the reference's registry host
        """
        self.reference = reference
        self.platform = platform
        self.registry = registry

    @property
    def repo_reference(self) -> Reference:
        """The underlying repository reference."""
        return self.reference

    @property
    def repo(self) -> str:
        return self.reference.repository

    # Reads

    def fetch_manifest_document(self, ref: str) -> tuple[dict, str, bytes]:
        """
        Fetch any manifest-like document.

        Returns:
            (decoded JSON, media type, raw bytes)
        """
        payload, media_type = self.registry.get_manifest(self.repo, ref)
        document = _decode_json(payload, f"manifest {self.repo}:{ref}")
        media_type = document.get("mediaType") or media_type
        return document, media_type, payload

    def fetch_root_manifest(self) -> Manifest:
        """
        Fetch the manifest this remote's reference points at.

        If the reference resolves to an index, the entry matching this
        remote's platform is followed.

        Raises:
            OciNotFound: If the reference or the platform entry is missing
            OciUnsupportedMediaType: If the document cannot be decoded
        """
        manifest, _, _ = self.fetch_root()
        return manifest

    def fetch_root(self) -> tuple[Manifest, Descriptor, bytes]:
        """
        Fetch the root manifest once, decoded and as raw bytes.

        The three values describe the same document, so a tag that moves
        afterwards cannot make them disagree.

        Returns:
            (manifest, descriptor of its bytes, exact bytes served by the registry)
        """
        document, media_type, payload = self._resolve_root_document()
        manifest = self._validate(Manifest, document, f"manifest {self.reference}")
        descriptor = Descriptor(
            media_type=media_type or OCI_IMAGE_MANIFEST,
            digest=sha256_digest(payload),
            size=len(payload),
        )
        return manifest, descriptor, payload

    def _resolve_root_document(self) -> tuple[dict, str, bytes]:
        ref = self.reference.reference
        if not ref:
            raise OciNotFound(f"Reference {self.reference} has no tag or digest")

        document, media_type, payload = self.fetch_manifest_document(ref)

        if media_type in INDEX_MEDIA_TYPES or "manifests" in document:
            index = self._validate(Index, document, f"index {self.reference}")
            entry = index.find(self.platform)
            if entry is None:
                raise OciNotFound(
                    f"No manifest for platform {self.platform.os}/{self.platform.architecture} "
                    f"in index {self.reference}"
                )
            logger.debug(f"Resolved {self.reference} to {entry.digest} via index")
            document, media_type, payload = self.fetch_manifest_document(entry.digest)

        return document, media_type, payload

    def fetch_index(self) -> Optional[Index]:
        """
        Fetch the index at this remote's tag.

        Returns:
            The index, or None if the tag does not exist or points at a
            plain manifest
        """
        ref = self.reference.tag
        if not ref:
            raise OciError(f"Cannot look up an index without a tag: {self.reference}")

        try:
            document, media_type, _ = self.fetch_manifest_document(ref)
        except OciNotFound:
            logger.debug(f"No existing index at {self.reference}")
            return None

        if media_type not in INDEX_MEDIA_TYPES and "manifests" not in document:
            logger.warning(f"{self.reference} holds a {media_type or 'manifest'}, not an index; starting a new index")
            return None

        return self._validate(Index, document, f"index {self.reference}")

    def manifest_exists(self, digest: str) -> bool:
        """Whether this repository already holds the manifest with ``digest``."""
        try:
            self.registry.head_manifest(self.repo, digest)
        except OciNotFound:
            return False
        return True

    # Writes

    def push_layer(self, data: bytes, media_type: str) -> Descriptor:
        """
        Push raw bytes as a blob.

        Uploading is skipped when the registry already holds the digest;
        content addressing makes that equivalent to a re-upload.
        """
        descriptor = Descriptor.for_bytes(data, media_type)
        if self.registry.blob_exists(self.repo, descriptor.digest):
            logger.debug(f"Blob {descriptor.digest} already exists in {self.repo}")
        else:
            self.registry.put_blob(self.repo, descriptor.digest, data)
        return descriptor

    def push_manifest(self, manifest: Union[Manifest, Index], media_type: str,
                      tag: Optional[str] = None) -> Descriptor:
        """
        Push a manifest or index.

        Args:
            manifest: Document to push
            media_type: Content-Type to push it with
            tag: Tag to apply; when None the document is pushed by digest

        Returns:
            Descriptor of the pushed document
        """
        payload = canonical_json(manifest)
        return self.push_manifest_bytes(payload, media_type, tag=tag)

    def push_manifest_bytes(self, payload: bytes, media_type: str,
                            tag: Optional[str] = None) -> Descriptor:
        """Push an already-serialized manifest, preserving its exact bytes."""
        descriptor = Descriptor(
            media_type=media_type,
            digest=sha256_digest(payload),
            size=len(payload),
        )
        self.registry.put_manifest(self.repo, media_type, payload, tag or descriptor.digest)
        return descriptor

    def copy_blob_from(self, source: OciRemote, descriptor: Descriptor) -> bool:
        """
        Make a blob from another remote available in this repository.

        Skips blobs already present, mounts across repositories on the same
        registry host, and otherwise streams the content from the source
        straight into an upload.

        Returns:
            True if bytes or a mount were written, False if the blob was already present
        """
        if self.registry.blob_exists(self.repo, descriptor.digest):
            return False

        same_host = source.reference.registry == self.reference.registry
        if same_host and source.repo != self.repo:
            if self.registry.mount_blob(self.repo, descriptor.digest, source.repo):
                return True

        with source.registry.open_blob(source.repo, descriptor.digest) as chunks:
            self.registry.put_blob(self.repo, descriptor.digest, chunks, size=descriptor.size)
        return True

    @staticmethod
    def _validate(model, document: dict, what: str):
        try:
            return model.model_validate(document)
        except ValidationError as e:
            raise OciUnsupportedMediaType(f"Malformed {what}: {e}") from e

    def __repr__(self) -> str:
        return f"OciRemote({self.reference}, {self.platform.os}/{self.platform.architecture})"
