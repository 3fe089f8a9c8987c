"""
OCI reference parsing and resolution.

Provides consistent parsing and validation of registry references of the
form ``registry/repository[:tag|@digest]`` and derives a bundle's
destination reference from its metadata.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..errors import ReferenceResolutionError
from .oci_media_types import OCI_URL_PREFIX

__all__ = [
    "Reference",
    "parse_reference",
    "ensure_oci_prefix",
    "strip_oci_prefix",
    "reference_from_metadata",
]

logger = logging.getLogger(__name__)

_REGISTRY_RE = re.compile(r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$")
_REPO_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|[-]+)[a-z0-9]+)*"
_REPOSITORY_RE = re.compile(rf"^{_REPO_COMPONENT}(?:/{_REPO_COMPONENT})*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


@dataclass(frozen=True)
class Reference:
    """
    Parsed components of an OCI reference.

    Attributes:
        registry: Registry host with optional port (e.g. "ghcr.io", "localhost:5000")
        repository: Repository path within the registry
        reference: Tag or digest; empty when the reference names a repository only
    """
    registry: str
    repository: str
    reference: str = ""

    @property
    def is_digest(self) -> bool:
        return self.reference.startswith("sha256:")

    @property
    def tag(self) -> str:
        """Tag part, or empty string for digest references."""
        return "" if self.is_digest else self.reference

    def __str__(self) -> str:
        base = f"{self.registry}/{self.repository}"
        if not self.reference:
            return base
        separator = "@" if self.is_digest else ":"
        return f"{base}{separator}{self.reference}"


def strip_oci_prefix(location: str) -> str:
    """Remove a leading ``oci://`` if present."""
    if location.startswith(OCI_URL_PREFIX):
        return location[len(OCI_URL_PREFIX):]
    return location


def ensure_oci_prefix(location: str) -> str:
    """
    Normalize a registry location to an explicit ``oci://`` address.

    Examples:
        >>> ensure_oci_prefix("ghcr.io/org/bundles")
        'oci://ghcr.io/org/bundles'

        >>> ensure_oci_prefix("oci://localhost:5000")
        'oci://localhost:5000'
    """
    location = location.strip()
    if location.startswith(OCI_URL_PREFIX):
        return location
    return f"{OCI_URL_PREFIX}{location}"


def parse_reference(raw: str) -> Reference:
    """
    Parse and validate an OCI reference.

    Accepts ``[oci://]registry/repository[:tag][@digest]``. When both a tag
    and a digest are given the digest wins.

    Args:
        raw: Reference string

    Returns:
        Reference with validated components

    Raises:
        ValueError: If the reference is malformed

    Examples:
        >>> parse_reference("ghcr.io/org/core:0.1.0")
        Reference(registry='ghcr.io', repository='org/core', reference='0.1.0')

        >>> parse_reference("oci://localhost:5000/core").tag
        ''
    """
    if not raw or not raw.strip():
        raise ValueError("Reference cannot be empty")

    remainder = strip_oci_prefix(raw.strip())

    if "/" not in remainder:
        raise ValueError(f"Invalid reference, expected registry/repository[:tag]: {raw}")

    registry, path = remainder.split("/", 1)
    if not _REGISTRY_RE.match(registry):
        raise ValueError(f"Invalid registry host in reference: {raw}")

    digest = ""
    if "@" in path:
        path, digest = path.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise ValueError(f"Invalid digest in reference: {raw}")

    tag = ""
    last_slash = path.rfind("/")
    colon = path.rfind(":")
    if colon > last_slash:
        path, tag = path[:colon], path[colon + 1:]
        if not _TAG_RE.match(tag):
            raise ValueError(f"Invalid tag in reference: {raw}")

    if not _REPOSITORY_RE.match(path):
        raise ValueError(
            f"Invalid repository in reference: {raw}. "
            "Repository components must be lowercase alphanumerics separated by '.', '_', '__' or '-'"
        )

    return Reference(registry=registry, repository=path, reference=digest or tag)


def reference_from_metadata(location: str, metadata) -> Reference:
    """
    Derive a bundle's destination reference from its metadata.

    The reference is ``<location>/<name>:<version>``.

    Args:
        location: Registry location, with or without ``oci://``
        metadata: BundleMetadata with name and version

    Returns:
        Destination Reference

    Raises:
        ReferenceResolutionError: If version is missing or the result is invalid
    """
    version = metadata.version
    if not version:
        raise ReferenceResolutionError("version is required for publishing")

    location = strip_oci_prefix(location)
    if not location.endswith("/"):
        location = location + "/"

    raw = f"{location}{metadata.name}:{version}"
    logger.debug(f"Raw OCI reference from metadata: {raw}")

    try:
        return parse_reference(raw)
    except ValueError as e:
        raise ReferenceResolutionError(f"Cannot derive reference from {raw}: {e}") from e
