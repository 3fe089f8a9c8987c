"""
OCI image index helpers.

A bundle repository's tag points at an image index with one entry per
platform. Publishing upserts the entry for the current platform and leaves
every other entry exactly as it was.
"""
from __future__ import annotations

import logging
from typing import Optional

from .models import Bundle, Descriptor, Index, Platform
from .storage.oci_media_types import OCI_IMAGE_INDEX
from .storage.remote import OciRemote

__all__ = ["get_index", "upsert_index_entry", "update_index"]

logger = logging.getLogger(__name__)


def get_index(remote: OciRemote) -> Optional[Index]:
    """
    Fetch the existing index at the remote's tag.

    Args:
        remote: Remote bound to the bundle's destination reference

    Returns:
        The index, or None when nothing has been published yet (an existing
        non-index manifest at the tag also counts as no index)

    Raises:
        OciError: For any transport failure other than not found
    """
    index = remote.fetch_index()
    if index is not None:
        logger.debug(f"Found existing index at {remote.repo_reference} with {len(index.manifests)} entries")
    return index


def upsert_index_entry(index: Optional[Index], descriptor: Descriptor, platform: Platform) -> Index:
    """
    Return a new index with ``descriptor`` registered for ``platform``.

    The first entry whose platform matches is replaced in place, keeping its
    position; otherwise the entry is appended. Entries for other platforms
    are carried over unchanged.

    Args:
        index: Existing index, or None to start a fresh one
        descriptor: Root manifest descriptor to register
        platform: Platform the descriptor is built for

    Returns:
        Updated index; the input is not modified
    """
    entry = descriptor.model_copy(update={"platform": platform})

    if index is None:
        return Index(manifests=[entry])

    manifests = []
    replaced = False
    for existing in index.manifests:
        if not replaced and platform.matches(existing.platform):
            logger.debug(f"Replacing index entry {existing.digest} for {platform.os}/{platform.architecture}")
            manifests.append(entry)
            replaced = True
        elif replaced and platform.matches(existing.platform):
            logger.warning(f"Dropping duplicate index entry {existing.digest} for {platform.architecture}")
        else:
            manifests.append(existing)

    if not replaced:
        manifests.append(entry)

    return index.model_copy(update={"manifests": manifests, "media_type": OCI_IMAGE_INDEX})


def update_index(index: Optional[Index], remote: OciRemote, bundle: Bundle,
                 descriptor: Descriptor) -> Descriptor:
    """
    Upsert the bundle's root manifest into the index and push it under the tag.

    Args:
        index: Index fetched before the root manifest was pushed (or None)
        remote: Remote bound to the bundle's destination reference
        bundle: Bundle being published
        descriptor: Descriptor of the pushed root manifest

    Returns:
        Descriptor of the pushed index
    """
    platform = Platform(architecture=bundle.metadata.architecture, os=remote.platform.os)
    updated = upsert_index_entry(index, descriptor, platform)

    tag = remote.repo_reference.tag or bundle.metadata.version
    index_desc = remote.push_manifest(updated, OCI_IMAGE_INDEX, tag=tag)
    logger.debug(f"Pushed index {index_desc.digest} to {remote.repo_reference} ({len(updated.manifests)} entries)")
    return index_desc
