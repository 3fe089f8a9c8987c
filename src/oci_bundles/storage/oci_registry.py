"""
OCI Registry protocol definition.

Defines the repo-aware interface for the OCI Distribution operations the
publisher needs. One implementation talks to one registry host; every
operation is explicitly scoped to a repository on that host.
"""
from __future__ import annotations

from typing import ContextManager, Iterable, Iterator, Optional, Protocol, Tuple, Union, runtime_checkable


@runtime_checkable
class OciRegistry(Protocol):
    """
    Repo-aware OCI registry operations.

    All operations are explicitly scoped to a repository, which reflects
    how the OCI Distribution API actually works.
    """

    def head_manifest(self, repo: str, ref: str) -> str:
        """
        HEAD manifest and return canonical digest.

        Args:
            repo: Repository path (e.g., "org/bundles/core")
            ref: Tag or digest reference (e.g., "0.1.0", "sha256:abc...")

        Returns:
            Canonical digest from Docker-Content-Digest header

        Raises:
            OciNotFound: If manifest doesn't exist
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def get_manifest(self, repo: str, ref: str) -> Tuple[bytes, str]:
        """
        GET manifest content.

        Args:
            repo: Repository path
            ref: Tag or digest reference

        Returns:
            (raw manifest bytes, media type reported by the registry)

        Raises:
            OciNotFound: If manifest doesn't exist
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def put_manifest(self, repo: str, media_type: str, payload: bytes, ref: str) -> str:
        """
        PUT manifest with explicit media type, return canonical digest.

        Args:
            repo: Repository path
            media_type: Manifest media type (e.g., OCI_IMAGE_MANIFEST)
            payload: Manifest content as bytes
            ref: Tag to apply, or the payload's own digest to push untagged

        Returns:
            Canonical digest after validation

        Raises:
            OciDigestMismatch: If server digest != local digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def open_blob(self, repo: str, digest: str) -> ContextManager[Iterator[bytes]]:
        """
        Open blob content for streaming.

        Used as ``with registry.open_blob(repo, digest) as chunks:``. The
        chunks are checked against the digest once fully read.

        Raises:
            OciNotFound: If blob doesn't exist
            OciDigestMismatch: If the streamed content doesn't match digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def put_blob(self, repo: str, digest: str, data: Union[bytes, Iterable[bytes]],
                 size: Optional[int] = None) -> None:
        """
        Upload blob content under its digest.

        Args:
            repo: Repository path
            digest: Digest the content must hash to
            data: Content bytes, or an iterable of chunks streamed as read
            size: Total content length, sent with streamed chunks

        Raises:
            OciDigestMismatch: If content doesn't match digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def blob_exists(self, repo: str, digest: str) -> bool:
        """
        Check if blob exists in repository.

        Returns:
            True if blob exists, False if the registry answered 404

        Raises:
            OciError: For any answer other than found / not found
        """
        ...

    def mount_blob(self, repo: str, digest: str, from_repo: str) -> bool:
        """
        Cross-repository mount of a blob that already lives on this registry.

        Returns:
            True if the registry mounted the blob, False if it declined
            (the caller must then upload the content itself)

        Raises:
            OciError: For registry errors
        """
        ...


__all__ = ["OciRegistry"]
