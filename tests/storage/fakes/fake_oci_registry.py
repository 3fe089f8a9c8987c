"""
Fake OCI Registry implementation for testing.

This implementation follows the repo-aware OciRegistry protocol and stores
manifests and blobs in memory for testing purposes.
"""
from __future__ import annotations

import hashlib
import json
import re
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from oci_bundles.storage.oci_errors import OciDigestMismatch, OciError, OciNotFound
from oci_bundles.storage.oci_registry import OciRegistry

# Regex for validating SHA256 digests
_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")

__all__ = ["FakeOciRegistry"]


def _digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class FakeOciRegistry(OciRegistry):
    """
    In-memory OCI registry implementation for testing.

    This is a test double; not for production use.
    Implements the repo-aware OciRegistry protocol.

    Every call is appended to ``calls`` as ``(method, repo, ref_or_digest)``.
    ``fail_on`` injects an OciError for a given (method, repo) pair.
    """

    def __init__(self, mount_supported: bool = True, chunk_size: int = 4) -> None:
        # Storage keyed by repo
        self._manifests: Dict[str, Dict[str, Tuple[bytes, str]]] = {}  # repo -> {digest: (bytes, media_type)}
        self._blobs: Dict[str, Dict[str, bytes]] = {}                  # repo -> {digest: blob_bytes}
        self._tags: Dict[str, Dict[str, str]] = {}                     # repo -> {tag: digest}
        self.mount_supported = mount_supported
        self.chunk_size = chunk_size
        self.calls: List[Tuple[str, str, str]] = []
        self._failures: Dict[Tuple[str, str], OciError] = {}

    def _ensure_repo(self, repo: str) -> None:
        """Ensure repo exists in storage."""
        self._manifests.setdefault(repo, {})
        self._blobs.setdefault(repo, {})
        self._tags.setdefault(repo, {})

    def _record(self, method: str, repo: str, ref: str) -> None:
        self.calls.append((method, repo, ref))
        failure = self._failures.get((method, repo))
        if failure is not None:
            raise failure

    def _resolve(self, repo: str, ref: str) -> str:
        self._ensure_repo(repo)
        if ref.startswith("sha256:"):
            digest = ref
        else:
            if ref not in self._tags[repo]:
                raise OciNotFound(f"Tag not found: {repo}:{ref}")
            digest = self._tags[repo][ref]
        if digest not in self._manifests[repo]:
            raise OciNotFound(f"Manifest not found: {repo}@{digest}")
        return digest

    # Protocol

    def head_manifest(self, repo: str, ref: str) -> str:
        self._record("head_manifest", repo, ref)
        return self._resolve(repo, ref)

    def get_manifest(self, repo: str, ref: str) -> Tuple[bytes, str]:
        self._record("get_manifest", repo, ref)
        digest = self._resolve(repo, ref)
        return self._manifests[repo][digest]

    def put_manifest(self, repo: str, media_type: str, payload: bytes, ref: str) -> str:
        """Store manifest; tag it unless ``ref`` is its own digest."""
        self._record("put_manifest", repo, ref)
        self._ensure_repo(repo)

        digest = _digest(payload)
        if ref.startswith("sha256:") and ref != digest:
            raise OciDigestMismatch("Manifest digest mismatch", expected=ref, actual=digest)

        self._manifests[repo][digest] = (payload, media_type)
        if not ref.startswith("sha256:"):
            self._tags[repo][ref] = digest
        return digest

    @contextmanager
    def open_blob(self, repo: str, digest: str) -> Iterator[Iterator[bytes]]:
        """Yield the blob in fixed-size chunks."""
        self._record("open_blob", repo, digest)
        data = self.get_blob(repo, digest)
        yield (data[i:i + self.chunk_size] for i in range(0, len(data), self.chunk_size))

    def put_blob(self, repo: str, digest: str, data: Union[bytes, Iterable[bytes]],
                 size: Optional[int] = None) -> None:
        self._record("put_blob", repo, digest)
        if not _DIGEST_RE.match(digest):
            raise ValueError(f"Invalid digest format: {digest}")
        self._ensure_repo(repo)

        if not isinstance(data, bytes):
            data = b"".join(data)
        computed = _digest(data)
        if digest != computed:
            raise OciDigestMismatch("Blob digest mismatch", expected=digest, actual=computed)
        if size is not None and size != len(data):
            raise OciError(f"Blob size mismatch: expected {size}, got {len(data)}")
        self._blobs[repo][digest] = data

    def blob_exists(self, repo: str, digest: str) -> bool:
        self._record("blob_exists", repo, digest)
        self._ensure_repo(repo)
        return digest in self._blobs[repo]

    def mount_blob(self, repo: str, digest: str, from_repo: str) -> bool:
        self._record("mount_blob", repo, digest)
        self._ensure_repo(repo)
        if not self.mount_supported:
            return False
        data = self._blobs.get(from_repo, {}).get(digest)
        if data is None:
            return False
        self._blobs[repo][digest] = data
        return True

    # Test utilities

    def fail_on(self, method: str, repo: str, error: Optional[OciError] = None) -> None:
        """Make every ``method`` call against ``repo`` raise ``error``."""
        self._failures[(method, repo)] = error or OciError(f"injected {method} failure for {repo}")

    def seed_blob(self, repo: str, data: bytes) -> str:
        """Store a blob without recording a call; returns its digest."""
        self._ensure_repo(repo)
        digest = _digest(data)
        self._blobs[repo][digest] = data
        return digest

    def seed_manifest(self, repo: str, payload: bytes, media_type: str, tag: Optional[str] = None) -> str:
        """Store a manifest (optionally tagged) without recording a call."""
        self._ensure_repo(repo)
        digest = _digest(payload)
        self._manifests[repo][digest] = (payload, media_type)
        if tag:
            self._tags[repo][tag] = digest
        return digest

    def get_blob(self, repo: str, digest: str) -> bytes:
        """Blob content without recording a call."""
        self._ensure_repo(repo)
        if digest not in self._blobs[repo]:
            raise OciNotFound(f"Blob not found: {repo}@{digest}")
        return self._blobs[repo][digest]

    def manifest_json(self, repo: str, ref: str) -> dict:
        """Decoded manifest document at a tag or digest."""
        payload, _ = self._manifests[repo][self._resolve(repo, ref)]
        return json.loads(payload)

    def has_blob(self, repo: str, digest: str) -> bool:
        return digest in self._blobs.get(repo, {})

    def has_manifest(self, repo: str, digest: str) -> bool:
        return digest in self._manifests.get(repo, {})

    def tags(self, repo: str) -> Dict[str, str]:
        return dict(self._tags.get(repo, {}))

    def writes(self) -> List[Tuple[str, str, str]]:
        """Recorded calls that changed registry state."""
        return [c for c in self.calls if c[0] in ("put_manifest", "put_blob", "mount_blob")]

    def clear(self) -> None:
        """Clear all stored data (test utility)."""
        self._manifests.clear()
        self._blobs.clear()
        self._tags.clear()
        self.calls.clear()
