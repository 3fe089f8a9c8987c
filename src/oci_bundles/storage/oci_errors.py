"""
OCI registry error classes.

Provides a clear taxonomy of errors that can occur during OCI operations.
These errors are mapped from HTTP status codes by the transport so callers
see one consistent error interface regardless of which registry they talk to.
"""
from __future__ import annotations


class OciError(Exception):
    """
    Base class for all OCI registry errors.

    Every transport failure (network, auth, not-found, conflict) surfaces
    as one of these and is passed through the publisher unchanged.
    """
    pass


class OciAuthError(OciError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (invalid credentials)
    - HTTP 403 Forbidden (insufficient permissions)
    """
    pass


class OciNotFound(OciError):
    """
    Resource not found in registry.

    Raised when:
    - HTTP 404 Not Found (manifest, blob, or repository doesn't exist)
    """
    pass


class OciDigestMismatch(OciError):
    """
    Content digest validation failed.

    Raised when:
    - put_manifest: server digest != locally computed digest
    - put_blob: blob content doesn't match expected digest
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class OciUnsupportedMediaType(OciError):
    """
    Media type not supported by registry or client.

    Raised when:
    - Registry rejects manifest due to unsupported media type (HTTP 415)
    - Client encounters a manifest it cannot decode
    """
    pass


class OciTooLarge(OciError):
    """Content too large for registry limits (HTTP 413)."""
    pass


class OciRateLimited(OciError):
    """Rate limit exceeded (HTTP 429)."""
    pass


def error_for_status(status_code: int, message: str) -> OciError:
    """
    Map an HTTP status code to the matching OciError subclass.

    Args:
        status_code: HTTP status returned by the registry
        message: Human-readable context for the error

    Returns:
        OciError instance (not raised)
    """
    if status_code in (401, 403):
        return OciAuthError(message)
    if status_code == 404:
        return OciNotFound(message)
    if status_code == 413:
        return OciTooLarge(message)
    if status_code == 415:
        return OciUnsupportedMediaType(message)
    if status_code == 429:
        return OciRateLimited(message)
    return OciError(message)


__all__ = [
    "OciError",
    "OciAuthError",
    "OciNotFound",
    "OciDigestMismatch",
    "OciUnsupportedMediaType",
    "OciTooLarge",
    "OciRateLimited",
    "error_for_status",
]
