"""
Bundle publishing errors.

Transport failures use the OciError hierarchy from storage.oci_errors and
are never wrapped; the classes here cover what the publisher detects itself.
"""
from __future__ import annotations

__all__ = [
    "BundleError",
    "BundleConfigError",
    "ReferenceResolutionError",
    "BundleSerializationError",
]


class BundleError(Exception):
    """Base class for errors raised by the bundle publisher."""
    pass


class BundleConfigError(BundleError, ValueError):
    """
    Bundle is missing a required field.

    Detected before any registry I/O happens (e.g. empty architecture).
    """
    pass


class ReferenceResolutionError(BundleError, ValueError):
    """Destination reference cannot be derived from the prefix and metadata."""
    pass


class BundleSerializationError(BundleError):
    """Bundle metadata or a manifest could not be encoded."""
    pass
