# Fake implementations for testing

from .fake_http_registry import FakeHttpRegistry
from .fake_oci_registry import FakeOciRegistry

__all__ = ["FakeHttpRegistry", "FakeOciRegistry"]
