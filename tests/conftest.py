"""Root pytest configuration for oci-bundles tests."""
import pytest

from oci_bundles.settings import Settings

from .helpers.oci_helpers import FakeRemoteFactory, make_bundle, seed_package
from .storage.fakes.fake_oci_registry import FakeOciRegistry

# Import fixtures to make them available
from .fixtures.oci_registry import oci_registry  # noqa: F401

REGISTRY_HOST = "registry.test"
SOURCE_HOST = "source.test"


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires Docker)"
    )


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Keep the caller's environment out of settings."""
    for key in (
        "OCI_BUNDLES_REGISTRY_INSECURE",
        "OCI_BUNDLES_REGISTRY_USERNAME",
        "OCI_BUNDLES_REGISTRY_PASSWORD",
        "OCI_BUNDLES_HTTP_TIMEOUT",
        "OCI_BUNDLES_HTTP_RETRY",
        "OCI_BUNDLES_USER_AGENT",
        "DOCKER_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(registry_insecure=True, http_retry=0)


@pytest.fixture
def registry():
    """Fake destination registry."""
    return FakeOciRegistry()


@pytest.fixture
def source_registry():
    """Fake registry hosting the bundle's packages."""
    return FakeOciRegistry()


@pytest.fixture
def bind(registry, source_registry):
    """Remote factory routing both hosts to their fakes."""
    return FakeRemoteFactory({REGISTRY_HOST: registry, SOURCE_HOST: source_registry})


@pytest.fixture
def two_package_bundle(source_registry):
    """Bundle 'core' for amd64 with packages P1 and P2 seeded on the source host."""
    from oci_bundles.models import Package

    seed_package(source_registry, "packages/p1", "1.0.0", "p1")
    seed_package(source_registry, "packages/p2", "2.0.0", "p2", layer_count=3)
    return make_bundle(packages=[
        Package(name="p1", repository=f"{SOURCE_HOST}/packages/p1", ref="1.0.0"),
        Package(name="p2", repository=f"{SOURCE_HOST}/packages/p2", ref="2.0.0"),
    ])
