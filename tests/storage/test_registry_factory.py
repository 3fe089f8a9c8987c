"""Tests for HttpRemoteFactory, including a full publish over the HTTP transport."""
from pathlib import Path

import httpx
import pytest

from oci_bundles.models import Package, Platform
from oci_bundles.publisher import Signed, publish_bundle
from oci_bundles.settings import Settings
from oci_bundles.storage.oci_media_types import ANNOTATION_TITLE, OCI_IMAGE_INDEX
from oci_bundles.storage.registry_factory import HttpRemoteFactory, make_remote_factory
from oci_bundles.storage.remote import OciRemote

from ..helpers.oci_helpers import make_bundle, seed_index, seed_package
from .fakes.fake_http_registry import FakeHttpRegistry

PLATFORM = Platform(architecture="amd64", os="multi")
DEST_HOST = "registry.test"
SOURCE_HOST = "source.test"


@pytest.fixture
def http_settings():
    return Settings(registry_insecure=True, http_retry=0, docker_config=Path("/nonexistent/docker/config.json"))


@pytest.fixture
def hosts():
    return {DEST_HOST: FakeHttpRegistry(), SOURCE_HOST: FakeHttpRegistry()}


@pytest.fixture
def factory(http_settings, hosts):
    transport = httpx.MockTransport(lambda request: hosts[request.url.host](request))
    with HttpRemoteFactory(http_settings, transport=transport) as bind:
        yield bind


class TestHttpRemoteFactory:
    """One RegistryHTTP per host, shared by every remote bound to it."""

    def test_binds_string_reference(self, factory):
        remote = factory(f"oci://{DEST_HOST}/bundles/core:0.1.0", PLATFORM)

        assert isinstance(remote, OciRemote)
        assert remote.repo == "bundles/core"
        assert remote.platform == PLATFORM

    def test_client_cached_per_host(self, factory):
        first = factory(f"{DEST_HOST}/bundles/core:0.1.0", PLATFORM)
        second = factory(f"{DEST_HOST}/packages/p1:1.0.0", PLATFORM)
        other = factory(f"{SOURCE_HOST}/packages/p1:1.0.0", PLATFORM)

        assert first.registry is second.registry
        assert first.registry is not other.registry

    def test_close_releases_clients(self, http_settings):
        bind = HttpRemoteFactory(http_settings, transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        client = bind.registry_for(DEST_HOST)

        bind.close()

        assert client.client.is_closed
        assert bind.registry_for(DEST_HOST) is not client

    def test_make_remote_factory(self, http_settings):
        bind = make_remote_factory(http_settings)
        try:
            assert isinstance(bind, HttpRemoteFactory)
            assert bind.settings is http_settings
        finally:
            bind.close()


class TestPublishOverHttp:
    """The publisher drives the distribution API end to end."""

    def test_cross_registry_publish(self, factory, hosts):
        source, dest = hosts[SOURCE_HOST].backend, hosts[DEST_HOST].backend
        seed_package(source, "packages/p1", "1.0.0", "p1")
        bundle = make_bundle(packages=[Package(name="p1", repository=f"{SOURCE_HOST}/packages/p1", ref="1.0.0")])

        result = publish_bundle(bundle, f"oci://{DEST_HOST}/bundles", Signed(b"sig"), bind=factory)

        assert str(result.reference) == f"{DEST_HOST}/bundles/core:0.1.0"
        payload, media_type = dest.get_manifest("bundles/core", "0.1.0")
        assert media_type == OCI_IMAGE_INDEX
        index = dest.manifest_json("bundles/core", "0.1.0")
        assert [entry["platform"] for entry in index["manifests"]] == [{"architecture": "amd64", "os": "multi"}]
        root = dest.manifest_json("bundles/core", result.root_manifest.digest)
        assert [layer["annotations"][ANNOTATION_TITLE] for layer in root["layers"]] == [
            "p1", "uds-bundle.yaml", "uds-bundle.yaml.sig",
        ]
        for layer in root["layers"]:
            assert dest.has_blob("bundles/core", layer["digest"]) or dest.has_manifest("bundles/core", layer["digest"])

    def test_same_registry_publish_mounts(self, factory, hosts):
        dest = hosts[DEST_HOST].backend
        seed_package(dest, "packages/p1", "1.0.0", "p1")
        bundle = make_bundle(packages=[Package(name="p1", repository=f"{DEST_HOST}/packages/p1", ref="1.0.0")])

        publish_bundle(bundle, f"{DEST_HOST}/bundles", bind=factory)

        assert any(call[0] == "mount_blob" for call in dest.calls)
        assert not any(call[0] == "open_blob" for call in dest.calls)

    def test_existing_platforms_preserved(self, factory, hosts):
        dest = hosts[DEST_HOST].backend
        seed_index(dest, "bundles/core", "0.1.0", [("arm64", "multi")])

        publish_bundle(make_bundle(), f"{DEST_HOST}/bundles", bind=factory)

        index = dest.manifest_json("bundles/core", "0.1.0")
        assert [entry["platform"]["architecture"] for entry in index["manifests"]] == ["arm64", "amd64"]

    def test_index_put_with_index_content_type(self, factory, hosts):
        publish_bundle(make_bundle(), f"{DEST_HOST}/bundles", bind=factory)

        tag_puts = [r for r in hosts[DEST_HOST].requests
                    if r.method == "PUT" and r.url.path == "/v2/bundles/core/manifests/0.1.0"]
        assert len(tag_puts) == 1
        assert tag_puts[0].headers["Content-Type"] == OCI_IMAGE_INDEX
