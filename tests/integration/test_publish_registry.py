"""
Integration tests against a real registry:2 container.

These tests verify the full publish workflow over HTTP: package blobs are
mounted or copied, the root manifest is pushed by digest and the index at
the bundle tag gains one entry per architecture.
"""
from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from oci_bundles.models import Package
from oci_bundles.operations import Operations, OpsConfig
from oci_bundles.publisher import Signed, publish_bundle
from oci_bundles.settings import Settings
from oci_bundles.storage.oci_media_types import ANNOTATION_TITLE, OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST
from oci_bundles.storage.registry_factory import HttpRemoteFactory
from oci_bundles.storage.registry_http import RegistryHTTP

from ..helpers.oci_helpers import create_package_manifest, make_bundle

pytestmark = pytest.mark.integration


def _digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


@pytest.fixture
def registry_settings():
    return Settings(registry_insecure=True, http_retry=1, docker_config=Path("/nonexistent/docker/config.json"))


@pytest.fixture
def registry_client(oci_registry, registry_settings):
    with RegistryHTTP(oci_registry, registry_settings) as client:
        yield client


@pytest.fixture
def bind(registry_settings):
    with HttpRemoteFactory(registry_settings) as factory:
        yield factory


def _push_package(client: RegistryHTTP, repo: str, tag: str, name: str) -> str:
    config = json.dumps({"name": name}).encode()
    layers = [f"{name} layer {i}".encode() for i in range(2)]
    for blob in [config, *layers]:
        client.put_blob(repo, _digest(blob), blob)
    return client.put_manifest(repo, OCI_IMAGE_MANIFEST, create_package_manifest(config, layers), tag)


def test_publish_and_republish(oci_registry, registry_client, bind):
    package_digest = _push_package(registry_client, "packages/podinfo", "6.4.0", "podinfo")
    package = Package(name="podinfo", repository=f"{oci_registry}/packages/podinfo", ref="6.4.0")
    bundle = make_bundle(name="integration", packages=[package])

    first = publish_bundle(bundle, f"oci://{oci_registry}/bundles", Signed(b"signature"), bind=bind)
    second = publish_bundle(bundle, f"oci://{oci_registry}/bundles", Signed(b"signature"), bind=bind)

    payload, media_type = registry_client.get_manifest("bundles/integration", "0.1.0")
    assert media_type == OCI_IMAGE_INDEX
    index = json.loads(payload)
    assert len(index["manifests"]) == 1
    assert first.root_manifest.digest == second.root_manifest.digest

    root, _ = registry_client.get_manifest("bundles/integration", first.root_manifest.digest)
    layers = json.loads(root)["layers"]
    assert layers[0]["digest"] == package_digest
    assert [layer["annotations"][ANNOTATION_TITLE] for layer in layers] == [
        "podinfo", "uds-bundle.yaml", "uds-bundle.yaml.sig",
    ]
    assert registry_client.head_manifest("bundles/integration", package_digest) == package_digest


def test_architectures_share_index(oci_registry, bind, registry_settings):
    publish_bundle(make_bundle(name="multiarch", architecture="amd64"), oci_registry, bind=bind)
    publish_bundle(make_bundle(name="multiarch", architecture="arm64"), oci_registry, bind=bind)

    with Operations(OpsConfig(), bind=bind, settings=registry_settings) as ops:
        ref, index = ops.inspect(f"oci://{oci_registry}/multiarch:0.1.0")

    assert ref.tag == "0.1.0"
    assert [(entry.platform.architecture, entry.platform.os) for entry in index.manifests] == [
        ("amd64", "multi"), ("arm64", "multi"),
    ]
