"""
OCI media types and constants.

Single source of truth for all OCI-related media types, annotation keys
and the conventional filenames used when publishing bundles.
"""
from __future__ import annotations

# OCI standard manifest types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

# Index-like manifests carry a "manifests" array instead of "layers"
INDEX_MEDIA_TYPES = (OCI_IMAGE_INDEX, DOCKER_MANIFEST_LIST)

# Accept header for manifest GET/HEAD (in order of preference)
ACCEPTED_MANIFEST_TYPES = [
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
]

# Bundle blob types; consumers of published bundles look these up verbatim
BUNDLE_LAYER_MEDIA_TYPE = "application/vnd.zarf.layer.v1.blob"
BUNDLE_CONFIG_MEDIA_TYPE = "application/vnd.zarf.config.v1+json"

# Platform OS for artifacts that are not tied to one operating system
MULTI_OS = "multi"

# Version written into the bundle config blob
OCI_CONFIG_VERSION = "1.0.1"

# Standard OCI annotation keys (registry UIs render these)
ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_DESCRIPTION = "org.opencontainers.image.description"
ANNOTATION_VERSION = "org.opencontainers.image.version"
ANNOTATION_URL = "org.opencontainers.image.url"
ANNOTATION_AUTHORS = "org.opencontainers.image.authors"
ANNOTATION_DOCUMENTATION = "org.opencontainers.image.documentation"
ANNOTATION_SOURCE = "org.opencontainers.image.source"
ANNOTATION_VENDOR = "org.opencontainers.image.vendor"

# Standard file titles for identification
BUNDLE_YAML = "uds-bundle.yaml"
BUNDLE_YAML_SIGNATURE = "uds-bundle.yaml.sig"

# Scheme prefix accepted on destinations and references
OCI_URL_PREFIX = "oci://"


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST",
    "INDEX_MEDIA_TYPES",
    "ACCEPTED_MANIFEST_TYPES",
    "BUNDLE_LAYER_MEDIA_TYPE",
    "BUNDLE_CONFIG_MEDIA_TYPE",
    "MULTI_OS",
    "OCI_CONFIG_VERSION",
    "ANNOTATION_TITLE",
    "ANNOTATION_DESCRIPTION",
    "ANNOTATION_VERSION",
    "ANNOTATION_URL",
    "ANNOTATION_AUTHORS",
    "ANNOTATION_DOCUMENTATION",
    "ANNOTATION_SOURCE",
    "ANNOTATION_VENDOR",
    "BUNDLE_YAML",
    "BUNDLE_YAML_SIGNATURE",
    "OCI_URL_PREFIX",
]
