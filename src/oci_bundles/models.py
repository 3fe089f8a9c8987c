"""
Data models for bundle publishing.

These Pydantic models provide type safety and validation for the publishing
workflow, from parsing the bundle YAML to building OCI manifests and indexes.
OCI documents use the camelCase field names of the image-spec via aliases.
"""
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .storage.oci_media_types import MULTI_OS, OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST


def sha256_digest(data: bytes) -> str:
    """Return the OCI digest string (sha256:<hex>) for raw bytes."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def canonical_json(model: BaseModel) -> bytes:
    """
    Serialize a model to canonical JSON bytes.

    Sorted keys and no whitespace so identical documents always hash to the
    same digest.
    """
    return json.dumps(
        model.model_dump(by_alias=True, exclude_none=True),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=True
    ).encode('utf-8')


class Platform(BaseModel):
    """OCI platform: the key of an image index entry."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    architecture: str = Field(..., description="CPU architecture (amd64, arm64, ...)")
    os: str = Field(..., description="Operating system")
    os_version: Optional[str] = Field(default=None, alias="os.version")
    variant: Optional[str] = Field(default=None, description="CPU variant")

    def matches(self, other: Optional[Platform]) -> bool:
        """
        Check whether another platform selects the same index entry.

        The multi-OS marker on either side matches any operating system.
        """
        if other is None:
            return False
        if self.architecture != other.architecture:
            return False
        if MULTI_OS not in (self.os, other.os) and self.os != other.os:
            return False
        return (self.variant or "") == (other.variant or "")


class Descriptor(BaseModel):
    """OCI content descriptor: a content-addressed pointer to pushed data."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    media_type: str = Field(..., alias="mediaType")
    digest: str = Field(..., description="Content digest (sha256:...)")
    size: int = Field(..., ge=0, description="Content size in bytes")
    annotations: Optional[Dict[str, str]] = None
    platform: Optional[Platform] = None
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")

    @classmethod
    def for_bytes(cls, data: bytes, media_type: str,
                  annotations: Optional[Dict[str, str]] = None) -> Descriptor:
        """Build the descriptor that pushing ``data`` would produce."""
        return cls(
            media_type=media_type,
            digest=sha256_digest(data),
            size=len(data),
            annotations=annotations,
        )


class Manifest(BaseModel):
    """OCI image manifest."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: Optional[str] = Field(default=OCI_IMAGE_MANIFEST, alias="mediaType")
    config: Optional[Descriptor] = None
    layers: List[Descriptor] = Field(default_factory=list)
    annotations: Optional[Dict[str, str]] = None


class Index(BaseModel):
    """OCI image index: platform -> manifest descriptor."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_IMAGE_INDEX, alias="mediaType")
    manifests: List[Descriptor] = Field(default_factory=list)
    annotations: Optional[Dict[str, str]] = None

    def find(self, platform: Platform) -> Optional[Descriptor]:
        """Return the entry for ``platform`` or None."""
        for entry in self.manifests:
            if platform.matches(entry.platform):
                return entry
        return None


class BundleMetadata(BaseModel):
    """Bundle identity from the ``metadata`` section of the bundle YAML."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Bundle name")
    version: str = Field(default="", description="Bundle version, used as the tag")
    architecture: str = Field(default="", description="Target architecture (required to publish)")
    description: Optional[str] = None
    url: Optional[str] = None
    authors: Optional[str] = None
    documentation: Optional[str] = None
    source: Optional[str] = None
    vendor: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("metadata.name cannot be empty")
        return v


class BundleBuild(BaseModel):
    """Build provenance recorded when the bundle was created."""
    model_config = ConfigDict(frozen=True)

    user: Optional[str] = None
    architecture: Optional[str] = None
    timestamp: Optional[str] = None
    version: Optional[str] = Field(default=None, description="Version of the tool that built the bundle")


class Package(BaseModel):
    """A package hosted in its own OCI repository."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Package name")
    repository: str = Field(..., description="Repository path, e.g. ghcr.io/org/packages/podinfo")
    ref: str = Field(..., description="Tag of the package in its repository")

    @property
    def url(self) -> str:
        """Source reference as ``repository:ref``."""
        return f"{self.repository}:{self.ref}"


class Bundle(BaseModel):
    """
    A bundle declaration.

    Constructed by the loader and never mutated while publishing.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["UDSBundle"] = "UDSBundle"
    metadata: BundleMetadata
    build: BundleBuild = Field(default_factory=BundleBuild)
    packages: List[Package] = Field(default_factory=list)

    @field_validator("packages")
    @classmethod
    def validate_unique_packages(cls, v: List[Package]) -> List[Package]:
        names = [pkg.name for pkg in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate package names: {', '.join(duplicates)}")
        return v

    @classmethod
    def from_yaml_file(cls, path: Union[str, Path]) -> Bundle:
        """Load a Bundle from a bundle YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Bundle file not found: {path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Bundle file must contain a mapping: {path}")

        return cls.model_validate(data)

    def to_yaml_bytes(self) -> bytes:
        """Marshal the bundle declaration to YAML, keeping declaration order."""
        import yaml

        data = self.model_dump(exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False).encode('utf-8')


__all__ = [
    "sha256_digest",
    "canonical_json",
    "Platform",
    "Descriptor",
    "Manifest",
    "Index",
    "BundleMetadata",
    "BundleBuild",
    "Package",
    "Bundle",
]
