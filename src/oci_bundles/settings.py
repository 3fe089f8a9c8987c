"""
Settings and configuration for OCI Bundles.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at adapter construction time.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

__all__ = ["Settings", "create_settings_from_env"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for registry access.

    Registry Settings:
        registry_insecure: Allow plain HTTP and skip TLS verification
        registry_user: Username for registry authentication
        registry_pass: Password for registry authentication
        docker_config: Path to a Docker config.json used for credentials
        http_timeout_s: HTTP read/write timeout in seconds
        http_retry: Extra attempts for requests that failed to connect (0=no retry)
        user_agent: User-Agent header sent to registries
    """
    registry_insecure: bool = False
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = None
    docker_config: Optional[Path] = None
    http_timeout_s: float = 30.0
    http_retry: int = 2
    user_agent: str = "oci-bundles/0.1.0"

    def __post_init__(self):
        """Validate settings on construction."""
        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        # Credentials come in pairs
        if self.registry_user and not self.registry_pass:
            raise ValueError("registry_user specified but registry_pass is missing")
        if self.registry_pass and not self.registry_user:
            raise ValueError("registry_pass specified but registry_user is missing")

        if not self.user_agent:
            raise ValueError("user_agent cannot be empty")

    def with_insecure(self, insecure: bool) -> Settings:
        """Return a copy with registry_insecure overridden (CLI flag)."""
        if insecure == self.registry_insecure:
            return self
        return replace(self, registry_insecure=insecure)


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - OCI_BUNDLES_REGISTRY_INSECURE (default: false)
        - OCI_BUNDLES_REGISTRY_USERNAME (optional)
        - OCI_BUNDLES_REGISTRY_PASSWORD (optional)
        - DOCKER_CONFIG (optional, directory holding config.json)
        - OCI_BUNDLES_HTTP_TIMEOUT (default: 30.0)
        - OCI_BUNDLES_HTTP_RETRY (default: 2)
        - OCI_BUNDLES_USER_AGENT (default: oci-bundles/0.1.0)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    docker_config_dir = os.getenv("DOCKER_CONFIG")
    docker_config = Path(docker_config_dir) / "config.json" if docker_config_dir else None

    return Settings(
        registry_insecure=str_to_bool(os.getenv("OCI_BUNDLES_REGISTRY_INSECURE", "false")),
        registry_user=os.getenv("OCI_BUNDLES_REGISTRY_USERNAME") or None,
        registry_pass=os.getenv("OCI_BUNDLES_REGISTRY_PASSWORD") or None,
        docker_config=docker_config,
        http_timeout_s=get_float("OCI_BUNDLES_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("OCI_BUNDLES_HTTP_RETRY", 2),
        user_agent=os.getenv("OCI_BUNDLES_USER_AGENT", "oci-bundles/0.1.0"),
    )
