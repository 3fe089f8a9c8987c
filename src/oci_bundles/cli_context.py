"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
remote factory, avoiding global state and enabling dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .settings import Settings, create_settings_from_env
from .storage.registry_factory import HttpRemoteFactory, make_remote_factory


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, remote factory) that
    are initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _bind: Optional[HttpRemoteFactory] = None

    @classmethod
    def from_env(cls, insecure: bool = False) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            insecure: Force plain HTTP regardless of OCI_BUNDLES_REGISTRY_INSECURE

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env()
        if insecure:
            settings = settings.with_insecure(True)
        return cls(settings=settings)

    @property
    def bind(self) -> HttpRemoteFactory:
        """
        Get or create the remote factory (lazy initialization).

        Returns:
            HttpRemoteFactory shared by every remote of this command
        """
        if self._bind is None:
            self._bind = make_remote_factory(self.settings)
        return self._bind

    def close(self) -> None:
        if self._bind is not None:
            self._bind.close()
            self._bind = None
