"""
OCI Bundles CLI

Implements 2 CLI verbs with Operations facade integration:
- publish: Publish a bundle YAML (and optional signature) to a registry
- inspect: Show the platform index of a published bundle
"""
from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import print_index, print_publish_result

app = typer.Typer(name="oci-bundles", help="Publish bundles of OCI packages to registries")


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich; --verbose selects DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def publish(
    bundle_yaml: str = typer.Argument(..., help="Path to the bundle YAML"),
    destination: str = typer.Argument(..., help="Registry location, e.g. oci://ghcr.io/org/bundles"),
    signature: Optional[str] = typer.Option(None, "--signature", help="Detached signature of the bundle YAML"),
    insecure: bool = typer.Option(False, "--insecure", help="Use plain HTTP and skip TLS verification"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Publish a bundle to a registry."""
    _configure_logging(verbose)

    def _publish() -> None:
        context = CLIContext.from_env(insecure=insecure)
        try:
            config = OpsConfig(insecure=context.settings.registry_insecure, verbose=verbose)
            ops = Operations(config=config, bind=context.bind, settings=context.settings)
            result = ops.publish(bundle_yaml, destination, signature_path=signature)
        finally:
            context.close()
        print_publish_result(result, insecure=config.insecure, verbose=verbose)

    run_and_exit(_publish)


@app.command()
def inspect(
    reference: str = typer.Argument(..., help="Bundle reference, e.g. oci://ghcr.io/org/bundles/core:0.1.0"),
    insecure: bool = typer.Option(False, "--insecure", help="Use plain HTTP and skip TLS verification"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Show the platform index of a published bundle."""
    _configure_logging(verbose)

    def _inspect() -> None:
        context = CLIContext.from_env(insecure=insecure)
        try:
            ops = Operations(config=OpsConfig(insecure=insecure, verbose=verbose),
                             bind=context.bind, settings=context.settings)
            ref, index = ops.inspect(reference)
        finally:
            context.close()
        print_index(ref, index, verbose=verbose)

    run_and_exit(_inspect)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
