"""
Human-readable output formatting.

Centralizes all CLI output formatting so commands stay thin and focused.
"""
from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from ..models import Index
from ..publisher import PublishResult
from ..storage.oci_media_types import OCI_URL_PREFIX
from ..storage.reference import Reference

_console = Console()
_err_console = Console(stderr=True)


def print_publish_result(result: PublishResult, insecure: bool = False, verbose: bool = False) -> None:
    """
    Print the published reference and how to use it.

    Args:
        result: Outcome of the publish
        insecure: Whether --insecure was used (echoed into the hints)
        verbose: Show manifest and index digests
    """
    _console.print(f"[bold green]Published[/] {result.reference}")
    if verbose:
        _console.print(f"[bold]Root manifest:[/] [dim]{result.root_manifest.digest}[/]")
        _console.print(f"[bold]Index:[/] [dim]{result.index.digest}[/]")

    flags = " --insecure" if insecure else ""
    target = f"{OCI_URL_PREFIX}{result.reference}"

    _console.print(Rule())
    _console.print("[bold]To inspect/deploy/pull:[/]")
    for verb in ("inspect", "deploy", "pull"):
        _console.print(f"  [cyan]{verb} {target}{flags}[/]")


def print_index(reference: Reference, index: Index, verbose: bool = False) -> None:
    """
    Print one row per platform entry of an index.

    Args:
        reference: Reference the index was fetched from
        index: Index to display
        verbose: Show full digests and entry annotations
    """
    _console.print(f"[bold]Bundle:[/] {reference}")

    if not index.manifests:
        _console.print("[dim]Index has no entries[/]")
        return

    table = Table(title=f"Platforms ({len(index.manifests)})")
    table.add_column("Architecture", style="cyan")
    table.add_column("OS", style="cyan")
    table.add_column("Digest", style="yellow")
    table.add_column("Size", justify="right")
    if verbose:
        table.add_column("Annotations")

    for entry in index.manifests:
        platform = entry.platform
        digest = entry.digest if verbose else entry.digest[:19] + "…"
        row = [
            platform.architecture if platform else "-",
            platform.os if platform else "-",
            digest,
            _format_bytes(entry.size),
        ]
        if verbose:
            row.append(_format_annotations(entry.annotations))
        table.add_row(*row)

    _console.print(table)


def print_error(exc: BaseException) -> None:
    """Print an error message to stderr."""
    _err_console.print(f"[bold red]Error:[/] {type(exc).__name__}: {exc}", highlight=False)


def _format_annotations(annotations: Optional[dict]) -> str:
    if not annotations:
        return ""
    return ", ".join(f"{k}={v}" for k, v in sorted(annotations.items()))


def _format_bytes(size_bytes: int) -> str:
    """
    Format byte count as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "42 KB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
