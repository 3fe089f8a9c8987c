"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

# Looked up by class name along the exception's MRO
EXIT_CODES = {
    "OciNotFound": 1,
    "FileNotFoundError": 1,
    "BundleConfigError": 2,
    "ReferenceResolutionError": 2,
    "ValidationError": 2,
    "ValueError": 2,
    "OciError": 3,
    "OciAuthError": 4,
    "BundleSerializationError": 5,
}

DEFAULT_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 0: Success
    - 1: Bundle file or registry resource not found
    - 2: Invalid bundle or reference (configuration / resolution errors)
    - 3: Registry transport error, or unknown error
    - 4: Registry authentication or authorization failure
    - 5: Bundle metadata could not be serialized

    Subclasses inherit their parent's code unless listed themselves, so
    e.g. OciRateLimited maps like OciError.

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-5, with 3 as fallback for unknown exceptions)
    """
    for cls in type(exc).__mro__:
        code = EXIT_CODES.get(cls.__name__)
        if code is not None:
            return code
    return DEFAULT_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
