"""Error hierarchy for Quire.

All Quire-specific errors inherit from QuireError for easy catching.
"""

from __future__ import annotations

from pathlib import Path


class QuireError(Exception):
    """Base error for all Quire operations."""


class CacheKeyError(QuireError, ValueError):
    """A compilation-context chain cannot be turned into a cache key."""


class IncludeNotFoundError(QuireError):
    """An ``include()`` target does not resolve to any existing file.

    This error is fatal: it is never converted into empty output by the
    per-page recovery of the compiler.

    Attributes:
        requested: The path as written in the template.
        candidates: Every absolute path that was tried.
        including_file: The template that requested the include.
    """

    def __init__(self, requested: str, candidates: list[Path], including_file: Path):
        self.requested = requested
        self.candidates = candidates
        self.including_file = including_file
        searched = ", ".join(str(c) for c in candidates)
        super().__init__(
            f"Cannot find a file for include '{requested}' in {including_file}. Searched: {searched}"
        )


class BuildError(QuireError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")
