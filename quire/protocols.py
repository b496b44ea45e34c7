"""Protocol definitions for Quire.

This module defines the interfaces of the collaborators the compilation core
talks to. Concrete implementations live in ``renderers``, ``postprocessing``,
``build`` and ``server``; tests substitute their own.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import Page


@runtime_checkable
class TemplateRenderer(Protocol):
    """Renders a template source with a context.

    Rendering is asynchronous so templates can await includes, and it may
    raise for syntax or runtime errors in the template.
    """

    @abstractmethod
    async def render(
        self, source: str, context: Mapping[str, Any], filename: Path
    ) -> str:
        """Render a template string.

        Args:
            source: Template source text.
            context: Variables available in the template.
            filename: File the source was read from (for error messages).

        Returns:
            Rendered string.
        """
        ...


@runtime_checkable
class MarkdownRenderer(Protocol):
    """Converts Markdown text to HTML. Synchronous and pure."""

    @abstractmethod
    def render(self, source: str) -> str:
        ...


@runtime_checkable
class PostProcessor(Protocol):
    """Transforms the rendered layout HTML before it is cached."""

    @abstractmethod
    def process(self, html: str, front_matter: Mapping[str, Any] | None) -> str:
        """Post-process a compiled page.

        Args:
            html: Rendered layout HTML.
            front_matter: Parsed front matter of the page, if any.

        Returns:
            Final HTML.
        """
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives reload notifications. Delivery is fire-and-forget."""

    @abstractmethod
    def notify(self, url: str | None) -> None:
        """Announce that ``url`` changed, or that anything may have changed (None)."""
        ...


@runtime_checkable
class OutputWriter(Protocol):
    """Persists compiled pages."""

    @abstractmethod
    def write(self, page: Page, html: str | None) -> None:
        """Write the compiled HTML of ``page``, or remove its output when None."""
        ...
