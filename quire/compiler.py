"""Page compilation for Quire.

Compiling a page renders its content file, its sections and finally its layout,
caching every step under the page's compilation-context chains:

- ``(output, layout, content)``: rendered content of the page.
- ``(output, layout, content, "front-matter")``: its parsed front matter.
- ``(output, layout, section)``: rendered section.
- ``(output,)``: final, post-processed HTML.

Includes rendered along the way are cached under the chain of the file that
included them, extended with a data link.

Key classes:
- PageCompiler: Compiles one page at a time against a shared cache store.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .cache import CacheStore
from .content import Page
from .context import (
    LAYOUT_CONTENT_KEY,
    LAYOUT_SECTIONS_KEY,
    RenderContext,
    RenderContextBuilder,
)
from .frontmatter import parse_front_matter, split_front_matter, validate_front_matter
from .postprocessing import MetaPostProcessor
from .protocols import PostProcessor
from .utils import display_path, echo_error, echo_warning, is_markdown

FRONT_MATTER_LINK = "front-matter"
FRONT_MATTER_KEY = "front_matter"


def page_chain(page: Page) -> tuple[str, ...]:
    """Chain of the page's layout rendering: ``(output, layout)``."""
    return (str(page.output_file), str(page.layout_file))


def output_chain(page: Page) -> tuple[str]:
    """Chain of the page's final HTML: ``(output,)``."""
    return (str(page.output_file),)


class PageCompiler:
    """Compiles pages to HTML.

    Attributes:
        store: Cache store of the session.
        builder: Render context builder used for every file of a page.
        post_processor: Applied to the rendered layout before it is cached.
        development: Whether draft pages are compiled.
    """

    def __init__(
        self,
        store: CacheStore,
        builder: RenderContextBuilder,
        post_processor: PostProcessor | None = None,
        development: bool = False,
    ):
        self.store = store
        self.builder = builder
        self.post_processor = post_processor or MetaPostProcessor()
        self.development = development

    async def compile(self, page: Page, pages: tuple[Page, ...]) -> str | None:
        """Compile a page.

        An unchanged page is served from the cache without rendering anything.

        Args:
            page: Page to compile.
            pages: Every page of the site (exposed to templates as ``pages``).

        Returns:
            Final HTML, or None for a draft outside development mode and for a
            page that cannot be compiled (no layout, unreadable files).
        """
        final = output_chain(page)
        if self.store.has(final):
            return self.store.get(final)

        if page.layout_file is None:
            echo_error(f"Cannot find a layout for the {page.url} page.", page.content_file)
            return None

        compiled = await self._compile_content(page, pages)
        if compiled is None:
            return None
        content, front_matter = compiled

        sections = {}
        for section in page.sections:
            sections[section.name] = await self._compile_section(
                page, pages, section.file, front_matter
            )

        layout_source = _read_source(page.layout_file)
        if layout_source is None:
            return None
        ctx = RenderContext(
            current_file=page.layout_file,
            page=page,
            pages=pages,
            parent_chain=page_chain(page),
            inherited_data={
                FRONT_MATTER_KEY: front_matter or {},
                LAYOUT_CONTENT_KEY: content,
                LAYOUT_SECTIONS_KEY: sections,
            },
        )
        html = await self.builder.render_file(ctx, layout_source)
        html = self.post_processor.process(html, front_matter)
        self.store.set(final, html)
        return html

    async def _compile_content(
        self, page: Page, pages: tuple[Page, ...]
    ) -> tuple[str, dict[str, Any] | None] | None:
        """Render the content file, or take it from the cache.

        Returns:
            Tuple of (content HTML, front matter), or None when the page is
            skipped as a draft or its content cannot be read.
        """
        content_chain = page_chain(page) + (str(page.content_file),)
        front_matter_chain = content_chain + (FRONT_MATTER_LINK,)
        if self.store.has(content_chain):
            return self.store.get(content_chain), self.store.get(front_matter_chain)

        source = _read_source(page.content_file)
        if source is None:
            return None
        front_matter = None
        if is_markdown(page.content_file):
            raw, source = split_front_matter(source)
            if raw is not None:
                front_matter = self._load_front_matter(raw, page.content_file)
            if front_matter and front_matter.get("draft") and not self.development:
                return None

        ctx = RenderContext(
            current_file=page.content_file,
            page=page,
            pages=pages,
            parent_chain=content_chain,
            inherited_data={FRONT_MATTER_KEY: front_matter or {}},
        )
        content = await self.builder.render_file(ctx, source)
        self.store.set(content_chain, content)
        self.store.set(front_matter_chain, front_matter)
        return content, front_matter

    async def _compile_section(
        self,
        page: Page,
        pages: tuple[Page, ...],
        file: Path,
        front_matter: Mapping[str, Any] | None,
    ) -> str:
        chain = page_chain(page) + (str(file),)
        if self.store.has(chain):
            return self.store.get(chain)
        source = _read_source(file)
        if source is None:
            return ""
        _, body = split_front_matter(source)
        ctx = RenderContext(
            current_file=file,
            page=page,
            pages=pages,
            parent_chain=chain,
            inherited_data={FRONT_MATTER_KEY: front_matter or {}},
        )
        html = await self.builder.render_file(ctx, body)
        self.store.set(chain, html)
        return html

    def _load_front_matter(self, raw: str, file: Path) -> dict[str, Any] | None:
        attributes = parse_front_matter(raw)
        if attributes is None:
            echo_warning(f"Front matter of {display_path(file)} is not a YAML mapping; ignored.")
            return None
        problems = validate_front_matter(attributes)
        if problems:
            echo_warning(f"Front matter of {display_path(file)} is invalid:")
            for problem in problems:
                echo_warning(f"  {problem}")
        return attributes


def _read_source(path: Path) -> str | None:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as exc:
        echo_error(f"Cannot read {display_path(path)}: {exc.strerror or exc}", path)
        return None
