"""Render contexts and the template helper surface.

Every file rendered while compiling a page (the content file, its sections,
the layout and every nested include) is rendered with a RenderContext. The
context records which file is rendering, the compilation-context chain that
led to it and the data inherited from the files that included it.

``RenderContextBuilder.namespace`` turns a context into the variables a
template sees. ``include`` is the recursive part: it extends the chain with a
data link for the included file, consults the cache, and otherwise renders the
file with a child context.

Key classes:
- RenderContext: Immutable description of one rendering.
- RenderContextBuilder: Builds template namespaces and renders files.
"""

from __future__ import annotations

import importlib
import importlib.util
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from functools import partial
from pathlib import Path
from types import ModuleType
from typing import Any

from markupsafe import Markup

from .cache import CacheStore, ChainLink, DataLink, chain_key, parse_chain_key
from .collections import CurrentPage, PageCollection
from .config import SiteConfig
from .content import Page, is_static_file
from .errors import IncludeNotFoundError
from .protocols import MarkdownRenderer, TemplateRenderer
from .utils import (
    MD_SUFFIX,
    PAGE_TEMPLATE_SUFFIX,
    TEMPLATE_SUFFIX,
    display_path,
    echo_error,
    echo_warning,
    is_markdown,
    is_within,
)

ROOT_SIGIL = "~"
INCLUDE_SUFFIXES = (TEMPLATE_SUFFIX, PAGE_TEMPLATE_SUFFIX, MD_SUFFIX)
# Keys of inherited data that are exposed through ``page`` rather than directly.
LAYOUT_CONTENT_KEY = "layout_content"
LAYOUT_SECTIONS_KEY = "layout_sections"

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
# Sources that may read the page list.
_PAGES_RE = re.compile(r"\bpages\b")


@dataclass(frozen=True)
class RenderContext:
    """Everything needed to render one file of a page.

    Attributes:
        current_file: File being rendered.
        page: Page being compiled.
        pages: Every page of the site.
        parent_chain: Chain of the rendering; includes extend it.
        inherited_data: Data passed down by the including files.
    """

    current_file: Path
    page: Page
    pages: tuple[Page, ...]
    parent_chain: tuple[ChainLink, ...]
    inherited_data: Mapping[str, Any] = field(default_factory=dict)

    def child(self, file: Path, link: ChainLink, data: Mapping[str, Any]) -> RenderContext:
        """Context for ``file`` included from this one.

        The child's chain ends with ``link``; ``data`` wins over inherited keys.
        """
        return replace(
            self,
            current_file=file,
            parent_chain=self.parent_chain + (link,),
            inherited_data={**self.inherited_data, **data},
        )

    @property
    def is_layout(self) -> bool:
        return self.page.layout_file is not None and self.current_file == self.page.layout_file


def _normalize(path: Path) -> Path:
    return Path(os.path.normpath(path))


class RenderContextBuilder:
    """Builds template namespaces and renders files through the renderers.

    Attributes:
        store: Cache store of the session.
        renderer: Template renderer.
        markdown: Markdown renderer applied after templating ``.md`` files.
        config: Site configuration.
        page_list_readers: Keys of the chains whose source mentions ``pages``.
            Their cached results go stale when a page is added or removed.
    """

    def __init__(
        self,
        store: CacheStore,
        renderer: TemplateRenderer,
        markdown: MarkdownRenderer,
        config: SiteConfig,
    ):
        self.store = store
        self.renderer = renderer
        self.markdown = markdown
        self.config = config
        self.page_list_readers: set[str] = set()

    def resolve(self, ctx: RenderContext, path: str) -> str:
        """Resolve a module or asset path.

        ``~/x`` is taken from the project root and ``./x`` or ``../x`` from the
        directory of the rendering file. Anything else (a bare module name) is
        returned unchanged.

        Examples:
            With the project at ``/site`` and ``/site/pages/docs/a.md`` rendering,
            ``"./img.png"`` gives ``/site/pages/docs/img.png`` and
            ``"~/assets/x.css"`` gives ``/site/assets/x.css``.
        """
        if path.startswith(ROOT_SIGIL):
            return str(_normalize(self.config.project_root / path[1:].lstrip("/\\")))
        if path.startswith("."):
            return str(_normalize(ctx.current_file.parent / path))
        return path

    def url(self, ctx: RenderContext, path: str) -> str:
        """Rebase a path onto the output file of the page being compiled.

        The output tree mirrors the project root, so ``~/assets/site.css``
        referenced from ``/docs/guide.html`` becomes ``../assets/site.css``.
        Bare paths are taken from the project root. URLs with a scheme,
        protocol-relative URLs, fragments and site-absolute paths are returned
        unchanged. Only the assets directory and static files beside the
        sources are copied into the output tree; any other target is reported
        with a warning.

        Args:
            ctx: Current render context.
            path: Path as written in the template.

        Returns:
            A ``/``-separated path relative to the output file's directory.
        """
        if _SCHEME_RE.match(path) or path.startswith(("/", "#")):
            return path
        target = Path(self.resolve(ctx, path))
        if not target.is_absolute():
            target = self.config.project_root / target
        target = _normalize(target)
        if not self._is_published(target):
            echo_warning(
                f"url('{path}') in {display_path(ctx.current_file)} points at "
                f"{display_path(target)}, which is not copied to the output directory."
            )
        mirrored = self.config.mirror(target) or target
        return Path(os.path.relpath(mirrored, ctx.page.output_file.parent)).as_posix()

    def _is_published(self, target: Path) -> bool:
        config = self.config
        return (
            is_within(target, config.assets_dir)
            or is_within(target, config.output_dir)
            or is_static_file(target, config)
        )

    def require(self, ctx: RenderContext, path: str) -> ModuleType:
        """Import a Python module for use in a template.

        Paths starting with ``.`` or ``~`` are loaded from disk (``.py`` is
        appended when the path has no suffix); bare names are imported from
        the import path.
        """
        if not path.startswith((ROOT_SIGIL, ".")):
            return importlib.import_module(path)
        file = Path(self.resolve(ctx, path))
        if not file.suffix:
            file = file.with_suffix(".py")
        spec = importlib.util.spec_from_file_location(f"_quire_require_{file.stem}", file)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load module from {file}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def find_include(self, ctx: RenderContext, path: str) -> Path:
        """Resolve an include path to an existing file.

        ``~`` and ``.`` paths resolve like ``resolve``; bare names resolve
        against the includes directory. The path itself is tried first, then
        the path with each of ``.jinja``, ``.html.jinja`` and ``.md`` appended.

        Raises:
            IncludeNotFoundError: If no candidate exists.
        """
        if path.startswith((ROOT_SIGIL, ".")):
            base = Path(self.resolve(ctx, path))
        else:
            base = _normalize(self.config.includes_dir / path)
        candidates = [base] + [base.with_name(base.name + suffix) for suffix in INCLUDE_SUFFIXES]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise IncludeNotFoundError(path, candidates, ctx.current_file)

    async def include(
        self, ctx: RenderContext, path: str, data: Mapping[str, Any] | None = None
    ) -> Markup:
        """Render another file into the current one.

        The result is cached under the current chain extended with a data
        link for the included file, so the same file included with different
        data is rendered and cached separately.

        Args:
            ctx: Context of the including file.
            path: Include path as written in the template.
            data: Extra data for the included file and its own includes.

        Returns:
            Rendered HTML, marked safe for the including template.

        Raises:
            IncludeNotFoundError: If the include cannot be resolved.
        """
        file = self.find_include(ctx, path)
        data = dict(data or {})
        link = DataLink(str(file), data)
        chain = ctx.parent_chain + (link,)
        if self.store.has(chain):
            return Markup(self.store.get(chain))
        html = await self.render_file(ctx.child(file, link, data), _read_text(file))
        self.store.set(chain, html)
        return Markup(html)

    def namespace(self, ctx: RenderContext) -> dict[str, Any]:
        """Build the variables available to the template of ``ctx``.

        Inherited data comes first so helpers cannot be shadowed by it.
        ``page.content`` and ``page.sections`` are only set while the page's
        layout renders.
        """
        data = dict(ctx.inherited_data)
        layout_content = data.pop(LAYOUT_CONTENT_KEY, None)
        layout_sections = data.pop(LAYOUT_SECTIONS_KEY, None)
        if ctx.is_layout:
            page = CurrentPage.of(ctx.page, layout_content or "", layout_sections or {})
        else:
            page = CurrentPage.of(ctx.page)
        return {
            **data,
            "current_file": str(ctx.current_file),
            "current_dir": str(ctx.current_file.parent),
            "resolve": partial(self.resolve, ctx),
            "url": partial(self.url, ctx),
            "include": partial(self.include, ctx),
            "require": partial(self.require, ctx),
            "page": page,
            "pages": PageCollection.of(ctx.pages),
            "app_settings": self.config.app_settings,
        }

    async def render_file(self, ctx: RenderContext, source: str) -> str:
        """Render ``source`` as the file of ``ctx``.

        Markdown files are templated first and converted to HTML afterwards.
        A rendering failure is reported with the file path and yields an empty
        string; a missing include is never recovered from.

        Args:
            ctx: Context of the rendering file.
            source: Source text (front matter already removed).

        Returns:
            Rendered HTML.
        """
        if _PAGES_RE.search(source):
            self.page_list_readers.add(chain_key(ctx.parent_chain))
        try:
            html = await self.renderer.render(source, self.namespace(ctx), ctx.current_file)
            if is_markdown(ctx.current_file):
                html = self.markdown.render(html)
        except IncludeNotFoundError:
            raise
        except Exception as exc:
            echo_error(f"An error occurred while rendering the template: {exc}", ctx.current_file)
            return ""
        return html

    def forget_page_list_readers(self) -> None:
        """Remove the cached results of every file that read the page list.

        Chains are removed with their prefixes, so the pages embedding those
        results are compiled again.
        """
        for key in self.page_list_readers:
            self.store.remove(parse_chain_key(key))
        self.page_list_readers.clear()


def _read_text(path: Path) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()
