"""Site building functionality for Quire.

A build session wires one cache store to page discovery, the render context
builder and the page compiler. ``build_site`` runs a session once over every
page; the development server keeps its session alive and feeds it file events.

Key functions:
- create_session: Create the components of a build session.
- build_site: Main function to build the entire site.
- copy_assets, copy_static_files: Publish the files that are not compiled.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .cache import CacheStore
from .compiler import PageCompiler
from .config import SiteConfig, load_config
from .content import Page, PageDiscovery, is_static_file
from .context import RenderContextBuilder
from .errors import BuildError
from .protocols import MarkdownRenderer, PostProcessor, TemplateRenderer
from .renderers import JinjaTemplateRenderer, MistuneMarkdownRenderer
from .utils import ensure_clean_dir

ASSETS_OUTPUT = "assets"


@dataclass
class Session:
    """Components sharing one cache store.

    Attributes:
        config: Site configuration.
        store: Cache store of the session.
        discovery: Page discovery.
        builder: Render context builder.
        compiler: Page compiler.
    """

    config: SiteConfig
    store: CacheStore
    discovery: PageDiscovery
    builder: RenderContextBuilder
    compiler: PageCompiler


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: Every discovered page.
        written: Pages whose HTML was written.
        skipped: Pages left out (drafts, pages without a layout).
        output_dir: Directory where the site was built.
    """

    pages: list[Page]
    written: list[Page] = field(default_factory=list)
    skipped: list[Page] = field(default_factory=list)
    output_dir: Path | None = None


class FileOutputWriter:
    """Writes compiled pages to their output files."""

    def write(self, page: Page, html: str | None) -> None:
        """Write ``html`` to the page's output file.

        A None result removes a previously written file, so a page that became
        a draft disappears from the output.

        Raises:
            BuildError: If the output file cannot be written.
        """
        try:
            if html is None:
                page.output_file.unlink(missing_ok=True)
                return
            page.output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(page.output_file, "w", encoding="utf-8") as f:
                f.write(html)
        except OSError as exc:
            raise BuildError(
                page.content_file, f"Cannot write {page.output_file}: {exc}", exc
            ) from exc


def create_session(
    project_root: Path,
    development: bool = False,
    renderer: TemplateRenderer | None = None,
    markdown: MarkdownRenderer | None = None,
    post_processor: PostProcessor | None = None,
) -> Session:
    """Create the components of a build session.

    Args:
        project_root: Root directory of the project.
        development: Whether drafts are compiled.
        renderer: Template renderer; an async Jinja2 renderer by default.
        markdown: Markdown renderer; mistune by default.
        post_processor: Post-processor; metadata injection by default.

    Returns:
        A new Session with an empty cache store.
    """
    config = load_config(project_root)
    store = CacheStore()
    builder = RenderContextBuilder(
        store,
        renderer or JinjaTemplateRenderer(),
        markdown or MistuneMarkdownRenderer(),
        config,
    )
    return Session(
        config=config,
        store=store,
        discovery=PageDiscovery(config),
        builder=builder,
        compiler=PageCompiler(store, builder, post_processor, development),
    )


async def build_session(session: Session, clean_output: bool = True) -> BuildResult:
    """Compile every page of a session and write the results.

    Pages are compiled concurrently; they only share the page list and write
    to disjoint cache chains.

    Args:
        session: Session to build.
        clean_output: Whether to wipe the output directory first.

    Returns:
        BuildResult describing what was written.

    Raises:
        BuildError: If the pages directory is missing or a file cannot be written.
    """
    config = session.config
    if not config.pages_dir.is_dir():
        raise BuildError(config.pages_dir, "Expected a pages directory")
    if clean_output:
        ensure_clean_dir(config.output_dir)
    else:
        config.output_dir.mkdir(parents=True, exist_ok=True)

    pages = session.discovery.discover(session.store)
    results = await asyncio.gather(
        *(session.compiler.compile(page, pages) for page in pages)
    )
    result = BuildResult(pages=list(pages), output_dir=config.output_dir)
    writer = FileOutputWriter()
    for page, html in zip(pages, results):
        writer.write(page, html)
        (result.written if html is not None else result.skipped).append(page)
    copy_assets(config)
    copy_static_files(config)
    return result


def build_site(
    project_root: Path,
    development: bool = False,
    clean_output: bool = True,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        development: Whether to include draft pages.
        clean_output: Whether to wipe the output directory before building.

    Returns:
        BuildResult containing every page and the output directory.
    """
    session = create_session(project_root, development)
    return asyncio.run(build_session(session, clean_output))


def copy_assets(config: SiteConfig) -> None:
    """Copy the assets directory into the output tree.

    The output tree mirrors the project root, the way ``url()`` rebases paths,
    so ``<project>/assets`` lands in ``<output>/assets``. An assets directory
    outside the project is copied to ``<output>/assets``.
    """
    if not config.assets_dir.is_dir():
        return
    target = config.mirror(config.assets_dir) or config.output_dir / ASSETS_OUTPUT
    shutil.copytree(config.assets_dir, target, dirs_exist_ok=True)


def copy_static_files(config: SiteConfig) -> list[Path]:
    """Copy the static files found beside pages, layouts and includes.

    Returns:
        Source paths of the copied files.
    """
    copied: list[Path] = []
    seen: set[Path] = set()
    for directory in config.source_dirs():
        if not directory.is_dir():
            continue
        for path in sorted(directory.rglob("*")):
            if path in seen or not path.is_file() or not is_static_file(path, config):
                continue
            seen.add(path)
            copy_static_file(config, path)
            copied.append(path)
    return copied


def copy_static_file(config: SiteConfig, path: Path) -> Path | None:
    """Copy one static file to its mirrored output path.

    Returns:
        The written path, or None for a file outside the project.
    """
    target = config.mirror(path)
    if target is None:
        return None
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(path, target)
    return target


def remove_static_file(config: SiteConfig, path: Path) -> None:
    target = config.mirror(path)
    if target is not None:
        target.unlink(missing_ok=True)
