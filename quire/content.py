"""Page discovery for Quire.

This module walks the content directory and turns every routable content file into
a Page: the layout that wraps it, the sections that belong to it, the output file
it compiles to, its URL and its language.

Key classes:
- Page: Value object describing one routable page.
- Section: A partial content file that belongs to an index page.
- FileContentLoader: Discovers routable content files.
- LayoutResolver: Finds the nearest layout for a content file.
- OutputMapper: Derives output paths, URLs and languages.
- PageDiscovery: Facade producing the cached list of all pages.

The whole page list is cached under ``ALL_PAGES_CHAIN``. Discovery never watches
the file system itself: callers remove that chain whenever a content file is added
or removed, and the next call walks the tree again.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from pathlib import Path

from .cache import CacheStore
from .config import SiteConfig
from .utils import (
    HTML_SUFFIX,
    LAYOUT_SUFFIX,
    PARTIAL_PREFIX,
    is_ignored,
    is_internal_path,
    is_markdown,
    is_page_template,
    is_partial,
    is_source_file,
    is_within,
    strip_suffixes,
)

ALL_PAGES_CHAIN = ("$all-pages",)
INDEX_NAME = "index"


@dataclass(frozen=True)
class Section:
    """A partial content file rendered into an index page.

    Attributes:
        name: Section name (file stem without the ``_`` prefix).
        file: Path to the section's Markdown file.
    """

    name: str
    file: Path


@dataclass(frozen=True)
class Page:
    """Represents a routable page.

    Pages are recomputed from the file system on every discovery pass and are
    never mutated in place.

    Attributes:
        url: Public URL of the page (``/``-separated, relative to the output root).
        layout_file: Layout template wrapping the page, or None if none was found.
        content_file: Markdown or template content file.
        output_file: Absolute path of the compiled HTML file.
        sections: Sections of an index page.
        language: Language code taken from the content path, if any.
    """

    url: str
    layout_file: Path | None
    content_file: Path
    output_file: Path
    sections: tuple[Section, ...] = ()
    language: str | None = None


class FileContentLoader:
    """Discovers routable content files under the content root.

    Attributes:
        pages_dir: Root of the content files.
        ignore: Glob patterns relative to ``pages_dir`` that are skipped.
    """

    def __init__(self, pages_dir: Path, ignore: tuple[str, ...] = ()):
        self.pages_dir = pages_dir
        self.ignore = ignore

    def is_content_file(self, path: Path) -> bool:
        """Check whether ``path`` passes the routable-content filter.

        Args:
            path: Absolute path to check.

        Returns:
            True if the file becomes a page of its own.
        """
        try:
            rel = path.relative_to(self.pages_dir)
        except ValueError:
            return False
        if not (is_markdown(path) or is_page_template(path)):
            return False
        if is_partial(path) or is_internal_path(rel) or is_ignored(path):
            return False
        return not self._matches_ignore(rel)

    def is_section_file(self, path: Path) -> bool:
        """Check whether ``path`` is a section partial of some index page."""
        try:
            rel = path.relative_to(self.pages_dir)
        except ValueError:
            return False
        return (
            is_markdown(path)
            and is_partial(path)
            and not is_internal_path(rel)
            and not is_ignored(path)
        )

    def iter_files(self) -> list[Path]:
        """List all routable content files, sorted by path."""
        if not self.pages_dir.exists():
            return []
        return sorted(
            path
            for path in self.pages_dir.rglob("*")
            if path.is_file() and self.is_content_file(path)
        )

    def sections_of(self, content_file: Path) -> tuple[Section, ...]:
        """Collect the sections of an index page.

        Only pages named ``index`` have sections; every ``_name.md`` file next
        to them becomes the ``name`` section.
        """
        if strip_suffixes(content_file.name) != INDEX_NAME:
            return ()
        return tuple(
            Section(name=strip_suffixes(path.name)[len(PARTIAL_PREFIX) :], file=path)
            for path in sorted(content_file.parent.iterdir())
            if path.is_file() and self.is_section_file(path)
        )

    def _matches_ignore(self, rel: Path) -> bool:
        posix = rel.as_posix()
        for pattern in self.ignore:
            if fnmatch.fnmatch(posix, pattern):
                return True
            if pattern.startswith("**/") and fnmatch.fnmatch(posix, pattern[3:]):
                return True
        return False


class LayoutResolver:
    """Resolves the layout template of a content file.

    The content file's directory is mapped onto the layout tree. In that
    directory ``<name>.layout.jinja`` wins over ``index.layout.jinja``; when
    neither exists the search continues in the parent directory, up to and
    including the layouts root.

    Attributes:
        pages_dir: Root of the content files.
        layouts_dir: Root of the layout files.
    """

    def __init__(self, pages_dir: Path, layouts_dir: Path):
        self.pages_dir = pages_dir
        self.layouts_dir = layouts_dir

    def resolve(self, content_file: Path) -> Path | None:
        """Find the layout for a content file.

        Args:
            content_file: Absolute path to the content file.

        Returns:
            Path of the layout, or None when no directory up to the layouts
            root contains one.
        """
        name = strip_suffixes(content_file.name)
        rel_dir = content_file.parent.relative_to(self.pages_dir)
        directory = self.layouts_dir / rel_dir
        while True:
            for candidate in (f"{name}{LAYOUT_SUFFIX}", f"{INDEX_NAME}{LAYOUT_SUFFIX}"):
                target = directory / candidate
                if target.is_file():
                    return target
            if directory == self.layouts_dir or directory.parent == directory:
                return None
            directory = directory.parent


class OutputMapper:
    """Derives output files, URLs and languages for content files.

    A configured language code that appears as a path segment is removed from
    its place and prefixed to the output path instead, so ``uk/guide.md`` and
    ``guide/uk/intro.md`` both land under ``/uk/``.

    Attributes:
        pages_dir: Root of the content files.
        output_dir: Root of the compiled files.
        languages: Recognised language codes.
    """

    def __init__(self, pages_dir: Path, output_dir: Path, languages: tuple[str, ...] = ()):
        self.pages_dir = pages_dir
        self.output_dir = output_dir
        self.languages = languages

    def map(self, content_file: Path) -> tuple[Path, str, str | None]:
        """Map a content file onto its output location.

        Args:
            content_file: Absolute path to the content file.

        Returns:
            Tuple of (output file, URL, language code or None).
        """
        rel = content_file.relative_to(self.pages_dir)
        directories = list(rel.parts[:-1])
        language = next((part for part in directories if part in self.languages), None)
        if language is not None:
            directories.remove(language)
            directories.insert(0, language)
        filename = strip_suffixes(rel.name) + HTML_SUFFIX
        output_file = self.output_dir.joinpath(*directories, filename)
        url = "/" + output_file.relative_to(self.output_dir).as_posix()
        return output_file, url, language


class PageDiscovery:
    """Facade that discovers all pages and caches the result.

    Attributes:
        loader: Content file loader.
        layout_resolver: Layout resolver.
        output_mapper: Output path mapper.
    """

    def __init__(self, config: SiteConfig):
        self.loader = FileContentLoader(config.pages_dir, config.ignore)
        self.layout_resolver = LayoutResolver(config.pages_dir, config.layouts_dir)
        self.output_mapper = OutputMapper(
            config.pages_dir, config.output_dir, config.languages
        )

    def build_page(self, content_file: Path) -> Page:
        output_file, url, language = self.output_mapper.map(content_file)
        return Page(
            url=url,
            layout_file=self.layout_resolver.resolve(content_file),
            content_file=content_file,
            output_file=output_file,
            sections=self.loader.sections_of(content_file),
            language=language,
        )

    def discover(self, store: CacheStore) -> tuple[Page, ...]:
        """Return every routable page, memoized under ``ALL_PAGES_CHAIN``.

        A page without a layout is still returned; the compiler reports it.

        Args:
            store: Cache store of the session.

        Returns:
            Pages sorted by URL.
        """
        cached = store.get(ALL_PAGES_CHAIN)
        if cached is not None:
            return cached
        pages = tuple(
            sorted(
                (self.build_page(path) for path in self.loader.iter_files()),
                key=lambda page: page.url,
            )
        )
        store.set(ALL_PAGES_CHAIN, pages)
        return pages


def is_static_file(path: Path, config: SiteConfig) -> bool:
    """Check if a file beside the sources is published verbatim.

    Images and other files in the pages, layouts or includes directories are
    copied to their mirrored place in the output tree, so ``url("./logo.png")``
    from a page keeps working. Hidden files, ignored files and sources are not.

    Args:
        path: Absolute path of the file.
        config: Site configuration.

    Returns:
        True if the file is copied to the output directory.
    """
    if path.name.startswith(".") or is_ignored(path) or is_source_file(path):
        return False
    if is_within(path, config.output_dir):
        return False
    return any(is_within(path, directory) for directory in config.source_dirs())


def discover_pages(store: CacheStore, config: SiteConfig) -> tuple[Page, ...]:
    """Discover all pages of a site (see ``PageDiscovery.discover``)."""
    return PageDiscovery(config).discover(store)
