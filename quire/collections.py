"""Read-only page views exposed to templates.

Templates never see the Page value objects themselves. They get ``pages``, a
PageCollection of PageInfo snapshots, and ``page``, a CurrentPage that carries the
compiled content and sections only while the page's own layout is rendering.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from markupsafe import Markup

from .content import Page
from .utils import HTML_SUFFIX


@dataclass(frozen=True)
class SectionLink:
    name: str
    url: str


@dataclass(frozen=True)
class PageInfo:
    """Public metadata of a page for listings.

    Attributes:
        url: Page URL.
        language: Language code of the page, or None.
        sections: Links to the page's sections (``<url>#<name>``).
    """

    url: str
    language: str | None
    sections: tuple[SectionLink, ...] = ()

    @classmethod
    def of(cls, page: Page) -> PageInfo:
        return cls(
            url=page.url,
            language=page.language,
            sections=tuple(
                SectionLink(name=section.name, url=f"{page.url}#{section.name}")
                for section in page.sections
            ),
        )


@dataclass(frozen=True)
class CurrentPage:
    """The page being compiled, as seen by a template.

    ``content`` and ``sections`` are only populated for the page's layout
    file; nested includes see the URL and language alone.
    """

    url: str
    language: str | None
    content: Markup | None = None
    sections: Mapping[str, Markup] | None = field(default=None)

    @classmethod
    def of(
        cls,
        page: Page,
        content: str | None = None,
        sections: Mapping[str, str] | None = None,
    ) -> CurrentPage:
        return cls(
            url=page.url,
            language=page.language,
            content=Markup(content) if content is not None else None,
            sections=(
                MappingProxyType({k: Markup(v) for k, v in sections.items()})
                if sections is not None
                else None
            ),
        )


def _base_of(url: str) -> str:
    base = url.rstrip("/")
    if base.endswith("/index" + HTML_SUFFIX):
        return base[: -len("/index" + HTML_SUFFIX)]
    if base.endswith(HTML_SUFFIX):
        return base[: -len(HTML_SUFFIX)]
    return base


class PageCollection(Sequence[PageInfo]):
    """Lightweight helper for working with lists of pages in templates."""

    def __init__(self, pages: Iterable[PageInfo]):
        self._pages = list(pages)

    @classmethod
    def of(cls, pages: Iterable[Page]) -> PageCollection:
        return cls(PageInfo.of(page) for page in pages)

    def __iter__(self) -> Iterator[PageInfo]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def urls(self) -> list[str]:
        return [page.url for page in self._pages]

    def in_language(self, language: str | None) -> PageCollection:
        return PageCollection(p for p in self._pages if p.language == language)

    def subpages_of(self, url: str, direct: bool = False) -> PageCollection:
        """Return the pages nested under ``url``.

        ``/docs.html``, ``/docs/`` and ``/docs/index.html`` all denote the
        ``/docs`` subtree. With ``direct=True`` only the immediate children are
        kept: files right under the directory and index pages of its
        subdirectories.

        Args:
            url: URL of the parent page.
            direct: Whether to limit the result to direct children.

        Returns:
            A new PageCollection.
        """
        prefix = _base_of(url) + "/"

        def is_child(page: PageInfo) -> bool:
            if page.url == url or not page.url.startswith(prefix):
                return False
            rest = page.url[len(prefix) :]
            if rest == "index" + HTML_SUFFIX:
                return False
            if not direct:
                return True
            segments = rest.split("/")
            return len(segments) == 1 or (
                len(segments) == 2 and segments[1] == "index" + HTML_SUFFIX
            )

        return PageCollection(p for p in self._pages if is_child(p))

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"
