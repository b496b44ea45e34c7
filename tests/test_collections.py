from pathlib import Path

import pytest
from markupsafe import Markup

from quire.collections import CurrentPage, PageCollection, PageInfo, SectionLink
from quire.content import Page, Section


def make_page(url, language=None, sections=()):
    rel = url.lstrip("/")
    return Page(
        url=url,
        layout_file=Path("/site/pages/index.layout.jinja"),
        content_file=Path("/site/pages") / rel.replace(".html", ".md"),
        output_file=Path("/site/output") / rel,
        sections=tuple(Section(name, Path(f"/site/pages/_{name}.md")) for name in sections),
        language=language,
    )


def site_pages():
    return PageCollection.of(
        [
            make_page("/index.html", sections=("intro",)),
            make_page("/docs.html"),
            make_page("/docs/index.html"),
            make_page("/docs/install.html"),
            make_page("/docs/api/index.html"),
            make_page("/docs/api/client.html"),
            make_page("/uk/docs/install.html", language="uk"),
        ]
    )


def test_page_info_exposes_section_links():
    info = PageInfo.of(make_page("/index.html", sections=("intro", "usage")))
    assert info.url == "/index.html"
    assert info.sections == (
        SectionLink("intro", "/index.html#intro"),
        SectionLink("usage", "/index.html#usage"),
    )


def test_collection_is_a_sequence():
    pages = site_pages()
    assert len(pages) == 7
    assert pages[0].url == "/index.html"
    assert pages.urls()[-1] == "/uk/docs/install.html"


def test_subpages_of_a_directory_page():
    pages = site_pages()
    assert pages.subpages_of("/docs.html").urls() == [
        "/docs/install.html",
        "/docs/api/index.html",
        "/docs/api/client.html",
    ]
    assert pages.subpages_of("/docs/index.html").urls() == pages.subpages_of("/docs/").urls()


def test_direct_subpages_only():
    pages = site_pages()
    assert pages.subpages_of("/docs.html", direct=True).urls() == [
        "/docs/install.html",
        "/docs/api/index.html",
    ]


def test_in_language():
    pages = site_pages()
    assert pages.in_language("uk").urls() == ["/uk/docs/install.html"]
    assert len(pages.in_language(None)) == 6


def test_current_page_content_is_markup():
    page = make_page("/index.html", sections=("intro",))
    current = CurrentPage.of(page, "<p>x</p>", {"intro": "<p>i</p>"})
    assert isinstance(current.content, Markup)
    assert current.sections["intro"] == Markup("<p>i</p>")
    with pytest.raises(TypeError):
        current.sections["other"] = "x"

    bare = CurrentPage.of(page)
    assert bare.content is None
    assert bare.sections is None
