"""HTML post-processing for Quire.

Compiled layouts are handed to a post-processor before the final HTML is
cached. The default one injects the page's front matter as metadata.

Functions:
    escape_html: Escape special HTML characters in a string.
    meta_tags: Build the ``<head>`` tags for a front matter mapping.
    set_html_lang: Set the ``lang`` attribute of the ``<html>`` element.

Classes:
    MetaPostProcessor: Default post-processor.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html\b(?P<attrs>[^>]*)>", re.IGNORECASE)
_LANG_ATTR_RE = re.compile(r"""\s+lang\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &quot;Jerry&quot;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _meta(attr: str, key: str, value: Any) -> str:
    return f'<meta {attr}="{key}" content="{escape_html(str(value))}">'


def meta_tags(front_matter: Mapping[str, Any]) -> list[str]:
    """Build head tags for the known front matter keys.

    Args:
        front_matter: Parsed front matter.

    Returns:
        Tags in a stable order; keys that are missing or empty are skipped.
    """
    tags: list[str] = []
    title = front_matter.get("title")
    if title:
        tags.append(f"<title>{escape_html(str(title))}</title>")
        tags.append(_meta("property", "og:title", title))
    description = front_matter.get("description")
    if description:
        tags.append(_meta("name", "description", description))
        tags.append(_meta("property", "og:description", description))
    image = front_matter.get("image")
    if image:
        tags.append(_meta("property", "og:image", image))
    keywords = front_matter.get("keywords")
    if keywords:
        if isinstance(keywords, (list, tuple)):
            keywords = ", ".join(str(keyword) for keyword in keywords)
        tags.append(_meta("name", "keywords", keywords))
    author = front_matter.get("author")
    if author:
        tags.append(_meta("name", "author", author))
    language = front_matter.get("language")
    if language:
        tags.append(_meta("property", "og:locale", language))
    return tags


def set_html_lang(html: str, language: str) -> str:
    """Set ``lang`` on the ``<html>`` element, replacing an existing value.

    Other attributes of the element are kept. Documents without an ``<html>``
    element are returned unchanged.

    Examples:
        >>> set_html_lang('<html class="x" lang="en"><body></body></html>', "uk")
        '<html class="x" lang="uk"><body></body></html>'
    """

    def repl(match: re.Match) -> str:
        attrs = _LANG_ATTR_RE.sub("", match.group("attrs"))
        trailing = ""
        if attrs.rstrip().endswith("/"):
            attrs, trailing = attrs.rstrip()[:-1], "/"
        return f'<html{attrs.rstrip()} lang="{escape_html(language)}"{trailing}>'

    return _HTML_OPEN_RE.sub(repl, html, count=1)


class MetaPostProcessor:
    """Injects front matter metadata into compiled pages.

    Tags are inserted right before ``</head>``; a page without a head only gets
    its ``lang`` attribute.
    """

    def process(self, html: str, front_matter: Mapping[str, Any] | None) -> str:
        if not front_matter:
            return html
        tags = meta_tags(front_matter)
        if tags:
            match = _HEAD_CLOSE_RE.search(html)
            if match:
                html = html[: match.start()] + "".join(tags) + html[match.start() :]
        language = front_matter.get("language")
        if language:
            html = set_html_lang(html, str(language))
        return html
