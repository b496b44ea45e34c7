"""Template and Markdown renderers for Quire.

Key classes:
- JinjaTemplateRenderer: Renders template sources with an async Jinja2 environment.
- MistuneMarkdownRenderer: Renders Markdown to HTML with heading ids and
  Pygments highlighting.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import mistune
from jinja2 import Environment, select_autoescape


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = text.lower().strip()
    slug = re.sub(r"<[^>]+>", "", slug)
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading anchors and syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, unique ID.

        Args:
            text: Heading text content.
            level: Heading level (1-6).
            **attrs: Additional attributes.

        Returns:
            HTML heading tag with id attribute.
        """
        base_id = _generate_heading_id(text)

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        if info:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            try:
                lexer = get_lexer_by_name(info.split()[0], stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MistuneMarkdownRenderer:
    """Renders Markdown content to HTML."""

    plugins = ["strikethrough", "footnotes", "table", "url"]

    def render(self, source: str) -> str:
        """Render Markdown source to HTML.

        A fresh mistune instance is used per call so heading ids never leak
        between documents.

        Args:
            source: Markdown source content.

        Returns:
            Rendered HTML.
        """
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=self.plugins
        )
        return markdown(source)


class JinjaTemplateRenderer:
    """Renders template sources through an async Jinja2 environment.

    Functions in the render context may be coroutines (``include`` is one);
    the async environment awaits their results automatically, so templates
    write ``{{ include('header') }}``.

    Attributes:
        env: Jinja2 environment.
    """

    def __init__(self, env: Environment | None = None):
        self.env = env or Environment(
            autoescape=select_autoescape(["html", "xml"]),
            enable_async=True,
        )

    async def render(
        self, source: str, context: Mapping[str, Any], filename: Path
    ) -> str:
        """Render a template string.

        Args:
            source: Template source text.
            context: Variables available in the template.
            filename: File the source was read from; shown in tracebacks.

        Returns:
            Rendered string.
        """
        code = self.env.compile(source, filename=str(filename))
        template = self.env.template_class.from_code(
            self.env, code, self.env.make_globals(None), None
        )
        return await template.render_async(**context)
