"""Utility functions for Quire.

This module contains the file classification predicates shared by page discovery
and the rebuild orchestrator, a few path helpers, and the console reporting
helpers used for diagnostics.

Key functions:
    is_markdown: Check if a path is a Markdown file.
    is_page_template: Check if a path is a template-only content page.
    is_layout: Check if a path is a layout template.
    is_partial: Check if a path is a partial/section file.
    is_ignored: Check if a path is an editor artifact or a repository meta file.
    strip_suffixes: Remove a content or layout suffix from a file name.
    ensure_clean_dir: Ensure a directory exists and is empty.
    display_path: Render a path relative to the project root for messages.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

import click

MD_SUFFIX = ".md"
HTML_SUFFIX = ".html"
TEMPLATE_SUFFIX = ".jinja"
PAGE_TEMPLATE_SUFFIX = HTML_SUFFIX + TEMPLATE_SUFFIX
LAYOUT_SUFFIX = ".layout" + TEMPLATE_SUFFIX
PARTIAL_PREFIX = "_"

# Vim swap files
_IGNORE_RES = (re.compile(r"\.sw[po]$"),)
_META_FILES = {"readme.md", "license.md"}
_PYTHON_SUFFIXES = (".py", ".pyc")


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has .md extension (case-insensitive).
    """
    return path.suffix.lower() == MD_SUFFIX


def is_layout(path: Path) -> bool:
    """Check if a path is a layout template (``*.layout.jinja``)."""
    return path.name.endswith(LAYOUT_SUFFIX)


def is_page_template(path: Path) -> bool:
    """Check if a path is a template-only content page.

    Matches ``.html.jinja`` files, which are rendered through the template
    renderer only, without a Markdown pass.

    Args:
        path: Path to check.

    Returns:
        True if the file is a template content page.
    """
    return path.name.endswith(PAGE_TEMPLATE_SUFFIX)


def is_template(path: Path) -> bool:
    """Check if a path is any Jinja template (layout, page or include)."""
    return path.suffix == TEMPLATE_SUFFIX


def is_partial(path: Path) -> bool:
    """Check if a path names a partial file (``_`` prefixed name)."""
    return path.name.startswith(PARTIAL_PREFIX)


def is_internal_path(path: Path) -> bool:
    """Check if any directory component of a path starts with ``_``.

    Args:
        path: Path relative to the content root.

    Returns:
        True if a parent directory is internal.
    """
    return any(part.startswith(PARTIAL_PREFIX) for part in path.parts[:-1])


def is_ignored(path: Path) -> bool:
    """Check if a path is an editor artifact or a repository meta file.

    Swap files are never interesting, and ``readme.md``/``license.md`` describe
    the repository rather than the site.

    Args:
        path: Path to check.

    Returns:
        True if the file should never become a page.
    """
    if path.name.lower() in _META_FILES:
        return True
    return any(regexp.search(path.name) for regexp in _IGNORE_RES)


def is_source_file(path: Path) -> bool:
    """Check if a path is compiled or imported rather than published as is.

    Markdown, templates and Python modules loaded with ``require`` (with their
    bytecode caches) are sources; everything else next to them is static.
    """
    if is_markdown(path) or is_template(path):
        return True
    return path.suffix in _PYTHON_SUFFIXES or "__pycache__" in path.parts


def strip_suffixes(name: str) -> str:
    """Remove a layout, page-template or Markdown suffix from a file name.

    Examples:
        >>> strip_suffixes("guide.md")
        'guide'

        >>> strip_suffixes("index.layout.jinja")
        'index'
    """
    for suffix in (LAYOUT_SUFFIX, PAGE_TEMPLATE_SUFFIX, TEMPLATE_SUFFIX, MD_SUFFIX):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
    path.mkdir(parents=True, exist_ok=True)


def display_path(path: Path | str, root: Path | None = None) -> str:
    """Render a path for console messages.

    Paths under ``root`` (the current directory by default) are shown relative
    to it with a leading ``~``; other paths are shown unchanged.
    """
    path = Path(path)
    base = root or Path.cwd()
    try:
        return "~/" + path.relative_to(base).as_posix()
    except ValueError:
        return str(path)


def echo_error(message: str, path: Path | str | None = None) -> None:
    """Print an error diagnostic to stderr."""
    click.echo(click.style(message, fg="red", bold=True), err=True)
    if path is not None:
        click.echo(click.style(f"  File: {display_path(path)}", fg="yellow"), err=True)


def echo_warning(message: str) -> None:
    """Print a warning diagnostic to stderr."""
    click.echo(click.style(message, fg="yellow"), err=True)


def echo_info(message: str) -> None:
    click.echo(message)


def is_within(path: Path, directory: Path) -> bool:
    """Check if ``path`` is ``directory`` or lies below it."""
    try:
        path.relative_to(directory)
    except ValueError:
        return False
    return True
