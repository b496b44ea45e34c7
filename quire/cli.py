"""Command-line interface for Quire.

This module defines the CLI commands using Click framework.

Commands:
- new: Scaffold a new Quire project.
- create page / create include: Add a page (and a layout when none applies)
  or an include to the current project.
- build: Build the site into the output directory.
- serve: Run development server with incremental rebuilds and live reload.
- preview: Build for production and serve the output directory as is.
"""

from __future__ import annotations

import re
from pathlib import Path

import click

from . import __version__
from .config import CONFIG_FILENAME, load_config
from .content import LayoutResolver
from .errors import BuildError, IncludeNotFoundError
from .utils import LAYOUT_SUFFIX, MD_SUFFIX, TEMPLATE_SUFFIX, display_path, echo_warning

_SCAFFOLD = {
    CONFIG_FILENAME: """\
directories:
  pages: pages
  includes: includes
  output: output
languages: []
ignore: []
port: 4000
app_settings:
  site_name: {name}
""",
    "pages/index.layout.jinja": """\
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
</head>
<body>
  {{{{ include('header') }}}}
  <main>{{{{ page.content }}}}</main>
</body>
</html>
""",
    "includes/header.jinja": """\
<header>
  <a href="/index.html">{{{{ app_settings.site_name }}}}</a>
  <nav>
  {{% for item in pages %}}
    <a href="{{{{ item.url }}}}">{{{{ item.url }}}}</a>
  {{% endfor %}}
  </nav>
</header>
""",
    "pages/index.md": """\
---
title: {name}
description: A site built with Quire.
---

# Welcome to {name}

Edit `pages/index.md` and run `quire serve`.
""",
}

_PAGE = """\
---
title: {title}
---

# {title}
"""

_PAGE_LAYOUT = """\
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
</head>
<body>
  <main>{{ page.content }}</main>
</body>
</html>
"""

_INCLUDE = """\
{{# Rendered by include('{name}'); data passed to it is available here. #}}
<div class="{css_class}">
</div>
"""


@click.group()
@click.version_option(version=__version__, prog_name="quire")
def cli():
    """Quire static site generator."""


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new Quire project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Quire site created at {target}")


@cli.group()
def create():
    """Add pages and includes to the current project."""


@create.command("page")
@click.argument("name")
def create_page(name: str):
    """Create a Markdown page, plus a layout when none applies to it.

    NAME is relative to the pages directory, e.g. ``docs/intro``.
    """
    config = load_config(Path.cwd())
    project_root = config.project_root
    content_file = config.pages_dir / f"{_relative_name(name, MD_SUFFIX)}{MD_SUFFIX}"
    if content_file.exists():
        echo_warning(f"{display_path(content_file, project_root)} already exists. Skipping...")
        return
    _write_new(content_file, _PAGE.format(title=_titleize(content_file.stem)), project_root)

    if LayoutResolver(config.pages_dir, config.layouts_dir).resolve(content_file) is None:
        rel_dir = content_file.parent.relative_to(config.pages_dir)
        layout = config.layouts_dir / rel_dir / f"{content_file.stem}{LAYOUT_SUFFIX}"
        _write_new(layout, _PAGE_LAYOUT, project_root)


@create.command("include")
@click.argument("name")
def create_include(name: str):
    """Create an include template.

    NAME is relative to the includes directory, e.g. ``cards/post``.
    """
    config = load_config(Path.cwd())
    project_root = config.project_root
    rel_name = _relative_name(name, TEMPLATE_SUFFIX)
    include_file = config.includes_dir / f"{rel_name}{TEMPLATE_SUFFIX}"
    if include_file.exists():
        echo_warning(f"{display_path(include_file, project_root)} already exists. Skipping...")
        return
    source = _INCLUDE.format(name=rel_name, css_class=Path(rel_name).name)
    _write_new(include_file, source, project_root)


@cli.command()
@click.option("--dev", is_flag=True, help="Build in development mode (include drafts)")
def build(dev: bool):
    """Build the site into the output directory."""
    result = _build_or_exit(Path.cwd(), development=dev)
    click.echo(f"Built {len(result.written)} pages into {result.output_dir}")
    if result.skipped:
        click.echo(f"Skipped {len(result.skipped)} pages (drafts or missing layouts)")


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides quire.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides quire.yaml ws_port)",
)
def serve(port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(project_root, http_port=port, ws_port=ws_port)
    try:
        server.start()
    except (BuildError, IncludeNotFoundError) as exc:
        _report_failure(project_root, exc)
        raise SystemExit(1) from None


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to serve the built site on (overrides quire.yaml)",
)
def preview(port: int | None):
    """Build for production and serve the output without watching."""
    project_root = Path.cwd()
    from .server import serve_output

    result = _build_or_exit(project_root)
    click.echo(f"Built {len(result.written)} pages into {result.output_dir}")
    serve_output(result.output_dir, port or load_config(project_root).port)


def _build_or_exit(project_root: Path, development: bool = False):
    from .build import build_site

    try:
        return build_site(project_root, development=development)
    except (BuildError, IncludeNotFoundError) as exc:
        _report_failure(project_root, exc)
        raise SystemExit(1) from None


def _relative_name(name: str, suffix: str) -> str:
    """Normalize a NAME argument to a ``/``-separated name without ``suffix``.

    Raises:
        click.BadParameter: If the name is empty, absolute or leaves its
            directory through ``..``.
    """
    if name.endswith(suffix):
        name = name[: -len(suffix)]
    path = Path(name)
    if not path.parts or path.is_absolute() or ".." in path.parts:
        raise click.BadParameter(f"{name!r} must be a relative name such as docs/intro")
    return path.as_posix()


def _titleize(slug: str) -> str:
    return re.sub(r"[-_]+", " ", slug).strip().title()


def _write_new(path: Path, text: str, project_root: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    click.echo(f"Created {display_path(path, project_root)}")


def _report_failure(project_root: Path, exc: BuildError | IncludeNotFoundError) -> None:
    """Print a build failure in the console's error style."""
    if isinstance(exc, BuildError):
        source, message = exc.source_path, exc.message
    else:
        source, message = exc.including_file, str(exc)
    try:
        shown = source.relative_to(project_root)
    except ValueError:
        shown = source
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {shown}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the directory structure and files for a new Quire project.

    Args:
        root: Root directory for the new project.
    """
    for rel_path, template in _SCAFFOLD.items():
        dest_path = root / rel_path
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_text(template.format(name=root.name), encoding="utf-8")
    (root / "assets").mkdir(exist_ok=True)
