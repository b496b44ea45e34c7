"""Quire static site generator.

Quire maps Markdown and Jinja content files onto layout templates and compiles them
to HTML. In development mode it keeps every compiled fragment in a content-addressed
cache and recompiles only the pages a file-system change actually affects.

The main entry point is the CLI module, which provides commands for scaffolding new
projects, building sites, and running the development server.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
