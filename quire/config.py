"""Site configuration for Quire.

Configuration is read from ``quire.yaml`` at the project root and merged over
``DEFAULT_CONFIG``. Directory values are resolved against the project root, so
the rest of the code base only ever sees absolute paths.

Key functions:
- load_config: Load and resolve the configuration of a project.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "quire.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "directories": {
        "pages": "pages",
        "layouts": None,
        "includes": "includes",
        "output": "output",
        "assets": "assets",
    },
    "languages": [],
    "ignore": [],
    "port": 4000,
    "ws_port": None,
    "app_settings": {},
}


@dataclass(frozen=True)
class SiteConfig:
    """Resolved site configuration.

    Attributes:
        project_root: Root directory of the project.
        pages_dir: Root of the content files.
        layouts_dir: Root of the layout files (defaults to ``pages_dir``).
        includes_dir: Directory that bare include names resolve against.
        output_dir: Directory where compiled pages are written.
        assets_dir: Static files copied verbatim to ``output_dir/assets``.
        languages: Language codes recognised as path segments.
        ignore: Glob patterns, relative to ``pages_dir``, that never become pages.
        port: HTTP port of the development server.
        ws_port: Port of the live reload websocket server.
        app_settings: Free-form values exposed to every template.
    """

    project_root: Path
    pages_dir: Path
    layouts_dir: Path
    includes_dir: Path
    output_dir: Path
    assets_dir: Path
    languages: tuple[str, ...] = ()
    ignore: tuple[str, ...] = ()
    port: int = 4000
    ws_port: int = 4001
    app_settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, project_root: Path, values: dict[str, Any]) -> SiteConfig:
        """Build a configuration from raw (already merged) values.

        Args:
            project_root: Root directory of the project.
            values: Mapping shaped like ``DEFAULT_CONFIG``.

        Returns:
            SiteConfig with every directory resolved.
        """
        root = project_root.resolve()
        directories = values.get("directories") or {}
        pages = root / directories.get("pages", "pages")
        layouts = root / directories["layouts"] if directories.get("layouts") else pages
        port = int(values.get("port") or 4000)
        ws_port = values.get("ws_port")
        return cls(
            project_root=root,
            pages_dir=pages.resolve(),
            layouts_dir=layouts.resolve(),
            includes_dir=(root / directories.get("includes", "includes")).resolve(),
            output_dir=(root / directories.get("output", "output")).resolve(),
            assets_dir=(root / directories.get("assets", "assets")).resolve(),
            languages=tuple(str(code) for code in values.get("languages") or ()),
            ignore=tuple(str(pattern) for pattern in values.get("ignore") or ()),
            port=port,
            ws_port=int(ws_port) if ws_port is not None else port + 1,
            app_settings=dict(values.get("app_settings") or {}),
        )

    def mirror(self, path: Path) -> Path | None:
        """Place of a project file in the output tree.

        The output tree mirrors the project root: ``<root>/assets/x.css``
        lands in ``<output>/assets/x.css``.

        Returns:
            The output path, or None for files outside the project.
        """
        try:
            return self.output_dir / path.relative_to(self.project_root)
        except ValueError:
            return None

    def source_dirs(self) -> tuple[Path, ...]:
        """Directories holding pages, layouts and includes, without duplicates."""
        return tuple(dict.fromkeys((self.pages_dir, self.layouts_dir, self.includes_dir)))


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(project_root: Path) -> SiteConfig:
    """Load site configuration from quire.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        SiteConfig with defaults applied.
    """
    config_path = project_root / CONFIG_FILENAME
    values = copy.deepcopy(DEFAULT_CONFIG)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                values = _merge(values, loaded)
    return SiteConfig.from_mapping(project_root, values)
