"""Front matter handling for Quire.

A Markdown content file may start with a YAML block between ``---`` markers.
That block is split off the body, parsed, and validated against a schema of
known optional keys. Validation problems are reported but never block a build:
the attributes are used exactly as parsed.

Key functions:
- split_front_matter: Separate the raw front matter from the body.
- parse_front_matter: Parse raw front matter into an attribute map.
- validate_front_matter: Check attributes against the schema.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

FRONT_MATTER_RE = re.compile(r"^\s*---[ \t]*\n(.*?\n)?---[ \t]*(?:\n|$)", re.DOTALL)
# Single-line form: ``--- draft: true ---``
INLINE_FRONT_MATTER_RE = re.compile(r"^\s*---[ \t]+([^\n]*?)[ \t]+---[ \t]*(?:\n|$)")


class FrontMatter(BaseModel):
    """Schema of the known front matter keys.

    Attributes:
        title: Page title; becomes ``<title>`` and ``og:title``.
        description: Page description; becomes ``description`` and ``og:description``.
        keywords: Keywords of the page.
        image: Absolute URL of the cover image (``og:image``).
        author: Name of the page's author.
        language: Language code; becomes ``og:locale`` and the ``lang`` attribute.
        draft: Draft pages are built in development mode only.
        last_updated: ISO date of the last update.
    """

    model_config = ConfigDict(extra="allow", strict=True)

    title: str | None = None
    description: str | None = None
    keywords: list[str] | None = None
    image: str | None = None
    author: str | None = None
    language: str | None = None
    draft: bool | None = None
    last_updated: datetime | date | str | None = None

    @field_validator("image")
    @classmethod
    def _absolute_url(cls, value: str | None) -> str | None:
        if value is not None:
            parsed = urlparse(value)
            if not (parsed.scheme and parsed.netloc):
                raise ValueError("must be an absolute URL")
        return value

    @field_validator("last_updated")
    @classmethod
    def _iso_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value)
            except ValueError:
                raise ValueError("must be an ISO 8601 date") from None
        return value


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Separate a leading front matter block from the content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (raw front matter or None, body).
    """
    match = FRONT_MATTER_RE.match(text) or INLINE_FRONT_MATTER_RE.match(text)
    if not match:
        return None, text
    return (match.group(1) or "").strip(), text[match.end() :].strip()


def parse_front_matter(raw: str) -> dict[str, Any] | None:
    """Parse raw front matter text.

    Args:
        raw: YAML text without the ``---`` markers.

    Returns:
        Attribute map, or None if the text is not a YAML mapping.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError:
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def validate_front_matter(attributes: dict[str, Any]) -> list[str]:
    """Validate attributes against the front matter schema.

    Args:
        attributes: Parsed front matter.

    Returns:
        One message per violation; an empty list means valid.
    """
    try:
        FrontMatter.model_validate(attributes)
    except ValidationError as exc:
        return [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
    return []
