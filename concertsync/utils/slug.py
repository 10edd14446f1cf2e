"""URL-safe slug generation for canonical records."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def create_slug(value: str | None) -> str:
    """Lower-case ``value`` and collapse non alphanumeric runs into ``-``."""

    if not value:
        return ""
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


__all__ = ["create_slug"]
