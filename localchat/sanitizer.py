"""Markup cleaning for user supplied text.

Two modes are supported: ``Mode.STRICT`` removes every tag (usernames, room
names and descriptions) while ``Mode.RICH`` keeps a handful of inline
formatting tags for message bodies. Emptiness after cleaning is *not* an
error here; callers decide what an empty result means.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

import nh3

from .constants import RICH_ATTRIBUTES, RICH_TAGS


class Mode(str, Enum):
    STRICT = "strict"
    RICH = "rich"


def sanitize(text: Any, mode: Mode = Mode.STRICT) -> str:
    """Return *text* with disallowed markup removed and whitespace trimmed."""
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    if mode is Mode.RICH:
        cleaned = nh3.clean(
            text,
            tags=RICH_TAGS,
            attributes=RICH_ATTRIBUTES,
            link_rel=None,
        )
    else:
        cleaned = nh3.clean(text, tags=set(), attributes={})
    return cleaned.strip()


__all__ = ["Mode", "sanitize"]
