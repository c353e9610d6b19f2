"""
Copy Text - string helpers shared by the context collector and history log.

Everything here is pure and total: any input string and any length limit
produce a defined result.
"""

import re
from enum import Enum
from typing import Optional

ELLIPSIS = "..."

_WHITESPACE_RUN = re.compile(r"\s+")


class Relation(str, Enum):
    """How a labelled node relates to the selected text layer."""
    ANCESTOR = "Ancestor"
    SIBLING = "Sibling"


def normalize(text: Optional[str]) -> str:
    """Collapse whitespace runs to a single space and strip both ends."""
    if not text:
        return ""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def truncate(text: str, max_len: int) -> str:
    """Bound ``text`` to ``max_len`` characters.

    When truncation happens and there is room for it, the last three
    characters become an ellipsis so the result is exactly ``max_len`` long.
    """
    if max_len <= 0:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= len(ELLIPSIS):
        return text[:max_len]
    return text[: max_len - len(ELLIPSIS)] + ELLIPSIS


def format_kind(kind: str) -> str:
    """Render a node type tag (e.g. ``COMPONENT_SET``) as ``Component Set``."""
    words = (kind or "").lower().replace("_", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def format_label(node, level: int, relation: Relation) -> str:
    label = f"Level {level} • {relation.value} {format_kind(node.kind)}"
    name = getattr(node, "name", None)
    if name:
        label += f' "{name}"'
    return label
