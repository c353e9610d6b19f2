"""
Surrounding Copy - bounded walk over the design tree around the selected text.

Starting at the selected layer's parent, the collector climbs one ancestor per
level. At each level it scans the ancestor's subtree (minus the branch it just
came up from) and then the ancestor's siblings, gathering the text of every
text layer it meets. Snippets are deduplicated across the whole walk and held
to a per-level count and a shared total-character budget; the walk stops the
moment the character budget runs out.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from copy_text import Relation, format_label, normalize, truncate
from design_nodes import DesignNode, is_stop_node, is_text_node

logger = logging.getLogger(__name__)

NO_NEARBY_COPY = "No nearby copy detected."


@dataclass(frozen=True)
class CollectionLimits:
    max_levels: int = 4
    per_level_limit: int = 10
    total_char_limit: int = 1200
    max_snippet_length: int = 160


@dataclass
class CollectionBudget:
    """Counters threaded through one walk.

    ``level_count`` is reset at every ancestor level; ``total_chars`` only grows.
    """

    per_level_limit: int
    total_limit: int
    level_count: int = 0
    total_chars: int = 0

    @property
    def remaining(self) -> int:
        return self.total_limit - self.total_chars

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    @property
    def level_full(self) -> bool:
        return self.level_count >= self.per_level_limit

    def start_level(self) -> None:
        self.level_count = 0


@dataclass
class _Collection:
    budget: CollectionBudget
    max_snippet_length: int
    seen: Set[str] = field(default_factory=set)
    snippets: List[str] = field(default_factory=list)

    def should_stop(self) -> bool:
        return self.budget.exhausted or self.budget.level_full

    def offer(self, text: Optional[str], label: str) -> None:
        normalized = normalize(text)
        if not normalized or normalized in self.seen:
            return
        remaining = self.budget.remaining
        if remaining <= 0:
            return
        snippet = truncate(normalized, min(self.max_snippet_length, remaining))
        if not snippet:
            return
        self.seen.add(normalized)
        self.snippets.append(f'{label}: "{snippet}"')
        self.budget.level_count += 1
        self.budget.total_chars += len(snippet)


def _walk_subtree(node: DesignNode, label: str, collection: _Collection,
                  skip: Optional[DesignNode] = None) -> None:
    if collection.should_stop():
        return
    if is_text_node(node):
        collection.offer(node.text, label)
        return
    for child in node.children or ():
        if child is skip:
            continue
        if collection.should_stop():
            return
        _walk_subtree(child, label, collection)


def collect_surrounding_copy(
    root: Optional[DesignNode],
    start: DesignNode,
    max_levels: int = CollectionLimits.max_levels,
    per_level_limit: int = CollectionLimits.per_level_limit,
    total_char_limit: int = CollectionLimits.total_char_limit,
    max_snippet_length: int = CollectionLimits.max_snippet_length,
) -> List[str]:
    """Return labelled snippets of the copy around ``start``.

    Never returns an empty list: when nothing is found the result is
    ``[NO_NEARBY_COPY]``.
    """
    collection = _Collection(
        budget=CollectionBudget(per_level_limit=per_level_limit, total_limit=total_char_limit),
        max_snippet_length=max_snippet_length,
    )

    came_from = start
    ancestor = start.parent
    level = 0
    while ancestor is not None and level < max_levels and not collection.budget.exhausted:
        if ancestor is root or is_stop_node(ancestor):
            break
        level += 1
        collection.budget.start_level()

        _walk_subtree(ancestor, format_label(ancestor, level, Relation.ANCESTOR), collection, skip=came_from)

        parent = ancestor.parent
        for sibling in (parent.children if parent is not None else ()):
            if sibling is ancestor:
                continue
            if collection.should_stop():
                break
            _walk_subtree(sibling, format_label(sibling, level, Relation.SIBLING), collection)

        came_from = ancestor
        ancestor = parent

    logger.debug(
        f"🔎 Surrounding copy: {len(collection.snippets)} snippet(s) over {level} level(s), "
        f"{collection.budget.total_chars}/{total_char_limit} chars"
    )
    return collection.snippets or [NO_NEARBY_COPY]


def build_surrounding_copy_block(root: Optional[DesignNode], start: Optional[DesignNode],
                                 limits: CollectionLimits = CollectionLimits()) -> str:
    """Newline-joined snippets for the prompt; the sentinel when no node is selected."""
    if start is None:
        return NO_NEARBY_COPY
    snippets = collect_surrounding_copy(
        root,
        start,
        max_levels=limits.max_levels,
        per_level_limit=limits.per_level_limit,
        total_char_limit=limits.total_char_limit,
        max_snippet_length=limits.max_snippet_length,
    )
    return "\n".join(snippets)
