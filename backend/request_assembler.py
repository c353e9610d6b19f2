"""
Request Assembler - gathers everything the proxy needs for one generation.

The assembler reads only plain values (strings and the ElementContext) plus
the node references it is handed for the surrounding-copy walk. It finishes
all tree access before the caller awaits the network, so no node is held
across a suspension point.
"""

import logging
from typing import Optional

from copy_payload import RequestPayload
from design_nodes import DesignNode, ElementContext
from generation_history import HistoryEntry, HistoryStore, format_history_for_prompt
from surrounding_copy import CollectionLimits, build_surrounding_copy_block

logger = logging.getLogger(__name__)

NO_PROJECT_CONTEXT = "No project context set."
NO_ELEMENT_CONTEXT = "No element context available."
NO_HISTORY = "No previous generations stored."

ADMIN_AUDIENCE = "admin"
ADMIN_TONE = "Admin (use Trusted Partner tone: professional, caring, clear, confident)"
LEARNER_TONE = "Learner (use Motivating Mentor tone: warm, vibrant, honest, playful)"

PATH_ARROW = " → "


def resolve_audience(audience: Optional[str]) -> str:
    return ADMIN_TONE if audience == ADMIN_AUDIENCE else LEARNER_TONE


def format_element_context(element: Optional[ElementContext]) -> str:
    if element is None:
        return NO_ELEMENT_CONTEXT
    parts = []
    if element.layer_name:
        parts.append(f'Layer: "{element.layer_name}"')
    if element.component_name:
        parts.append(f'Component: "{element.component_name}"')
    if element.component_path:
        parts.append(f"Path: {PATH_ARROW.join(element.component_path)}")
    return " | ".join(parts) or NO_ELEMENT_CONTEXT


def assemble_request(
    *,
    project_context: str,
    audience: Optional[str],
    element: Optional[ElementContext],
    root: Optional[DesignNode],
    target: Optional[DesignNode],
    history: HistoryStore,
    current_text: Optional[str],
    user_request: Optional[str],
    limits: CollectionLimits = CollectionLimits(),
) -> RequestPayload:
    """Build the outbound payload for one ``generate`` trigger."""
    surrounding = build_surrounding_copy_block(root, target, limits)
    history_block = format_history_for_prompt(history.load())

    payload = RequestPayload(
        project_context=project_context or NO_PROJECT_CONTEXT,
        audience=resolve_audience(audience),
        element_context=format_element_context(element),
        surrounding_copy_context=surrounding,
        generation_history=history_block or NO_HISTORY,
        current_text=current_text or "",
        user_request=user_request or "",
    )
    logger.info(
        f"🧱 Assembled request (surrounding={len(surrounding)} chars, history={len(history_block)} chars, "
        f"audience={'admin' if audience == ADMIN_AUDIENCE else 'learner'})"
    )
    return payload


def record_generation(
    history: HistoryStore,
    element: Optional[ElementContext],
    user_request: Optional[str],
    generated_text: Optional[str],
) -> Optional[HistoryEntry]:
    """Append a HistoryEntry when a target was resolved and text came back."""
    if element is None or not generated_text:
        return None
    entry = HistoryEntry(
        layer_name=element.layer_name,
        component_path=element.component_path,
        user_request=user_request or "",
        generated_text=generated_text,
    )
    history.append(entry)
    return entry
