"""
Design Nodes - read-only view of the Figma node tree.

The plugin serializes the current page into JSON (``get_selection_snapshot``);
this module rebuilds it as ``SnapshotNode`` objects with parent
back-references so the context collector can walk up and across the tree.
Nothing here mutates the tree, and node objects must not be kept across an
``await``: copy what you need into an ``ElementContext`` first.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

TEXT_KIND = "TEXT"
STOP_KINDS = ("PAGE", "DOCUMENT")
COMPONENT_KINDS = ("COMPONENT", "INSTANCE")


class DesignNode(Protocol):
    """Navigational interface the collector relies on."""

    @property
    def kind(self) -> str: ...

    @property
    def name(self) -> Optional[str]: ...

    @property
    def text(self) -> Optional[str]: ...

    @property
    def children(self) -> Sequence["DesignNode"]: ...

    @property
    def parent(self) -> Optional["DesignNode"]: ...


@dataclass(eq=False)
class SnapshotNode:
    """A node rebuilt from the plugin's JSON snapshot."""

    id: str
    kind: str
    name: Optional[str] = None
    text: Optional[str] = None
    children: List["SnapshotNode"] = field(default_factory=list)
    parent: Optional["SnapshotNode"] = field(default=None, repr=False)

    def is_text(self) -> bool:
        return is_text_node(self)


def is_text_node(node: Any) -> bool:
    return str(getattr(node, "kind", "") or "").upper() == TEXT_KIND


def is_stop_node(node: Any) -> bool:
    return str(getattr(node, "kind", "") or "").upper() in STOP_KINDS


def node_from_dict(data: Dict[str, Any], parent: Optional[SnapshotNode] = None) -> SnapshotNode:
    """Build a SnapshotNode tree from the plugin's ``{id, type, name, characters, children}`` shape."""
    kind = str(data.get("type") or data.get("kind") or "UNKNOWN")
    text = data.get("characters")
    if text is None:
        text = data.get("text")
    node = SnapshotNode(
        id=str(data.get("id") or ""),
        kind=kind,
        name=data.get("name") or None,
        text=text if isinstance(text, str) else None,
        parent=parent,
    )
    for child in data.get("children") or []:
        if isinstance(child, dict):
            node.children.append(node_from_dict(child, parent=node))
    return node


def find_node(root: SnapshotNode, node_id: str) -> Optional[SnapshotNode]:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.id == node_id:
            return node
        stack.extend(reversed(node.children))
    return None


@dataclass(frozen=True)
class ElementContext:
    """Plain-string description of where the selected text layer sits."""

    layer_name: str
    component_name: Optional[str]
    component_path: Tuple[str, ...] = ()

    def to_message(self) -> Dict[str, Any]:
        return {
            "layerName": self.layer_name,
            "componentName": self.component_name,
            "componentPath": list(self.component_path),
        }


def resolve_element_context(node: Optional[DesignNode]) -> Optional[ElementContext]:
    """Collect the layer name, nearest component and the named-container path.

    Components, instances and named frames between the text node and the page
    contribute to the path, ordered outer to inner.
    """
    if node is None or not is_text_node(node):
        return None

    path: List[str] = []
    component_name: Optional[str] = None
    current = node.parent
    while current is not None and not is_stop_node(current):
        kind = str(current.kind or "").upper()
        if kind in COMPONENT_KINDS:
            if component_name is None and current.name:
                component_name = current.name
            if current.name:
                path.insert(0, current.name)
        elif kind == "FRAME" and current.name:
            path.insert(0, current.name)
        current = current.parent

    return ElementContext(
        layer_name=node.name or "",
        component_name=component_name,
        component_path=tuple(path),
    )


@dataclass
class SelectionSnapshot:
    """Parsed result of the plugin's ``get_selection_snapshot`` command."""

    file_key: str
    page: Optional[SnapshotNode]
    selection: List[SnapshotNode] = field(default_factory=list)

    @property
    def selected_text_node(self) -> Optional[SnapshotNode]:
        """The target node: exactly one selected layer, and it is text."""
        if len(self.selection) == 1 and self.selection[0].is_text():
            return self.selection[0]
        return None

    @property
    def selected_text(self) -> Optional[str]:
        node = self.selected_text_node
        if node is None:
            return None
        return node.text or ""


def parse_selection_snapshot(payload: Any) -> SelectionSnapshot:
    """Turn the plugin's snapshot payload into a SelectionSnapshot.

    Unknown selection ids are dropped with a warning; a missing page yields an
    empty selection.
    """
    if not isinstance(payload, dict):
        logger.warning(f"⚠️ Unexpected snapshot payload type: {type(payload).__name__}")
        return SelectionSnapshot(file_key="", page=None)

    file_key = str(payload.get("fileKey") or "")
    page_data = payload.get("page")
    if not isinstance(page_data, dict):
        return SelectionSnapshot(file_key=file_key, page=None)

    page = node_from_dict(page_data)
    selection: List[SnapshotNode] = []
    for node_id in payload.get("selection") or []:
        found = find_node(page, str(node_id))
        if found is None:
            logger.warning(f"⚠️ Selected node {node_id} not found in snapshot")
            continue
        selection.append(found)
    return SelectionSnapshot(file_key=file_key, page=page, selection=selection)
