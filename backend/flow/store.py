"""Hierarchical tree store for workflow decompositions."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field

from stream_parser.records import StreamRecord

logger = logging.getLogger(__name__)


class DecompositionNode(BaseModel):
    """A work item in the decomposition tree.

    The root carries the original input text with weight 1. Every other node
    is created from a streamed record and sits exactly one level below its
    parent. ``is_new`` is a presentation-only flag set on freshly streamed
    children and cleared once they have been shown.
    """
    id: str = Field(description="Process-unique node id, immutable")
    label: str = Field(min_length=1, description="Name of the work item")
    depth: int = Field(default=0, ge=0, description="Distance from the root")
    weight: float = Field(default=1.0, ge=0, le=1, description="Share of the parent's time")
    children: List['DecompositionNode'] = Field(default_factory=list)
    is_new: bool = Field(default=False, description="Transient 'just created' flag")

# Allow forward references for recursive type
DecompositionNode.model_rebuild()


class NodeNotFoundError(KeyError):
    """Raised when a node id is not present in the tree."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node '{self.node_id}' not found"


class DecompositionConflictError(RuntimeError):
    """Raised when a node is already being decomposed or already has children."""

    def __init__(self, node_id: str, reason: str):
        super().__init__(f"Cannot decompose node '{node_id}': {reason}")
        self.node_id = node_id
        self.reason = reason


@dataclass
class Lineage:
    ancestors: List[str] = field(default_factory=list)
    siblings: List[str] = field(default_factory=list)


def new_node_id() -> str:
    return f"node-{uuid.uuid4().hex}"


class FlowStore:
    """
    Owns one decomposition tree. Callers refer to nodes by id only.

    Lookups are a depth-first traversal from the root; first match wins.
    Ids are assumed unique, which ``new_node_id`` guarantees for nodes made
    through this store.
    """

    def __init__(self):
        self.root: Optional[DecompositionNode] = None
        self._in_flight: Set[str] = set()
        self._interrupted: Set[str] = set()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear the tree and all in-flight markers."""
        self.root = None
        self._in_flight.clear()
        self._interrupted.clear()

    def set_root(self, node: DecompositionNode) -> DecompositionNode:
        """Install a fresh root, discarding any previous tree."""
        root = node.model_copy(deep=True)
        _assign_depths(root, 0)
        self.root = root
        self._in_flight.clear()
        self._interrupted.clear()
        return root

    def create_root(self, text: str) -> DecompositionNode:
        """Start a new session tree whose root is the input text."""
        return self.set_root(
            DecompositionNode(id=new_node_id(), label=text, depth=0, weight=1.0)
        )

    def make_child(self, parent: DecompositionNode, record: StreamRecord) -> DecompositionNode:
        """Build (but do not attach) a child node for ``parent`` from a streamed record."""
        return DecompositionNode(
            id=new_node_id(),
            label=record.text,
            depth=parent.depth + 1,
            weight=record.ratio,
            is_new=True,
        )

    def attach_children(self, node_id: str, children: Sequence[DecompositionNode]) -> DecompositionNode:
        """
        Replace the children of ``node_id`` with ``children`` (in order).

        Children are copied into the store and their subtree depths are
        recomputed from the parent. Raises NodeNotFoundError for unknown ids.
        """
        parent = self.get_node(node_id)
        attached = [child.model_copy(deep=True) for child in children]
        for child in attached:
            _assign_depths(child, parent.depth + 1)
        parent.children = attached
        return parent

    def clear_transient_flags(self, node_id: str) -> None:
        """Clear the 'just created' flag on the children of ``node_id``."""
        for child in self.get_node(node_id).children:
            child.is_new = False

    # ------------------------------------------------------------------
    # In-flight tracking
    # ------------------------------------------------------------------

    def begin_decomposition(self, node_id: str) -> DecompositionNode:
        node = self.get_node(node_id)
        if node_id in self._in_flight:
            raise DecompositionConflictError(node_id, "decomposition already in progress")
        if node.children and not self._can_retry(node):
            raise DecompositionConflictError(node_id, "node already has children")
        # the parent's next attach would replace this node and drop its children
        if any(ancestor_id in self._in_flight for ancestor_id in self.get_ancestors_and_siblings(node_id).ancestors):
            raise DecompositionConflictError(node_id, "parent decomposition still in progress")
        self._in_flight.add(node_id)
        return node

    def end_decomposition(self, node_id: str, completed: bool = True) -> None:
        """
        Release the in-flight marker. A decomposition that did not complete
        leaves its partial children in place and may be started again, as long
        as none of those children has been decomposed in the meantime.
        """
        self._in_flight.discard(node_id)
        if completed:
            self._interrupted.discard(node_id)
        else:
            self._interrupted.add(node_id)

    def is_decomposing(self, node_id: str) -> bool:
        return node_id in self._in_flight

    def is_interrupted(self, node_id: str) -> bool:
        return node_id in self._interrupted

    def _can_retry(self, node: DecompositionNode) -> bool:
        return node.id in self._interrupted and not any(
            child.children or child.id in self._in_flight for child in node.children
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def iter_nodes(self) -> Iterator[DecompositionNode]:
        """Pre-order traversal of the whole tree."""
        if self.root is None:
            return
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_node(self, node_id: str) -> Optional[DecompositionNode]:
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def get_node(self, node_id: str) -> DecompositionNode:
        node = self.find_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_ancestors_and_siblings(self, node_id: str) -> Lineage:
        """Ancestor ids from the root down to the node's parent, plus the parent's other children."""
        found = self._find_with_path(node_id)
        if found is None:
            raise NodeNotFoundError(node_id)
        path, _ = found
        if not path:
            return Lineage()
        parent = path[-1]
        return Lineage(
            ancestors=[ancestor.id for ancestor in path],
            siblings=[child.id for child in parent.children if child.id != node_id],
        )

    def get_descendants(self, node_id: str) -> List[str]:
        """All ids in the subtree rooted at ``node_id``, the node included, in pre-order."""
        node = self.get_node(node_id)
        ids = []
        stack = [node]
        while stack:
            current = stack.pop()
            ids.append(current.id)
            stack.extend(reversed(current.children))
        return ids

    def _find_with_path(self, node_id: str) -> Optional[Tuple[List[DecompositionNode], DecompositionNode]]:
        if self.root is None:
            return None

        def visit(node: DecompositionNode, path: List[DecompositionNode]):
            if node.id == node_id:
                return path, node
            for child in node.children:
                result = visit(child, path + [node])
                if result:
                    return result
            return None

        return visit(self.root, [])

    def snapshot(self) -> Optional[Dict[str, Any]]:
        """Plain-dict copy of the tree, or None when empty."""
        if self.root is None:
            return None
        return self.root.model_dump()

    def render_outline(self, current_id: Optional[str] = None) -> str:
        """
        Indented outline of the tree, two spaces per level. The node being
        decomposed is marked with "▶ ".
        """
        if self.root is None:
            return ""
        lines = []

        def visit(node: DecompositionNode, indent: str):
            prefix = "▶ " if node.id == current_id else "  "
            lines.append(f"{indent}{prefix}{node.label}")
            for child in node.children:
                visit(child, indent + "  ")

        visit(self.root, "")
        return "\n".join(lines) + "\n"


def _assign_depths(node: DecompositionNode, depth: int) -> None:
    node.depth = depth
    for child in node.children:
        _assign_depths(child, depth + 1)
