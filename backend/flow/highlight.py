"""Relational highlighting: which nodes and edges to emphasize on hover."""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from .store import FlowStore


@dataclass(frozen=True)
class HighlightSet:
    """Node ids emphasized for one interaction. An edge is emphasized when both ends are."""
    nodes: FrozenSet[str]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def contains_edge(self, source_id: str, target_id: str) -> bool:
        return source_id in self.nodes and target_id in self.nodes

    def union(self, other: "HighlightSet") -> "HighlightSet":
        return HighlightSet(self.nodes | other.nodes)

    @classmethod
    def of(cls, node_ids: Iterable[str]) -> "HighlightSet":
        return cls(frozenset(node_ids))


def highlight_for_node(store: FlowStore, node_id: str) -> HighlightSet:
    """The node itself plus its ancestors, siblings and descendants."""
    lineage = store.get_ancestors_and_siblings(node_id)
    descendants = store.get_descendants(node_id)
    return HighlightSet.of([node_id, *lineage.ancestors, *lineage.siblings, *descendants])


def highlight_for_edge(store: FlowStore, source_id: str, target_id: str) -> HighlightSet:
    return highlight_for_node(store, source_id).union(highlight_for_node(store, target_id))


def is_node_emphasized(highlight: Optional[HighlightSet], node_id: str) -> bool:
    # No active interaction: everything is shown at full emphasis
    if highlight is None:
        return True
    return node_id in highlight


def is_edge_emphasized(highlight: Optional[HighlightSet], source_id: str, target_id: str) -> bool:
    if highlight is None:
        return True
    return highlight.contains_edge(source_id, target_id)
