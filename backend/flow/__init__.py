"""Decomposition tree store, highlight resolution and layout."""

from .store import (
    DecompositionConflictError,
    DecompositionNode,
    FlowStore,
    Lineage,
    NodeNotFoundError,
    new_node_id,
)
from .highlight import (
    HighlightSet,
    highlight_for_edge,
    highlight_for_node,
    is_edge_emphasized,
    is_node_emphasized,
)
from .layout import FlowEdge, FlowLayout, PositionedNode, project_layout

__all__ = [
    'DecompositionConflictError',
    'DecompositionNode',
    'FlowStore',
    'Lineage',
    'NodeNotFoundError',
    'new_node_id',
    'HighlightSet',
    'highlight_for_edge',
    'highlight_for_node',
    'is_edge_emphasized',
    'is_node_emphasized',
    'FlowEdge',
    'FlowLayout',
    'PositionedNode',
    'project_layout',
]
