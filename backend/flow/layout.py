"""Layout projection: tree snapshot -> positioned nodes and edges."""

from typing import List, Literal, Optional

from pydantic import BaseModel

from .highlight import HighlightSet, is_edge_emphasized, is_node_emphasized
from .store import DecompositionNode

NODE_WIDTH = 200
NODE_SPACING = 50
VERTICAL_SPACING = 150


class Position(BaseModel):
    x: float
    y: float


class PositionedNode(BaseModel):
    id: str
    label: str
    weight: float
    depth: int
    position: Position
    is_new: bool = False
    highlighted: bool = True
    z_index: int = 1


class FlowEdge(BaseModel):
    id: str
    source: str
    target: str
    kind: Literal["hierarchy", "sequence"]
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    stroke_width: int
    opacity: float
    animated: bool


class FlowLayout(BaseModel):
    nodes: List[PositionedNode] = []
    edges: List[FlowEdge] = []


def project_layout(
    root: Optional[DecompositionNode],
    highlight: Optional[HighlightSet] = None,
    x: float = 0,
    y: float = 0,
) -> FlowLayout:
    """
    Lay out the tree top-down.

    Children sit one band (VERTICAL_SPACING) below their parent, spread at a
    fixed pitch and centred under it. Besides one hierarchy edge per child,
    consecutive siblings are joined left to right by a sequence edge. Edge
    and node emphasis come from ``highlight``; None means all emphasized.
    """
    layout = FlowLayout()
    if root is None:
        return layout

    def place(node: DecompositionNode, parent_id: Optional[str], x: float, y: float):
        highlighted = is_node_emphasized(highlight, node.id)
        layout.nodes.append(
            PositionedNode(
                id=node.id,
                label=node.label,
                weight=node.weight,
                depth=node.depth,
                position=Position(x=x, y=y),
                is_new=node.is_new,
                highlighted=highlighted,
                z_index=1 if highlighted else 0,
            )
        )

        if parent_id:
            emphasized = is_edge_emphasized(highlight, parent_id, node.id)
            layout.edges.append(
                FlowEdge(
                    id=f"edge-{parent_id}-{node.id}",
                    source=parent_id,
                    target=node.id,
                    kind="hierarchy",
                    stroke_width=2,
                    opacity=1.0 if emphasized else 0.1,
                    animated=emphasized,
                )
            )

        count = len(node.children)
        if not count:
            return
        total_width = count * NODE_WIDTH + (count - 1) * NODE_SPACING
        start_x = x - total_width / 2

        for index, child in enumerate(node.children):
            place(child, node.id, start_x + index * (NODE_WIDTH + NODE_SPACING), y + VERTICAL_SPACING)

            if index > 0:
                previous_id = node.children[index - 1].id
                emphasized = is_edge_emphasized(highlight, previous_id, child.id)
                layout.edges.append(
                    FlowEdge(
                        id=f"sibling-edge-{previous_id}-{child.id}",
                        source=previous_id,
                        target=child.id,
                        kind="sequence",
                        source_handle="right",
                        target_handle="left",
                        stroke_width=1,
                        opacity=0.5 if emphasized else 0.1,
                        animated=False,
                    )
                )

    place(root, None, x, y)
    return layout
