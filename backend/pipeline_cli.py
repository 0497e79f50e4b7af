# Command-line entry point for workflow decomposition.
#
# Decomposes the given work description with the live model (OPENAI_API_KEY
# must be set), or replays a recorded model response with --replay.

import argparse
import asyncio
import json
from typing import AsyncIterator, List, Optional

from flow.layout import project_layout
from flow.store import DecompositionNode, FlowStore
from llm.llm_stream import StreamFactory, stream_completion
from pipeline import decompose_node, start_session


def replay_factory(path: str, chunk_size: int = 16) -> StreamFactory:
    """Stream factory that ignores the prompt and replays a recorded response in fixed-size chunks."""
    with open(path, "r", encoding="utf-8") as f:
        recorded = f.read()

    async def replay(prompt: str) -> AsyncIterator[str]:
        for start in range(0, len(recorded), chunk_size):
            yield recorded[start:start + chunk_size]

    return replay


def format_outline(node: DecompositionNode, indent: str = "") -> str:
    lines = [f"{indent}{node.label}  ({node.weight:.0%}, level {node.depth})"]
    for child in node.children:
        lines.append(format_outline(child, indent + "  "))
    return "\n".join(lines)


def leaves_breadth_first(root: DecompositionNode) -> List[DecompositionNode]:
    leaves = []
    queue = [root]
    while queue:
        node = queue.pop(0)
        if node.children:
            queue.extend(node.children)
        else:
            leaves.append(node)
    return leaves


async def run(
    text: str,
    stream_factory: StreamFactory,
    expand: int = 0,
) -> FlowStore:
    store = FlowStore()

    print(f"🔄 Decomposing: {text}")
    root = await start_session(store, text, stream_factory, clear_new_after=0)
    if not root.children:
        print("⚠️  Model response contained no steps")
        return store

    for leaf in leaves_breadth_first(root)[:expand]:
        print(f"🔄 Decomposing: {leaf.label}")
        children = await decompose_node(store, leaf.id, stream_factory, clear_new_after=0)
        if not children:
            print(f"⚠️  No steps returned for {leaf.label}")

    return store


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Decompose a work description into a weighted workflow tree")
    parser.add_argument("text", type=str, help="Work description to decompose")
    parser.add_argument(
        "--expand",
        type=int,
        default=0,
        help="Also decompose the first N leaves, breadth-first (default: 0)"
    )
    parser.add_argument(
        "--replay",
        type=str,
        default=None,
        help="Replay a recorded model response from this file instead of calling the model"
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=16,
        help="Fragment size used when replaying (default: 16)"
    )
    parser.add_argument(
        "--layout",
        action="store_true",
        help="Print the positioned node/edge layout as JSON"
    )
    args = parser.parse_args(argv)

    stream_factory = replay_factory(args.replay, args.chunk_size) if args.replay else stream_completion
    store = asyncio.run(run(args.text, stream_factory, expand=args.expand))

    if store.root is None:
        return 1

    print()
    print(format_outline(store.root))

    if args.layout:
        layout = project_layout(store.root)
        print(json.dumps(layout.model_dump(), indent=2, ensure_ascii=False))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
