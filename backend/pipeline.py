"""End-to-end pipeline: model stream -> records -> decomposition tree."""

import asyncio
import logging
from typing import Callable, List, Optional

from flow.store import DecompositionNode, FlowStore, NodeNotFoundError
from llm.llm_stream import StreamFactory, build_workflow_prompt, stream_completion
from stream_parser.frame import TextSource, extract_payload
from stream_parser.normalize import normalize_ratios
from stream_parser.records import StreamRecord, parse_records

logger = logging.getLogger(__name__)


async def decompose_stream(
    fragments: TextSource,
    on_record: Optional[Callable[[StreamRecord], None]] = None,
) -> List[StreamRecord]:
    """
    Turn a model's text stream into a normalized list of records.

    ``on_record`` is called synchronously with each raw (un-normalized)
    record as soon as it is complete. Returns the normalized batch, or an
    empty list when the stream held no usable payload.
    """
    records: List[StreamRecord] = []
    async for record in parse_records(extract_payload(fragments)):
        records.append(record)
        if on_record is not None:
            on_record(record)

    if not records:
        logger.warning("Model response contained no usable records")
        return []
    return normalize_ratios(records)


def _clear_flags(store: FlowStore, node_id: str) -> None:
    try:
        store.clear_transient_flags(node_id)
    except NodeNotFoundError:
        # the tree was reset before the delay elapsed
        logger.debug("Skipping flag clearing for vanished node %s", node_id)


async def decompose_node(
    store: FlowStore,
    node_id: str,
    stream_factory: Optional[StreamFactory] = None,
    clear_new_after: Optional[float] = None,
) -> List[DecompositionNode]:
    """
    Decompose one node of ``store`` by streaming its sub-steps from the model.

    Children are attached as each record arrives, so partial results are
    visible immediately; once the stream completes the normalized weights
    replace the raw ones. On failure or cancellation the partial children
    stay attached and the in-flight marker is released; such a node can be
    decomposed again, which starts over from an empty child list.

    If ``clear_new_after`` is given, the children's ``is_new`` flag is
    cleared that many seconds later (0 clears it right away).
    """
    stream_factory = stream_factory or stream_completion
    node = store.begin_decomposition(node_id)
    completed = False
    try:
        if node.children:
            logger.info("Retrying interrupted decomposition of %r", node.label)
            store.attach_children(node_id, [])
        prompt = build_workflow_prompt(node.label, store, node_id)
        children: List[DecompositionNode] = []

        def on_record(record: StreamRecord) -> None:
            children.append(store.make_child(node, record))
            store.attach_children(node_id, children)

        normalized = await decompose_stream(stream_factory(prompt), on_record)

        for child, record in zip(children, normalized):
            child.weight = record.ratio
        if children:
            store.attach_children(node_id, children)
        completed = True
        logger.info("Decomposed %r into %d steps", node.label, len(children))
    finally:
        store.end_decomposition(node_id, completed)

    if clear_new_after is not None:
        if clear_new_after <= 0:
            _clear_flags(store, node_id)
        else:
            asyncio.get_running_loop().call_later(clear_new_after, _clear_flags, store, node_id)

    return store.get_node(node_id).children


async def start_session(
    store: FlowStore,
    text: str,
    stream_factory: Optional[StreamFactory] = None,
    clear_new_after: Optional[float] = None,
) -> DecompositionNode:
    """Reset ``store`` to a new tree rooted at ``text`` and decompose the root."""
    store.reset()
    root = store.create_root(text)
    await decompose_node(store, root.id, stream_factory, clear_new_after)
    return store.get_node(root.id)
