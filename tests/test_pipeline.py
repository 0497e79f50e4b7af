from __future__ import annotations

import asyncio

import pytest

from flow.store import DecompositionConflictError, FlowStore, NodeNotFoundError
from llm import prompts
from pipeline import decompose_node, decompose_stream, start_session
from tests._streams import SCENARIO_RESPONSE, RecordingFactory, chunked, failing_factory, from_list, run


def test_decompose_stream_scenario():
    seen = []
    normalized = run(decompose_stream(chunked(SCENARIO_RESPONSE, 3), seen.append))

    assert [(r.text, r.ratio) for r in seen] == [("design", 0.4), ("build", 0.5), ("test", 0.3)]
    assert [r.text for r in normalized] == ["design", "build", "test"]
    assert [r.ratio for r in normalized] == pytest.approx([1 / 3, 5 / 12, 1 / 4])


def test_missing_closing_marker_still_completes_normally():
    response = 'Plan:\n```json\n[{"text":"a","ratio":0.5},{"text":"b","ratio":0.5}'
    normalized = run(decompose_stream(from_list(chunked(response, 4))))
    assert [r.text for r in normalized] == ["a", "b"]


def test_unframed_response_gives_empty_result():
    seen = []
    response = '[{"text":"a","ratio":0.5}]'
    assert run(decompose_stream([response], seen.append)) == []
    assert seen == []


def test_start_session_builds_normalized_children():
    store = FlowStore()
    factory = RecordingFactory()
    root = run(start_session(store, "Release v2", factory))

    assert root.label == "Release v2"
    assert [c.label for c in root.children] == ["design", "build", "test"]
    assert sum(c.weight for c in root.children) == pytest.approx(1.0)
    assert all(c.depth == 1 and c.is_new for c in root.children)
    assert not store.is_decomposing(root.id)
    assert prompts.NO_CONTEXT in factory.prompts[0]
    assert '"Release v2"' in factory.prompts[0]


def test_start_session_replaces_previous_tree():
    store = FlowStore()
    first = run(start_session(store, "First", RecordingFactory()))
    second = run(start_session(store, "Second", RecordingFactory()))
    assert store.find_node(first.id) is None
    assert store.root.id == second.id


def test_decompose_child_uses_tree_outline_as_context():
    store = FlowStore()
    root = run(start_session(store, "Release v2", RecordingFactory()))
    child_id = root.children[1].id
    factory = RecordingFactory('```json\n[{"text":"code","ratio":0.7},{"text":"review","ratio":0.2}]\n```')

    children = run(decompose_node(store, child_id, factory, clear_new_after=0))

    assert [c.label for c in children] == ["code", "review"]
    assert [c.weight for c in children] == pytest.approx([7 / 9, 2 / 9])
    assert all(c.depth == 2 and not c.is_new for c in children)
    assert "▶ build" in factory.prompts[0]
    assert prompts.OUTLINE_CONTEXT_HEADER in factory.prompts[0]


def test_children_are_visible_while_streaming():
    store = FlowStore()
    root = store.create_root("Write docs")
    observed = []

    async def stream(prompt):
        yield '```json\n[{"text":"outline","ratio":0.6},\n      '
        observed.append([c.label for c in store.get_node(root.id).children])
        observed.append(store.is_decomposing(root.id))
        yield '{"text":"draft","ratio":0.6}]\n```'

    run(decompose_node(store, root.id, stream))

    assert observed == [["outline"], True]
    # raw 0.6 / 0.6 corrected once the batch completed
    assert [c.weight for c in store.root.children] == pytest.approx([0.5, 0.5])


def test_transport_failure_keeps_partial_children():
    store = FlowStore()
    root = store.create_root("Migrate database")
    factory = failing_factory(['```json\n[{"text":"backup","ratio":0.3},\n      '], ConnectionError("reset"))

    with pytest.raises(ConnectionError):
        run(decompose_node(store, root.id, factory))

    assert [c.label for c in store.root.children] == ["backup"]
    assert store.root.children[0].weight == pytest.approx(0.3)
    assert not store.is_decomposing(root.id)


def test_cancellation_releases_in_flight_marker():
    store = FlowStore()
    root = store.create_root("Plan sprint")

    async def stalled(prompt):
        yield '```json\n[{"text":"groom","ratio":0.5},\n      '
        await asyncio.sleep(10)
        yield "]"

    async def main():
        task = asyncio.create_task(decompose_node(store, root.id, stalled))
        await asyncio.sleep(0.05)
        assert store.is_decomposing(root.id)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    run(main())
    assert not store.is_decomposing(root.id)
    assert [c.label for c in store.root.children] == ["groom"]


def test_decomposing_twice_is_a_conflict():
    store = FlowStore()
    root = run(start_session(store, "Release v2", RecordingFactory()))
    with pytest.raises(DecompositionConflictError):
        run(decompose_node(store, root.id, RecordingFactory()))


def test_unknown_node_is_reported():
    store = FlowStore()
    store.create_root("Anything")
    with pytest.raises(NodeNotFoundError):
        run(decompose_node(store, "node-missing", RecordingFactory()))


def test_empty_response_leaves_node_without_children():
    store = FlowStore()
    root = run(start_session(store, "Nothing useful", RecordingFactory("I cannot help with that.")))
    assert root.children == []
    assert not store.is_decomposing(root.id)


def test_new_flags_cleared_after_delay():
    store = FlowStore()

    async def main():
        root = await start_session(store, "Release v2", RecordingFactory(), clear_new_after=0.01)
        assert all(c.is_new for c in store.get_node(root.id).children)
        await asyncio.sleep(0.05)
        return root

    root = run(main())
    assert not any(c.is_new for c in store.get_node(root.id).children)


def test_interrupted_decomposition_can_be_retried():
    store = FlowStore()
    root = store.create_root("Migrate database")
    failing = failing_factory(['```json\n[{"text":"backup","ratio":0.3},\n      '], ConnectionError("reset"))
    with pytest.raises(ConnectionError):
        run(decompose_node(store, root.id, failing))
    assert store.is_interrupted(root.id)

    factory = RecordingFactory()
    children = run(decompose_node(store, root.id, factory))

    assert [c.label for c in children] == ["design", "build", "test"]
    assert not store.is_interrupted(root.id)
    assert "backup" not in factory.prompts[0]
