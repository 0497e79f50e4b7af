from __future__ import annotations

import pytest

from flow.store import DecompositionNode, FlowStore
from llm import llm_stream, prompts
from llm.llm_stream import build_test_case_prompt, build_workflow_context, build_workflow_prompt, stream_completion
from tests._streams import collect, run


@pytest.fixture
def store() -> FlowStore:
    store = FlowStore()
    store.set_root(DecompositionNode(id="root", label="Build a website"))
    store.attach_children(
        "root",
        [
            DecompositionNode(id="a", label="Design", weight=0.3),
            DecompositionNode(id="b", label="Frontend", weight=0.4),
            DecompositionNode(id="c", label="Deploy", weight=0.3),
        ],
    )
    return store


def test_root_prompt_has_no_parent_context(store):
    assert build_workflow_context() == prompts.NO_CONTEXT
    assert build_workflow_context(store, "root") == prompts.NO_CONTEXT


def test_child_prompt_includes_marked_outline(store):
    prompt = build_workflow_prompt("Frontend", store, "b")
    assert '"Frontend"' in prompt
    assert "  Build a website" in prompt
    assert "▶ Frontend" in prompt
    assert "Deploy" in prompt
    assert '"ratio"' in prompt


def test_oversized_outline_falls_back_to_lineage(store, monkeypatch):
    monkeypatch.setattr(llm_stream, "CONTEXT_TOKEN_LIMIT", 3)
    context = build_workflow_context(store, "b")
    assert prompts.OUTLINE_CONTEXT_HEADER not in context
    assert "▶ Frontend" in context
    assert "Build a website" in context
    assert "Design" in context and "Deploy" in context


def test_test_case_prompt_mentions_input():
    prompt = build_test_case_prompt("Password reset")
    assert '"Password reset"' in prompt
    assert "expectedResults" in prompt


def test_stream_completion_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        run(collect(stream_completion("hello")))
