"""Streaming model access and prompt building for workflow decomposition."""

import logging
import os
from typing import AsyncIterator, Callable, Optional

import tiktoken
from dotenv import load_dotenv
from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.llms.openai import OpenAI

from flow.store import FlowStore
from . import prompts

# Load environment variables
load_dotenv()

# Configuration from environment
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4.1")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "1.0"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "300"))
CONTEXT_TOKEN_LIMIT = int(os.getenv("CONTEXT_TOKEN_LIMIT", "6000"))

logger = logging.getLogger(__name__)

# prompt -> async stream of text fragments
StreamFactory = Callable[[str], AsyncIterator[str]]


def count_tokens(text: str, model: str = LLM_MODEL) -> int:
    """Count tokens in a prompt fragment using tiktoken."""
    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        # Fallback to cl100k_base encoding (used by gpt-4 and gpt-3.5-turbo)
        encoding = tiktoken.get_encoding("cl100k_base")
    return len(encoding.encode(text))


def get_llm(model: Optional[str] = None) -> OpenAI:
    if not os.getenv("OPENAI_API_KEY"):
        raise RuntimeError("Set OPENAI_API_KEY in your environment first.")
    return OpenAI(
        model=model or LLM_MODEL,
        temperature=LLM_TEMPERATURE,
        api_key=os.getenv("OPENAI_API_KEY"),
        timeout=LLM_TIMEOUT,
    )


async def stream_completion(prompt: str) -> AsyncIterator[str]:
    """Send ``prompt`` as a system message and yield the response text as it streams."""
    llm = get_llm()
    messages = [ChatMessage(role=MessageRole.SYSTEM, content=prompt)]

    logger.info("Streaming completion from %s (%d prompt chars)", llm.model, len(prompt))
    response_stream = await llm.astream_chat(messages)
    async for chunk in response_stream:
        if chunk.delta:
            yield chunk.delta


def _lineage_context(store: FlowStore, node_id: str) -> str:
    lineage = store.get_ancestors_and_siblings(node_id)
    path = [store.get_node(ancestor_id).label for ancestor_id in lineage.ancestors]
    path.append(f"▶ {store.get_node(node_id).label}")
    siblings = [store.get_node(sibling_id).label for sibling_id in lineage.siblings]
    return prompts.LINEAGE_CONTEXT_TEMPLATE.format(
        path="\n".join(f"  {label}" for label in path),
        siblings="\n".join(f"  {label}" for label in siblings) or "  (none)",
    )


def build_workflow_context(store: Optional[FlowStore] = None, node_id: Optional[str] = None) -> str:
    """
    Describe where the node being decomposed sits in the tree.

    The root (or a call without a store) has no parent workflow. Otherwise
    the whole tree outline is used, unless it is larger than
    CONTEXT_TOKEN_LIMIT tokens, in which case only the node's path and its
    siblings are given.
    """
    if store is None or node_id is None or store.root is None or store.root.id == node_id:
        return prompts.NO_CONTEXT

    outline = prompts.OUTLINE_CONTEXT_HEADER + store.render_outline(node_id)
    tokens = count_tokens(outline)
    if tokens <= CONTEXT_TOKEN_LIMIT:
        return outline

    logger.info("Workflow outline is %d tokens (limit %d), using lineage context", tokens, CONTEXT_TOKEN_LIMIT)
    return _lineage_context(store, node_id)


def build_workflow_prompt(text: str, store: Optional[FlowStore] = None, node_id: Optional[str] = None) -> str:
    return prompts.WORKFLOW_PROMPT_TEMPLATE.format(
        input=text,
        context=build_workflow_context(store, node_id),
        format_instructions=prompts.WORKFLOW_FORMAT_INSTRUCTIONS,
    )


def build_test_case_prompt(text: str) -> str:
    return prompts.TEST_CASE_PROMPT_TEMPLATE.format(
        input=text,
        format_instructions=prompts.TEST_CASE_FORMAT_INSTRUCTIONS,
    )
