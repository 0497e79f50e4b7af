"""LLM streaming, prompts and test-case generation."""

from .llm_stream import (
    LLM_MODEL,
    StreamFactory,
    build_test_case_prompt,
    build_workflow_context,
    build_workflow_prompt,
    count_tokens,
    stream_completion,
)
from .testcase_gen import (
    GeneratedTestCase,
    TestCasePayloadError,
    build_test_case_tree,
    generate_test_cases,
    parse_test_cases,
)
from . import prompts

__all__ = [
    'LLM_MODEL',
    'StreamFactory',
    'build_test_case_prompt',
    'build_workflow_context',
    'build_workflow_prompt',
    'count_tokens',
    'stream_completion',
    'GeneratedTestCase',
    'TestCasePayloadError',
    'build_test_case_tree',
    'generate_test_cases',
    'parse_test_cases',
    'prompts',
]
