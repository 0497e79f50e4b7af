"""
Test-case generation.

Uses the same fenced-payload framing as workflow decomposition, but the
payload is collected in full and parsed as one document, since each test case
carries nested arrays.
"""

import json
import logging
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flow.store import DecompositionNode, new_node_id
from stream_parser.frame import TextSource, extract_payload
from .llm_stream import StreamFactory, build_test_case_prompt, stream_completion

logger = logging.getLogger(__name__)


class TestCasePayloadError(ValueError):
    """Raised when the model's test-case payload cannot be used at all."""
    __test__ = False


class GeneratedTestCase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    title: str = Field(min_length=1)
    description: str = ""
    steps: List[str] = Field(default_factory=list)
    expected_results: List[str] = Field(default_factory=list, alias="expectedResults")
    type: Literal["functional", "boundary", "performance"]
    priority: Literal["P0", "P1", "P2"]


def parse_test_cases(payload: str) -> List[GeneratedTestCase]:
    """
    Parse a complete test-case payload.

    Accepts a bare JSON array or an object with a "topics" array. Items that
    fail validation are dropped with a warning; a payload that is not JSON,
    or holds no array, raises TestCasePayloadError.
    """
    if not payload or not payload.strip():
        raise TestCasePayloadError("empty test-case payload")

    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        raise TestCasePayloadError(f"invalid test-case JSON: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("topics"), list):
        data = data["topics"]
    if not isinstance(data, list):
        raise TestCasePayloadError("expected a JSON array of test cases")

    cases = []
    for index, item in enumerate(data):
        try:
            cases.append(GeneratedTestCase.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping invalid test case #%d: %s", index, e.errors()[0]["msg"])
    return cases


async def collect_payload(fragments: TextSource) -> str:
    pieces = []
    async for piece in extract_payload(fragments):
        pieces.append(piece)
    return "".join(pieces)


async def generate_test_cases(text: str, stream_factory: Optional[StreamFactory] = None) -> List[GeneratedTestCase]:
    """Ask the model for test cases covering ``text`` and parse its fenced answer."""
    stream_factory = stream_factory or stream_completion
    payload = await collect_payload(stream_factory(build_test_case_prompt(text)))
    if not payload.strip():
        raise TestCasePayloadError("model response contained no fenced payload")
    return parse_test_cases(payload)


def _leaf(label: str, weight: float) -> DecompositionNode:
    return DecompositionNode(id=new_node_id(), label=label, weight=weight)


def _group(label: str, items: List[str], weight: float) -> DecompositionNode:
    node = _leaf(label, weight)
    items = [item for item in items if item.strip()]
    node.children = [_leaf(item, 1 / len(items)) for item in items]
    return node


def build_test_case_tree(cases: List[GeneratedTestCase], title: str = "Test Cases") -> DecompositionNode:
    """
    Arrange test cases as a mind map: root -> case -> Description / Steps /
    Expected Results. Sibling weights are equal shares. Depths are left for
    FlowStore.set_root to assign.
    """
    root = _leaf(title, 1.0)
    for case in cases:
        case_node = _leaf(f"[{case.priority}] {case.title} ({case.type})", 1 / len(cases))
        case_node.children = [
            _group("Description", [case.description] if case.description else [], 1 / 3),
            _group("Steps", case.steps, 1 / 3),
            _group("Expected Results", case.expected_results, 1 / 3),
        ]
        root.children.append(case_node)
    return root
