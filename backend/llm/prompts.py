"""Prompts for workflow decomposition and test-case generation."""

WORKFLOW_FORMAT_INSTRUCTIONS = """
You MUST output the result as a JSON array inside a single ```json fenced block.
Each element MUST have exactly these keys:
- "text": string - name of the work step
- "ratio": number - share of the parent's total time (a decimal between 0 and 1)

Example:
```json
[
  {"text": "Component design", "ratio": 0.3},
  {"text": "Interaction implementation", "ratio": 0.5},
  {"text": "Performance tuning", "ratio": 0.2}
]
```
"""

WORKFLOW_PROMPT_TEMPLATE = """
<role>
  Workflow analysis expert who breaks complex work down into a workflow tree
</role>

<task>
  Decompose the following work: "{input}"

  Where this work sits:
{context}
</task>

<rules>
  1. Every step has a name and a time ratio (ratios sum to 1)
  2. Only include concrete work done by the same role
  3. Steps follow each other in a coherent order
  4. Steps MUST NOT duplicate steps already present in the workflow tree
  5. Steps MUST be direct sub-tasks of the current work
  6. The last step should lead naturally into the next step of the parent workflow
</rules>

<example>
  Wrong: "Frontend development" -> "Write code", "Meetings", "Testing"
  Why: the steps are vague and include another role's duties (testing)

  Right: "Frontend development" -> "Component design", "Interaction implementation", "Performance tuning"
  Why: all are concrete frontend engineering tasks, in a coherent order
</example>

<output_format>
{format_instructions}
</output_format>
"""

NO_CONTEXT = "No parent workflow"

OUTLINE_CONTEXT_HEADER = "Full current workflow tree (▶ marks the node to decompose):\n"

LINEAGE_CONTEXT_TEMPLATE = """Path from the root to the node to decompose:
{path}
Existing sibling steps (do not repeat them):
{siblings}
"""

TEST_CASE_FORMAT_INSTRUCTIONS = """
You MUST output the result as a JSON array inside a single ```json fenced block.
Each element MUST have exactly these keys:
- "id": string
- "title": string
- "description": string
- "steps": array of strings
- "expectedResults": array of strings
- "type": one of "functional", "boundary", "performance"
- "priority": one of "P0", "P1", "P2"
"""

TEST_CASE_PROMPT_TEMPLATE = """
<role>
  Testing expert who writes high quality test cases
</role>

<task>
  Generate test cases for the following functionality: "{input}"
</task>

<rules>
  1. Cover functional, boundary and performance testing
  2. Every test case needs detailed steps and expected results
  3. Mark the priority according to importance (P0/P1/P2)
</rules>

<output_format>
{format_instructions}
</output_format>
"""
