from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
import os
import uuid
from datetime import datetime
from dotenv import load_dotenv

from flow.highlight import HighlightSet, highlight_for_edge, highlight_for_node
from flow.layout import FlowLayout, project_layout
from flow.store import DecompositionConflictError, DecompositionNode, FlowStore, NodeNotFoundError
from llm.llm_stream import StreamFactory, build_workflow_prompt, stream_completion
from llm.testcase_gen import TestCasePayloadError, build_test_case_tree, generate_test_cases
from pipeline import decompose_node, start_session
from stream_parser.frame import extract_payload
from stream_parser.normalize import NormalizationError

load_dotenv()

# Configuration from environment
NEW_FLAG_CLEAR_DELAY = float(os.getenv("NEW_FLAG_CLEAR_DELAY", "0.5"))

app = FastAPI()

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class FlowSession:
    """One user's decomposition tree. Each session owns its own store."""

    def __init__(self, session_id: str):
        self.id = session_id
        self.store = FlowStore()
        self.created_at = datetime.now().isoformat()


sessions: Dict[str, FlowSession] = {}


def get_stream_factory() -> StreamFactory:
    """Source of model text streams; overridden in tests."""
    return stream_completion


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WorkflowRequest(CamelModel):
    text: str = Field(min_length=1)
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    node_id: Optional[str] = Field(default=None, alias="nodeId")

class SessionRequest(CamelModel):
    text: str = Field(min_length=1)

class SessionResponse(CamelModel):
    session_id: str = Field(alias="sessionId")
    created_at: str = Field(alias="createdAt")
    flow: Optional[DecompositionNode] = None
    layout: FlowLayout

class FlowResponse(CamelModel):
    flow: Optional[DecompositionNode] = None
    layout: FlowLayout
    highlighted: Optional[List[str]] = None

class DecomposeResponse(CamelModel):
    node_id: str = Field(alias="nodeId")
    children: List[DecompositionNode]
    layout: FlowLayout

class CaseGenerationRequest(CamelModel):
    input: str = Field(min_length=1)


def _get_session(session_id: str) -> FlowSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _http_error(e: Exception, session_id: Optional[str] = None) -> HTTPException:
    """Map domain errors to HTTP errors. With a session id, the detail also names the session."""
    if isinstance(e, NodeNotFoundError):
        status_code = 404
    elif isinstance(e, DecompositionConflictError):
        status_code = 409
    elif isinstance(e, (NormalizationError, TestCasePayloadError)):
        status_code = 422
    else:
        status_code = 500

    detail: Any = str(e)
    if session_id is not None:
        detail = {"message": str(e), "sessionId": session_id}
    return HTTPException(status_code=status_code, detail=detail)


@app.post("/api/workflow")
async def stream_workflow(request: WorkflowRequest, stream_factory: StreamFactory = Depends(get_stream_factory)):
    """
    Stream the framed payload (the JSON array text, markers stripped) of a
    single decomposition. When sessionId and nodeId are given, the session's
    tree is used as prompt context.
    """
    print("=== /api/workflow endpoint called ===")

    store = None
    if request.session_id and request.node_id:
        store = _get_session(request.session_id).store
        try:
            store.get_node(request.node_id)
        except NodeNotFoundError as e:
            raise _http_error(e)

    prompt = build_workflow_prompt(request.text, store, request.node_id)
    return StreamingResponse(
        extract_payload(stream_factory(prompt)),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@app.post("/api/sessions", response_model=SessionResponse)
async def create_session(request: SessionRequest, stream_factory: StreamFactory = Depends(get_stream_factory)):
    """
    Start a new session rooted at the given text and decompose the root.

    If the root decomposition fails the session is kept with whatever
    children arrived; the error detail carries its sessionId so the client
    can inspect the partial flow or retry the root.
    """
    session = FlowSession(str(uuid.uuid4()))
    sessions[session.id] = session
    print(f"🔄 New session {session.id}: {request.text}")

    try:
        await start_session(session.store, request.text, stream_factory, clear_new_after=NEW_FLAG_CLEAR_DELAY)
    except Exception as e:
        print(f"Error decomposing session root: {e}")
        raise _http_error(e, session.id)

    return SessionResponse(
        session_id=session.id,
        created_at=session.created_at,
        flow=session.store.root,
        layout=project_layout(session.store.root),
    )


@app.get("/api/sessions/{session_id}/flow", response_model=FlowResponse)
async def get_flow(
    session_id: str,
    node_id: Optional[str] = Query(default=None, alias="nodeId"),
    edge_source: Optional[str] = Query(default=None, alias="edgeSource"),
    edge_target: Optional[str] = Query(default=None, alias="edgeTarget"),
):
    """
    Returns the session's tree and its layout. Hovering a node (nodeId) or an
    edge (edgeSource + edgeTarget) dims everything outside its highlight set.
    """
    store = _get_session(session_id).store

    if (edge_source is None) != (edge_target is None):
        raise HTTPException(status_code=400, detail="edgeSource and edgeTarget must be given together")

    highlight: Optional[HighlightSet] = None
    try:
        if node_id:
            highlight = highlight_for_node(store, node_id)
        elif edge_source and edge_target:
            highlight = highlight_for_edge(store, edge_source, edge_target)
    except NodeNotFoundError as e:
        raise _http_error(e)

    return FlowResponse(
        flow=store.root,
        layout=project_layout(store.root, highlight),
        highlighted=sorted(highlight.nodes) if highlight is not None else None,
    )


@app.post("/api/sessions/{session_id}/nodes/{node_id}/decompose", response_model=DecomposeResponse)
async def decompose_session_node(
    session_id: str,
    node_id: str,
    stream_factory: StreamFactory = Depends(get_stream_factory),
):
    """Decompose one node. A failure leaves any partial children in place."""
    store = _get_session(session_id).store
    print(f"🔄 Decomposing node {node_id} in session {session_id}")

    try:
        children = await decompose_node(store, node_id, stream_factory, clear_new_after=NEW_FLAG_CLEAR_DELAY)
    except Exception as e:
        print(f"Error decomposing node {node_id}: {e}")
        raise _http_error(e)

    return DecomposeResponse(node_id=node_id, children=children, layout=project_layout(store.root))


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    session = _get_session(session_id)
    session.store.reset()
    del sessions[session_id]
    return {"message": "Session deleted successfully"}


@app.post("/api/generate-test-cases")
async def create_test_cases(request: CaseGenerationRequest, stream_factory: StreamFactory = Depends(get_stream_factory)) -> Dict[str, Any]:
    """Generate test cases for a functional description, plus a mind-map tree of them."""
    print("=== /api/generate-test-cases endpoint called ===")

    try:
        cases = await generate_test_cases(request.input, stream_factory)
    except Exception as e:
        print(f"Error generating test cases: {e}")
        raise _http_error(e)

    mindmap = FlowStore()
    mindmap.set_root(build_test_case_tree(cases))
    return {
        "testCases": [case.model_dump(by_alias=True) for case in cases],
        "mindmap": mindmap.snapshot(),
    }


@app.get("/api/health")
def health_check():
    return {"status": "Backend API is running", "sessions": len(sessions)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
