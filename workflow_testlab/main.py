# workflow_testlab/main.py
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .engine import WorkflowTestEngine
from .exceptions import UnknownScenarioError
from .executors import EXECUTORS
from .models import RunState
from .observability import setup_logging
from .payloads import TEST_SCENARIOS, generate_test_data, get_scenario, validate_payload
from .workflows import deal_router_graph

setup_logging()

logger = logging.getLogger(__name__)


class LabSession:
    """One editor graph loaded into an engine, plus the last snapshot it pushed."""

    def __init__(self, session_id: str, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]], settings: Settings):
        self.session_id = session_id
        self.latest: Optional[RunState] = None
        self.updates = 0
        self.task: Optional[asyncio.Task] = None
        self.error: Optional[str] = None
        self.engine = WorkflowTestEngine(nodes, edges, self.observe, settings=settings)

    def observe(self, state: RunState) -> None:
        self.latest = state
        self.updates += 1

    def describe(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "updates": self.updates,
            "error": self.error,
            "state": self.latest or self.engine.state,
        }

    async def aclose(self) -> None:
        if self.task is not None and not self.task.done():
            self.engine.stop()
            await self.task
        await self.engine.aclose()


# In-memory session registry
SESSIONS: Dict[str, LabSession] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # release collaborator clients held by sessions nobody deleted
    while SESSIONS:
        _, session = SESSIONS.popitem()
        await session.aclose()


app = FastAPI(title="Workflow Test Lab", lifespan=lifespan)


def _session(session_id: str) -> LabSession:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return session


class CreateSessionPayload(BaseModel):
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]] = Field(default_factory=list)


class StartPayload(BaseModel):
    scenario_id: Optional[str] = None
    payload: Optional[Union[Dict[str, Any], str]] = None
    run_in_background: Optional[bool] = False


class SpeedPayload(BaseModel):
    multiplier: float


class ValidatePayload(BaseModel):
    payload: Any = None


@app.post("/sessions")
async def create_session(payload: CreateSessionPayload, settings: Settings = Depends(get_settings)):
    session_id = str(uuid.uuid4())
    try:
        SESSIONS[session_id] = LabSession(session_id, payload.nodes, payload.edges, settings)
    except ValueError as exc:
        # malformed nodes or edges from the editor
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info("session created", extra={"session_id": session_id})
    return {"session_id": session_id}


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    session = _session(session_id)
    del SESSIONS[session_id]
    await session.aclose()
    logger.info("session closed", extra={"session_id": session_id})
    return {"session_id": session_id, "deleted": True}


@app.post("/sessions/{session_id}/start")
async def start_session(session_id: str, payload: StartPayload):
    session = _session(session_id)
    engine = session.engine

    # reject bad input before anything runs
    if payload.payload is not None:
        validation = validate_payload(payload.payload)
        if not validation.is_valid:
            raise HTTPException(status_code=422, detail=validation.model_dump())
        run = engine.start_with_custom_payload(payload.payload)
    else:
        try:
            scenario = get_scenario(payload.scenario_id) if payload.scenario_id else None
        except UnknownScenarioError:
            raise HTTPException(status_code=404, detail=f"scenario {payload.scenario_id} not found")
        run = engine.start(scenario)

    async def _runner():
        session.error = None
        try:
            await run
        except Exception as exc:
            session.error = str(exc)
            logger.exception("run crashed", extra={"session_id": session_id})

    if payload.run_in_background:
        session.task = asyncio.create_task(_runner())
    else:
        await _runner()
    return session.describe()


@app.post("/sessions/{session_id}/pause")
async def pause_session(session_id: str):
    session = _session(session_id)
    session.engine.pause()
    return session.describe()


@app.post("/sessions/{session_id}/resume")
async def resume_session(session_id: str):
    session = _session(session_id)
    session.engine.resume()
    return session.describe()


@app.post("/sessions/{session_id}/stop")
async def stop_session(session_id: str):
    session = _session(session_id)
    session.engine.stop()
    return session.describe()


@app.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    session = _session(session_id)
    session.engine.reset()
    return session.describe()


@app.post("/sessions/{session_id}/speed")
async def set_session_speed(session_id: str, payload: SpeedPayload):
    session = _session(session_id)
    try:
        session.engine.set_speed(payload.multiplier)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return session.describe()


@app.get("/sessions/{session_id}/state")
async def get_session_state(session_id: str):
    return _session(session_id).describe()


@app.post("/payloads/validate")
async def validate(payload: ValidatePayload):
    return validate_payload(payload.payload)


@app.get("/payloads/test-data/{category}")
async def get_test_data(category: str, scenario: Optional[str] = None):
    return {"category": category, "scenario": scenario, "data": generate_test_data(category, scenario)}


@app.get("/scenarios")
async def list_scenarios():
    return {"scenarios": TEST_SCENARIOS}


# registered node types
@app.get("/executors")
async def list_executors():
    return {"executors": sorted(EXECUTORS)}


class ExamplePayload(BaseModel):
    scenario_id: str = "high_value_deal"
    threshold: int = 50000


@app.post("/example/run-deal-router")
async def example_run_deal_router(payload: Optional[ExamplePayload] = None, settings: Settings = Depends(get_settings)):
    payload = payload or ExamplePayload()
    nodes, edges = deal_router_graph(payload.threshold)
    resp = await create_session(CreateSessionPayload(nodes=nodes, edges=edges), settings)
    return await start_session(resp["session_id"], StartPayload(scenario_id=payload.scenario_id))


if __name__ == "__main__":
    uvicorn.run("workflow_testlab.main:app", host="0.0.0.0", port=8000, reload=True)
