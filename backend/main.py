from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from collections import OrderedDict
from typing import Any, Dict, List, Optional
import logging
import uuid

from code_runner import CodeRunner, RunnerState
from errors import RunnerBusyError
from lens_runtime import Char
from memory import UNDEFINED
from settings import load_settings
from transpiler import transpile

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("logic_lens")

app = FastAPI(title="Logic Lens")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


class CodeRequest(BaseModel):
    code: str


class DiagnosticInfo(BaseModel):
    line: int
    message: str
    text: str


class StructInfo(BaseModel):
    name: str
    fields: Dict[str, str]


class TranspileResponse(BaseModel):
    code: str
    functions: List[str]
    structs: List[StructInfo]
    diagnostics: List[DiagnosticInfo]


class HeapEntry(BaseModel):
    type: str
    fields: Dict[str, Any]


class FrameInfo(BaseModel):
    name: str
    variables: Dict[str, Any]
    line: Optional[int] = None


class ErrorInfo(BaseModel):
    type: str
    message: str
    line: Optional[int] = None


class SessionState(BaseModel):
    session_id: str
    state: str
    running: bool
    line: Optional[int] = None
    variables: Dict[str, Any] = {}
    heap: Dict[str, HeapEntry] = {}
    stack: List[FrameInfo] = []
    output: str = ""
    error: Optional[ErrorInfo] = None
    diagnostics: List[DiagnosticInfo] = []


def jsonable(value):
    """Plain JSON value for anything a program can hold."""
    if value is UNDEFINED:
        return None
    if isinstance(value, Char):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, str):
        return str(value)
    return value


def session_state(session_id: str, state: RunnerState) -> SessionState:
    snapshot = state.snapshot
    return SessionState(
        session_id=session_id,
        state=state.state.value,
        running=state.running,
        line=snapshot.line,
        variables=jsonable(snapshot.variables),
        heap={
            str(address): HeapEntry(type=obj["type"], fields=jsonable(obj["fields"]))
            for address, obj in snapshot.heap.items()
        },
        stack=[
            FrameInfo(name=frame["name"], variables=jsonable(frame["variables"]), line=frame["line"])
            for frame in snapshot.stack
        ],
        output=state.output,
        error=ErrorInfo(**vars(state.error)) if state.error else None,
        diagnostics=[DiagnosticInfo(**vars(d)) for d in state.diagnostics],
    )


# One runner per browser session; each runner owns its memory model.
sessions: "OrderedDict[str, CodeRunner]" = OrderedDict()


def get_runner(session_id: str) -> CodeRunner:
    runner = sessions.get(session_id)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return runner


@app.post("/transpile", response_model=TranspileResponse)
async def transpile_code(request: CodeRequest):
    result = transpile(request.code)
    return TranspileResponse(
        code=result.code,
        functions=result.functions,
        structs=[
            StructInfo(name=s.name, fields={f.name: f.type for f in s.fields})
            for s in result.structs
        ],
        diagnostics=[DiagnosticInfo(**vars(d)) for d in result.diagnostics],
    )


@app.post("/sessions")
async def create_session():
    while len(sessions) >= settings.max_sessions:
        old_id, old_runner = sessions.popitem(last=False)
        old_runner.reset()
        logger.info("Evicted session %s", old_id)
    session_id = uuid.uuid4().hex
    sessions[session_id] = settings.make_runner()
    logger.info("Created session %s", session_id)
    return {"session_id": session_id}


@app.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(session_id: str):
    runner = get_runner(session_id)
    return session_state(session_id, runner.current_state())


@app.post("/sessions/{session_id}/run", response_model=SessionState)
async def run_code(session_id: str, request: CodeRequest):
    runner = get_runner(session_id)
    try:
        state = runner.run(request.code)
    except RunnerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session_state(session_id, state)


@app.post("/sessions/{session_id}/next", response_model=SessionState)
async def next_step(session_id: str):
    runner = get_runner(session_id)
    return session_state(session_id, runner.advance())


@app.post("/sessions/{session_id}/reset", response_model=SessionState)
async def reset_session(session_id: str):
    runner = get_runner(session_id)
    return session_state(session_id, runner.reset())


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    runner = get_runner(session_id)
    runner.reset()
    del sessions[session_id]
    logger.info("Deleted session %s", session_id)
    return {"deleted": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
