from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Literal, Optional, Union

from collector.core.database import get_db
from collector.models.base import isoformat_utc, utcnow
from collector.services import store
from collector.services.broadcaster import Broadcaster, get_broadcaster
from collector.api.metrics import metrics_collector

router = APIRouter(prefix="/api", tags=["events"])


class SessionStartRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=255, description="Caller-assigned session id")
    agent_id: str = Field(..., description="Agent identifier")
    model: str = Field(..., description="Model the session runs on")


class CommandRequest(BaseModel):
    session_id: str = Field(..., description="Session the tool call belongs to")
    tool_name: str = Field(..., min_length=1, description="Tool name")
    duration_ms: int = Field(..., ge=0, description="Tool call duration in milliseconds")
    success: bool = Field(..., description="Whether the tool call succeeded")
    error: Optional[str] = Field(None, description="Error text for failed calls")


class LLMRequestPayload(BaseModel):
    session_id: str = Field(..., description="Session the model call belongs to")
    model: str = Field(..., min_length=1, description="Model identifier")
    provider: str = Field(..., description="Provider label")
    input_tokens: int = Field(..., ge=0)
    output_tokens: int = Field(..., ge=0)
    thinking_time_ms: Optional[int] = Field(None, ge=0)


class ProcessRequest(BaseModel):
    session_id: str = Field(..., description="Session the process belongs to")
    pid: str = Field(..., min_length=1, description="Process identifier")
    command: Optional[str] = Field(None, description="Command line")
    status: Literal["start", "end"]


class ThinkingRequest(BaseModel):
    session_id: str = Field(..., description="Session the reasoning step belongs to")
    thought: str = Field(..., description="Reasoning text")
    step: Union[int, str] = Field(..., description="Step number or label")


@router.post("/session/start")
async def start_session(
    request: SessionStartRequest,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Record a new agent session."""
    session = store.create_session(db, request.id, request.agent_id, request.model)
    metrics_collector.record_event("session_start")

    broadcaster.broadcast("session_start", {
        "id": request.id,
        "agent_id": request.agent_id,
        "model": request.model
    })
    return {"success": True, "session_id": session.id}


@router.post("/command")
async def record_command(
    request: CommandRequest,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Record a tool call outcome. The session does not have to exist."""
    command = store.record_command(
        db,
        session_id=request.session_id,
        tool_name=request.tool_name,
        duration_ms=request.duration_ms,
        success=request.success,
        error=request.error
    )
    metrics_collector.record_event("command")

    broadcaster.broadcast("command", {
        "session_id": request.session_id,
        "tool_name": request.tool_name,
        "duration_ms": request.duration_ms,
        "success": request.success,
        "timestamp": isoformat_utc(utcnow())
    })
    return {"success": True, "id": command.id}


@router.post("/llm")
async def record_llm_request(
    request: LLMRequestPayload,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Record a model call; tokens are totalled and priced on insert."""
    llm_request = store.record_llm_request(
        db,
        session_id=request.session_id,
        model=request.model,
        provider=request.provider,
        input_tokens=request.input_tokens,
        output_tokens=request.output_tokens,
        thinking_time_ms=request.thinking_time_ms
    )
    metrics_collector.record_event("llm")

    broadcaster.broadcast("llm", store.llm_request_to_dict(llm_request))
    return {"success": True, "id": llm_request.id}


@router.post("/process")
async def record_process(
    request: ProcessRequest,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Start or end a process. Ending an unknown pid is a successful no-op."""
    if request.status == "start":
        process = store.start_process(db, request.session_id, request.pid, request.command)
        metrics_collector.record_event("process_start")
        broadcaster.broadcast("process_start", {
            "session_id": request.session_id,
            "pid": request.pid,
            "command": request.command
        })
        return {"success": True, "id": process.id}

    store.end_process(db, request.pid)
    metrics_collector.record_event("process_end")
    broadcaster.broadcast("process_end", {
        "session_id": request.session_id,
        "pid": request.pid
    })
    return {"success": True}


@router.post("/thinking")
async def record_thinking(
    request: ThinkingRequest,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Log a reasoning step."""
    event = store.record_thinking(db, request.session_id, request.thought, request.step)
    metrics_collector.record_event("thinking")

    broadcaster.broadcast("thinking", {
        "session_id": request.session_id,
        "thought": request.thought,
        "step": request.step,
        "timestamp": isoformat_utc(utcnow())
    })
    return {"success": True, "id": event.id}
