"""
Telemetry persistence and windowed queries.

Every write commits its own transaction and raises PersistenceError (after
rolling back) when the database refuses it. Reads return plain dicts ready
for JSON responses.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector.core.errors import PersistenceError
from collector.models import AgentSession, Command, LLMRequest, Process, Event
from collector.models.base import isoformat_utc, utcnow
from collector.services.cost import calculate_cost

logger = logging.getLogger(__name__)

THINKING_EVENT = "thinking"


def _commit(db: Session, record, action: str):
    db.add(record)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to %s: %s", action, e)
        raise PersistenceError(str(e.orig) if getattr(e, "orig", None) else str(e)) from e
    db.refresh(record)
    return record


# Writes

def create_session(db: Session, session_id: str, agent_id: str, model: str) -> AgentSession:
    """Insert an active session; an existing id is a PersistenceError."""
    session = AgentSession(id=session_id, agent_id=agent_id, model=model, status="active")
    return _commit(db, session, "start session")


def record_command(
    db: Session,
    session_id: str,
    tool_name: str,
    duration_ms: int,
    success: bool,
    error: Optional[str] = None,
) -> Command:
    command = Command(
        session_id=session_id,
        tool_name=tool_name,
        duration_ms=duration_ms,
        success=success,
        error=error or None,
    )
    return _commit(db, command, "record command")


def record_llm_request(
    db: Session,
    session_id: str,
    model: str,
    provider: Optional[str],
    input_tokens: int,
    output_tokens: int,
    thinking_time_ms: Optional[int] = None,
) -> LLMRequest:
    """Insert a usage row with total_tokens and cost derived once, here."""
    request = LLMRequest(
        session_id=session_id,
        model=model,
        provider=provider,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        cost_usd=calculate_cost(model, input_tokens, output_tokens),
        thinking_time_ms=thinking_time_ms,
    )
    return _commit(db, request, "record llm request")


def start_process(db: Session, session_id: str, pid: str, command: Optional[str] = None) -> Process:
    process = Process(session_id=session_id, pid=pid, command=command, status="running")
    return _commit(db, process, "start process")


def end_process(db: Session, pid: str) -> Optional[Process]:
    """Close the most recent process row with this pid.

    Matching is by pid alone, not session + pid. Returns None (and changes
    nothing) when the pid was never started.
    """
    process = (
        db.query(Process)
        .filter(Process.pid == pid)
        .order_by(Process.id.desc())
        .first()
    )
    if process is None:
        return None

    process.status = "completed"
    process.ended_at = utcnow()
    return _commit(db, process, "end process")


def record_thinking(db: Session, session_id: str, thought: str, step: Any) -> Event:
    event = Event(
        session_id=session_id,
        event_type=THINKING_EVENT,
        data=json.dumps({"thought": thought, "step": step}),
    )
    return _commit(db, event, "record thinking")


# Serializers

def llm_request_to_dict(request: LLMRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "session_id": request.session_id,
        "model": request.model,
        "provider": request.provider,
        "input_tokens": request.input_tokens,
        "output_tokens": request.output_tokens,
        "total_tokens": request.total_tokens,
        "cost_usd": request.cost_usd,
        "thinking_time_ms": request.thinking_time_ms,
        "timestamp": isoformat_utc(request.timestamp),
    }


# Queries

def get_summary(db: Session, window: timedelta = timedelta(hours=24),
                now: Optional[datetime] = None) -> Dict[str, Any]:
    """Aggregate counts over sessions started within ``window``.

    Commands and usage rows count only when their session started inside the
    window, so a recent command on an old session is excluded. Active
    sessions are counted regardless of start time.
    """
    cutoff = (now or utcnow()) - window

    total_sessions = (
        db.query(func.count(AgentSession.id))
        .filter(AgentSession.started_at > cutoff)
        .scalar()
    )
    active_sessions = (
        db.query(func.count(AgentSession.id))
        .filter(AgentSession.status == "active")
        .scalar()
    )
    total_commands = (
        db.query(func.count(Command.id))
        .join(AgentSession, Command.session_id == AgentSession.id)
        .filter(AgentSession.started_at > cutoff)
        .scalar()
    )
    input_tokens, output_tokens, total_cost = (
        db.query(
            func.coalesce(func.sum(LLMRequest.input_tokens), 0),
            func.coalesce(func.sum(LLMRequest.output_tokens), 0),
            func.coalesce(func.sum(LLMRequest.cost_usd), 0.0),
        )
        .join(AgentSession, LLMRequest.session_id == AgentSession.id)
        .filter(AgentSession.started_at > cutoff)
        .one()
    )

    return {
        "total_sessions": total_sessions or 0,
        "active_sessions": active_sessions or 0,
        "total_commands": total_commands or 0,
        "total_input_tokens": int(input_tokens),
        "total_output_tokens": int(output_tokens),
        "total_cost": float(total_cost),
    }


def get_recent_activity(db: Session, limit: int = 50) -> List[Dict[str, Any]]:
    """Commands and usage rows interleaved newest first, at most ``limit``."""
    commands = db.query(Command).order_by(Command.timestamp.desc()).limit(limit).all()
    requests = db.query(LLMRequest).order_by(LLMRequest.timestamp.desc()).limit(limit).all()

    rows = [
        {
            "type": "command",
            "name": c.tool_name,
            "timestamp": c.timestamp,
            "session_id": c.session_id,
            "duration_ms": c.duration_ms,
            "success": c.success,
        }
        for c in commands
    ]
    # Usage rows reuse duration_ms for their token count
    rows.extend(
        {
            "type": "llm",
            "name": r.model,
            "timestamp": r.timestamp,
            "session_id": r.session_id,
            "duration_ms": r.total_tokens,
            "success": None,
        }
        for r in requests
    )

    rows.sort(key=lambda row: row["timestamp"], reverse=True)
    rows = rows[:limit]
    for row in rows:
        row["timestamp"] = isoformat_utc(row["timestamp"])
    return rows


def get_cost_breakdown(db: Session, days: int = 7,
                       now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Usage grouped by calendar date and model over the trailing ``days``."""
    cutoff = (now or utcnow()) - timedelta(days=days)
    day = func.date(LLMRequest.timestamp)

    rows = (
        db.query(
            day.label("date"),
            LLMRequest.model,
            func.count(LLMRequest.id).label("request_count"),
            func.sum(LLMRequest.input_tokens).label("input_tokens"),
            func.sum(LLMRequest.output_tokens).label("output_tokens"),
            func.sum(LLMRequest.cost_usd).label("cost"),
        )
        .filter(LLMRequest.timestamp > cutoff)
        .group_by(day, LLMRequest.model)
        .order_by(day.desc(), LLMRequest.model)
        .all()
    )

    return [
        {
            "date": str(row.date),
            "model": row.model,
            "request_count": row.request_count,
            "input_tokens": int(row.input_tokens or 0),
            "output_tokens": int(row.output_tokens or 0),
            "cost": float(row.cost or 0.0),
        }
        for row in rows
    ]


def get_thinking_log(db: Session, limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent reasoning steps with their payload decoded."""
    events = (
        db.query(Event)
        .filter(Event.event_type == THINKING_EVENT)
        .order_by(Event.timestamp.desc(), Event.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "session_id": e.session_id,
            "event_type": e.event_type,
            "timestamp": isoformat_utc(e.timestamp),
            "data": json.loads(e.data or "{}"),
        }
        for e in events
    ]
