from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Literal, Optional

from collector.services.broadcaster import Broadcaster, get_broadcaster
from collector.services.status import AgentStatusTracker, get_status_tracker
from collector.api.metrics import metrics_collector

router = APIRouter(prefix="/api/agent", tags=["agent"])


class AgentStatusReport(BaseModel):
    state: Literal["idle", "thinking", "busy", "error"]
    current_action: Optional[str] = Field(None, description="What the agent is doing")
    session_id: Optional[str] = Field(None, description="Session the agent is working in")


@router.post("/status")
async def report_status(
    report: AgentStatusReport,
    tracker: AgentStatusTracker = Depends(get_status_tracker),
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Update the agent status and push it to subscribers."""
    status = tracker.report(
        state=report.state,
        current_action=report.current_action,
        session_id=report.session_id
    )
    metrics_collector.record_event("status")

    broadcaster.broadcast("status", status)
    return {"success": True, "status": status}


@router.get("/status")
async def get_status(tracker: AgentStatusTracker = Depends(get_status_tracker)):
    """Current agent status; elapsed_ms is set only while busy."""
    return tracker.get_status()
