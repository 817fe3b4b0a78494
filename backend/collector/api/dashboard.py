from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from collector.core.database import get_db
from collector.services import store

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard/summary")
async def get_summary(db: Session = Depends(get_db)):
    """Session, command, token and cost totals for sessions started in the last 24h."""
    return store.get_summary(db)


@router.get("/dashboard/recent")
async def get_recent_activity(
    limit: int = Query(50, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Latest commands and model calls, newest first."""
    return store.get_recent_activity(db, limit=limit)


@router.get("/dashboard/costs")
async def get_cost_breakdown(db: Session = Depends(get_db)):
    """Daily cost per model over the last 7 days."""
    return store.get_cost_breakdown(db, days=7)


@router.get("/thinking")
async def get_thinking_log(
    limit: int = Query(20, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Most recent reasoning steps."""
    return store.get_thinking_log(db, limit=limit)
