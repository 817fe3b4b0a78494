from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from collector.core.database import SessionLocal
from collector.models import AgentSession
from collector.services.balance import BalanceService, get_balance_service
from datetime import datetime
from typing import Dict, Any
import os

router = APIRouter()


async def check_database() -> Dict[str, Any]:
    """Check database connectivity and basic operations."""
    try:
        db = SessionLocal()
        try:
            # Test basic connectivity
            result = db.execute(text("SELECT 1"))
            result.fetchone()

            session_count = db.query(AgentSession).count()

            return {
                "status": "healthy",
                "session_count": session_count,
                "timestamp": datetime.now().isoformat()
            }
        finally:
            db.close()
    except SQLAlchemyError as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "timestamp": datetime.now().isoformat()
        }


def check_balance_history(service: BalanceService) -> Dict[str, Any]:
    """Check that the balance history side file can be written."""
    directory = service.history.path.parent
    writable = (
        os.access(directory, os.W_OK) if directory.exists()
        else os.access(directory.parent, os.W_OK)
    )
    return {
        "status": "healthy" if writable else "unhealthy",
        "path": str(service.history.path),
        "samples": len(service.history),
        "api_configured": service.client.configured,
        "timestamp": datetime.now().isoformat()
    }


@router.get("/healthz")
async def health_check(service: BalanceService = Depends(get_balance_service)):
    """
    Comprehensive health check endpoint.
    Returns 200 if storage is healthy, 503 if the database is down.
    """
    db_check = await check_database()
    balance_check = check_balance_history(service)

    all_healthy = all(
        check.get("status") == "healthy"
        for check in [db_check, balance_check]
    )

    # Balance history only feeds analytics, ingestion survives without it
    critical_healthy = db_check.get("status") == "healthy"

    overall_status = "healthy" if all_healthy else ("degraded" if critical_healthy else "unhealthy")

    response = {
        "status": overall_status,
        "timestamp": datetime.now().isoformat(),
        "checks": {
            "database": db_check,
            "balance_history": balance_check
        },
        "version": "1.0.0"
    }

    # Return appropriate HTTP status
    if overall_status == "unhealthy":
        raise HTTPException(status_code=503, detail=response)

    return response


@router.get("/health")
async def simple_health_check():
    """Simple health check for load balancers."""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}
