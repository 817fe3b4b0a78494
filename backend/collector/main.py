from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import time
import uuid
import logging
from contextlib import asynccontextmanager, suppress

from collector.core.config import settings
from collector.core.database import init_db
from collector.core.errors import CollectorError
from collector.api import agent, dashboard, events, health, metrics, moonshot, stream
from collector.api.metrics import metrics_collector
from collector.services.balance import balance_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting agent telemetry collector")

    # Create database tables
    init_db()

    # One poller serializes balance fetches into the history
    poller = None
    if balance_service.client.configured and settings.balance_poll_interval_seconds > 0:
        poller = asyncio.create_task(
            balance_service.run_poller(settings.balance_poll_interval_seconds)
        )
    else:
        logger.info("Balance poller disabled")

    yield

    # Shutdown
    if poller is not None:
        poller.cancel()
        with suppress(asyncio.CancelledError):
            await poller
    logger.info("Shutting down agent telemetry collector")


# Create FastAPI app
app = FastAPI(
    title="Agent Telemetry Collector",
    description="Ingests agent telemetry, prices model usage and streams live updates",
    version="1.0.0",
    lifespan=lifespan
)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add unique request ID for tracing."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing."""
    start_time = time.time()

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        "%s %s -> %s (%.2f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "client_ip": request.client.host if request.client else "unknown"
        }
    )

    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, error) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "status_code": status_code,
            "request_id": getattr(request.state, "request_id", "unknown")
        }
    )


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or incomplete request bodies are client errors."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))

    metrics_collector.record_error("ValidationError")
    return _error_response(request, 400, "; ".join(problems) or "Invalid request")


@app.exception_handler(CollectorError)
async def collector_exception_handler(request: Request, exc: CollectorError):
    """Persistence and upstream failures keep their underlying message."""
    logger.warning(
        f"{type(exc).__name__}: {exc.message}",
        extra={"request_id": getattr(request.state, "request_id", "unknown")}
    )
    metrics_collector.record_error(type(exc).__name__)
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "exception_type": type(exc).__name__
        },
        exc_info=True
    )

    return _error_response(request, 500, "Internal server error")


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(events.router)
app.include_router(agent.router)
app.include_router(dashboard.router)
app.include_router(moonshot.router)
app.include_router(stream.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Agent Telemetry Collector",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "stream": "/ws"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "collector.main:app",
        host=settings.host,
        port=settings.port,
        reload=True if settings.environment == "development" else False,
        log_level="info"
    )
