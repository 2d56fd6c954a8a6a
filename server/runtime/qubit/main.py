"""
Qubit Message Service - Main Entry Point

FastAPI application that queues text messages and delivers them to the
recipient webhook from a background scheduler. Several instances can run
against the same database; row claims keep them from sending the same
message concurrently.
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from qubit.config import settings
from qubit.database import Base, SessionLocal, engine
from qubit.dependencies import build_message_service
from qubit.logging_config import configure_logging
from qubit.models import message as message_model  # noqa: F401  registers the messages table
from qubit.routes import health, messages, scheduler

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Qubit Message Service",
    description="Queued message delivery with a multi-instance safe dispatch loop",
    version="1.0.0",
)

# Security middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and latency of every request"""
    start_time = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start_time) * 1000
    client = request.client.host if request.client else "-"
    logger.info(
        f"[{request.method}] {request.url.path} | Status: {response.status_code} "
        f"| Latency: {latency_ms:.1f}ms | IP: {client}"
    )
    return response


def _describe(exc: RequestValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"Invalid request: {_describe(exc)}"},
    )


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(messages.router, prefix="/api/v1/messages", tags=["messages"])
app.include_router(scheduler.router, prefix="/api/v1/scheduler", tags=["scheduler"])


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("Qubit Message Service starting...")

    # Create database tables
    Base.metadata.create_all(bind=engine)

    service = build_message_service(settings, SessionLocal)
    app.state.message_service = service

    if settings.SCHEDULER_AUTOSTART:
        service.start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler and release the transport on shutdown"""
    logger.info("Qubit Message Service shutting down...")
    service = getattr(app.state, "message_service", None)
    if service is not None:
        service.stop_scheduler()
        service.dispatcher.transport.close()
    logger.info("Server shutdown complete")


if __name__ == "__main__":
    uvicorn.run(
        "qubit.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
