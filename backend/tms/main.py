"""
Oracle Tuning & Monitoring Service - FastAPI Main Application
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import structlog
import time

from tms.config import settings
from tms.database import Base, app_engine, get_app_db_context
from tms.core.rbac import initialize_rbac
from tms.core.crypto import validate_encryption_key
from tms.core.errors import ApiError
from tms.connections import connection_manager, query_executor
from tms.services.collection_service import scheduled_collector
from tms.services.prefetch_scheduler import PrefetchScheduler

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("application_startup", version=settings.APP_VERSION)

    if not validate_encryption_key():
        logger.warning("weak_encryption_key", hint="Set ENCRYPTION_KEY to at least 32 characters")

    Base.metadata.create_all(bind=app_engine)
    with get_app_db_context() as db:
        initialize_rbac(db)
    logger.info("database_initialized")

    app.state.prefetch_scheduler = PrefetchScheduler(scheduled_collector(query_executor))

    yield

    # Shutdown
    await app.state.prefetch_scheduler.shutdown()
    connection_manager.close_all_connections()
    logger.info("application_shutdown")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Oracle Tuning & Monitoring Service - live performance views, history and tuning tools",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request timing to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# Exception handlers
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    """Translate the error taxonomy into the JSON envelope."""
    log_method = logger.error if exc.status_code >= 500 else logger.warning
    log_method(
        "api_error",
        code=exc.code,
        status=exc.status_code,
        error=exc.message,
        path=request.url.path,
        connection_id=request.query_params.get("connection_id") or request.path_params.get("connection_id")
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
        for error in exc.errors()
    ]
    logger.warning("validation_error", errors=details, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Invalid request",
            "details": details
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("unhandled_exception", error=str(exc), error_type=type(exc).__name__, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error"
        }
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "app": settings.APP_NAME,
        "oracle_pools": connection_manager.pool_statistics()
    }


@app.get("/", tags=["System"])
async def root():
    """Root endpoint."""
    return {
        "message": "Oracle Tuning & Monitoring Service API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }


# Import and include routers
from tms.api import (
    auth, profile, oracle_connections, oracle_execute, monitoring,
    plan_baselines, advisor, llm, scheduler
)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(profile.router, prefix="/api/profile", tags=["Profile"])
app.include_router(oracle_connections.router, prefix="/api/oracle/connections", tags=["Oracle Connections"])
app.include_router(oracle_execute.router, prefix="/api/oracle/execute", tags=["SQL"])
app.include_router(monitoring.router, prefix="/api/monitoring", tags=["Monitoring"])
app.include_router(plan_baselines.router, prefix="/api/plan-baselines", tags=["Plan Baselines"])
app.include_router(advisor.router, prefix="/api/advisor", tags=["Advisor"])
app.include_router(llm.router, prefix="/api/llm", tags=["AI Tuning Guide"])
app.include_router(scheduler.router, prefix="/api/scheduler", tags=["Scheduler"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tms.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
