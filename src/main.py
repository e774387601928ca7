"""
Prompt Workstation

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Type

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.api.deps import DbSession
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import get_settings
from src.database import close_db, init_db
from src.kernel.errors import (
    AssemblyError,
    ConflictDetected,
    DependencyCycle,
    ExportValidationFailed,
    InvariantViolation,
    NotFound,
    PlanStale,
    StorageTransactionFailed,
    UnresolvedCriticalDependency,
    ValidationError,
)
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)

# InvalidTransition and NotAssigned map through their parent class
ERROR_STATUS: Dict[Type[AssemblyError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvariantViolation: status.HTTP_409_CONFLICT,
    ConflictDetected: status.HTTP_409_CONFLICT,
    UnresolvedCriticalDependency: status.HTTP_409_CONFLICT,
    DependencyCycle: status.HTTP_409_CONFLICT,
    PlanStale: status.HTTP_409_CONFLICT,
    ExportValidationFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StorageTransactionFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: AssemblyError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Prompt Workstation

    Assemble coding-assistant configurations from a shared library of
    agents, rules and hooks, then export them as a Claude Code bundle.

    ## Features

    - **Projects**: Named workspaces that select resources from the library
    - **Resources**: Shared agents, rules and hooks, reusable across projects
    - **Dependencies**: requires / enhances / conflicts edges between resources
    - **Assignments**: Validated, transactional assign / unassign / reorder
    - **Imports**: Bulk import as preview -> approve -> apply
    - **Export**: Deterministic CLAUDE.md, settings, agents, rules and hooks files

    ## Invariants

    1. At most one primary resource per type per project
    2. A resource is assigned to a project at most once
    3. No assignment change leaves a blocking conflict or unmet critical dependency
    4. Every mutation is audited in the same transaction
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: CORS is added last so it wraps everything
app.add_middleware(RequestIdMiddleware, slow_request_ms=settings.slow_request_ms)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
)


def _error_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {REQUEST_ID_HEADER: req_id} if req_id else {}


@app.exception_handler(AssemblyError)
async def assembly_error_handler(request: Request, exc: AssemblyError):
    """Engine errors keep their code and details so clients can act on them."""
    status_code = status_for(exc)
    content = exc.to_dict()
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        content["request_id"] = req_id

    if status_code >= 500:
        logger.error("Engine error: %s", exc.message, extra={"error_code": exc.code})
    else:
        logger.info("Request rejected: %s", exc.message, extra={"error_code": exc.code})
    return JSONResponse(status_code=status_code, content=content, headers=_error_headers(request))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    content = {"detail": exc.detail}
    req_id = getattr(request.state, "request_id", None)
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=_error_headers(request))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    content = {"detail": "Validation error", "code": "validation_error", "errors": errors}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        content["request_id"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        headers=_error_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {
            "detail": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_error_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: DbSession):
    """Check application and database health."""
    database = "connected"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Health check database probe failed: %s", exc)
        database = "unavailable"

    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        version=settings.version,
        database=database,
        suggestions_configured=bool(settings.suggestion_service_url),
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
