"""
Zinara API - Oncology Patient Companion

Backend for patients living with cancer and the people caring for them.

This API provides:
- Account registration and login
- A personalized 3-step onboarding questionnaire
- AI-assisted treatment, diet, chat, report and second-opinion features
- Side effect logging and clinical trial search
- Comprehensive logging and observability
"""

import asyncio
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import admin, ai, auth, clinical_trials, onboarding, profile, reports, side_effects
from config.config import Settings, get_settings
from config.logging_config import configure_logging, get_logger, log_request_context
from database.database import Database
from models.models import ErrorResponse, HealthResponse, HealthStatus
from services.ai_service import OncologyAIService
from services.auth_service import get_client_ip
from services.cache_service import CacheClient
from services.clinical_trials_service import ClinicalTrialsService
from services.exceptions import ServiceError
from services.question_catalog import seed_questions

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the database, cache and AI clients on startup and closes them
    on shutdown.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    database = Database(settings.database_url, echo=settings.database_echo)
    database.connect()
    database.create_tables()
    if settings.seed_questions_on_startup:
        with database.session() as session:
            seed_questions(session)

    cache = CacheClient(settings.redis_url, default_ttl=settings.cache_default_ttl_seconds)
    await cache.connect()

    ai_service = OncologyAIService(settings)
    if not ai_service.configured:
        logger.warning("LLM API key not configured, AI features run in demo mode")

    app.state.database = database
    app.state.cache = cache
    app.state.ai_service = ai_service
    app.state.trials_service = ClinicalTrialsService(settings)

    yield

    # Shutdown
    logger.info("Application shutting down")
    await ai_service.close()
    await cache.disconnect()
    database.disconnect()


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details,
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json"),
        headers=headers,
    )


def _describe_validation_error(error: dict) -> tuple[str, str]:
    """Field name and readable message for one pydantic error."""
    loc = [str(part) for part in error.get("loc", ())]
    # Leading segment names where the value came from
    if loc and loc[0] in ("body", "query", "path", "header"):
        loc = loc[1:]
    field = ".".join(loc) or "request"
    message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
    return field, message


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        # Bind request context for all logs in this request
        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=get_client_ip(request),
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with structured response."""
        return _error_response(
            request,
            exc.status_code,
            f"HTTP_{exc.status_code}",
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Reject invalid input with 400, naming the first invalid field."""
        errors = [
            {"field": field, "message": message}
            for field, message in map(_describe_validation_error, exc.errors())
        ]
        first = errors[0] if errors else {"field": "request", "message": "Invalid request"}
        logger.info("Request validation failed", field=first["field"])
        return _error_response(
            request,
            400,
            "VALIDATION_ERROR",
            f"Invalid {first['field']}: {first['message']}",
            details={"errors": errors},
        )

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request: Request, exc: ServiceError):
        """Translate domain errors raised by services."""
        if exc.status_code >= 500:
            logger.error("Service error", error_code=exc.error_code, error=exc.message)
        return _error_response(request, exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root(request: Request):
        """Root endpoint with API information."""
        settings: Settings = request.app.state.settings
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for monitoring.

        Returns 200 when every configured component responds, 503 otherwise.
        """
        settings: Settings = request.app.state.settings
        checks = {
            "api": True,
            "database": await asyncio.to_thread(request.app.state.database.ping),
        }
        if settings.redis_url:
            checks["cache"] = await request.app.state.cache.ping()

        status = HealthStatus.HEALTHY if all(checks.values()) else HealthStatus.DEGRADED
        body = HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )
        return JSONResponse(
            status_code=200 if status == HealthStatus.HEALTHY else 503,
            content=body.model_dump(mode="json"),
        )

    app.include_router(auth.auth_router)
    app.include_router(auth.patients_router)
    app.include_router(onboarding.router)
    app.include_router(profile.router)
    app.include_router(ai.router)
    app.include_router(reports.router)
    app.include_router(side_effects.router)
    app.include_router(clinical_trials.router)
    app.include_router(admin.router)


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
