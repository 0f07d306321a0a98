"""
ThemeSync Backend — FastAPI Application Factory

App creation, middleware (CORS, request ID logging), error handlers,
storage wiring, router registration.
Run with: uvicorn themesync.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from themesync.api import export, sprint, themes, transcripts, voting
from themesync.config import generate_error_code, log, settings
from themesync.errors import ThemeSyncError
from themesync.storage import Storage, build_storage

VERSION = "0.1.0"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Log the X-Request-Id header from every incoming request.

    The frontend includes X-Request-Id on every fetch call.
    This middleware logs it so REST errors can be correlated with backend logs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", "none")
        log(
            "INFO",
            "request received",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
        )
        response = await call_next(request)
        return response


# ─────────────────────────────────────────────────────────────────────────────
# Error handlers
# ─────────────────────────────────────────────────────────────────────────────


async def themesync_error_handler(request: Request, exc: ThemeSyncError) -> JSONResponse:
    """Render every ThemeSyncError as { message, error, errorCode }."""
    code = generate_error_code()
    level = "ERROR" if exc.status_code >= 500 else "WARN"
    log(
        level,
        "request failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        message=exc.message,
        error=exc.error,
        error_code=code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "error": exc.error, "errorCode": code},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures are 400 with field-level detail, raised before any side effect."""
    code = generate_error_code()
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    log("WARN", "request validation failed", path=request.url.path, errors=len(errors), error_code=code)
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": errors, "errorCode": code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = generate_error_code()
    log("ERROR", "unhandled exception", path=request.url.path, error=str(exc), error_code=code)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "error": str(exc), "errorCode": code},
    )


# ─────────────────────────────────────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────────────────────────────────────


def create_app(storage: Storage | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Steps:
        1. Create FastAPI instance with title, version, description
        2. Attach storage (given, else built from settings.storage_backend)
        3. Add CORS middleware (origins from settings.cors_origins)
        4. Add request ID logging middleware
        5. Register error handlers
        6. Register routers
        7. Return the app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        project = await app.state.storage.ensure_default_project()
        log("INFO", "themesync started", environment=settings.environment, project_id=project.id)
        yield

    app = FastAPI(
        title="ThemeSync API",
        version=VERSION,
        description="Research transcript synthesis: AI theme extraction, editing, dot voting and exports.",
        lifespan=lifespan,
    )
    app.state.storage = storage or build_storage()

    # CORS
    origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[themes.ACTIVE_FILTERS_HEADER, "Content-Disposition"],
    )

    # Request ID logging
    app.add_middleware(RequestIdMiddleware)

    # Errors
    app.add_exception_handler(ThemeSyncError, themesync_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Routers
    app.include_router(transcripts.router)
    app.include_router(sprint.router)
    app.include_router(themes.router)
    app.include_router(voting.router)
    app.include_router(export.router)

    @app.get("/api/health")
    async def health_check():
        """
        GET /api/health

        Returns: { "status": "ok", "version": "0.1.0" }
        """
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
