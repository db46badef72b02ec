"""
Answer Desk - FastAPI Application Entry Point.

create_app() builds the application from an explicit Settings object:
1. Sets up structured JSON logging
2. Builds the database engine and session factory (kept on app.state)
3. Adds CORS and request ID middleware (X-Request-ID header)
4. Registers the exception handlers that shape error responses
5. Registers all API route handlers and the health check

Run locally with:
    uvicorn answerdesk.main:create_app --factory --app-dir backend --reload
"""

import time
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from answerdesk.config import Settings
from answerdesk.database import build_engine, build_session_factory, create_tables
from answerdesk.errors import AppError
from answerdesk.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from answerdesk.routes import answer_sheets, flags, missing_papers, notifications

logger = get_logger("http")


def _error_response(request: Request, status_code: int, message: str,
                    exc: Optional[BaseException] = None) -> JSONResponse:
    body = {"success": False, "error": message}
    settings: Settings = request.app.state.settings
    if exc is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        level = "ERROR" if exc.status_code >= 500 else "WARNING"
        log_with_context(logger, level, exc.message,
            context={"path": request.url.path},
            extra_data={"status_code": exc.status_code, "error_type": type(exc).__name__})
        return _error_response(request, exc.status_code, exc.message,
                               exc if exc.status_code >= 500 else None)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = "{}: {}".format(field, first.get("msg")) if field else str(first.get("msg", "Invalid request"))
        log_with_context(logger, "WARNING", "Request validation failed",
            context={"path": request.url.path},
            extra_data={"errors": len(errors), "first": message})
        return _error_response(request, 400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_with_context(logger, "ERROR", "Unhandled error: {}".format(exc),
            context={"path": request.url.path},
            extra_data={"error_type": type(exc).__name__},
            exc_info=True)
        return _error_response(request, 500, "Internal server error", exc)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level, settings.app_name)

    engine = build_engine(settings)
    if settings.create_tables_on_startup:
        log_with_context(get_logger("db"), "INFO", "Creating tables directly",
            extra_data={"database": engine.url.get_backend_name()})
        create_tables(engine)

    app = FastAPI(
        title="Answer Desk",
        description=(
            "Answer-sheet data-quality flags, missing-paper tracking with an "
            "acknowledgment workflow, and staff notifications."
        ),
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Tag every request with a UUID, echo it back and log start/finish with latency."""
        req_id = generate_request_id()
        request_id_var.set(req_id)
        start_time = time.time()

        log_with_context(logger, "INFO",
            f"Request started: {request.method} {request.url.path}",
            context={"request_id": req_id},
            extra_data={
                "ip": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent", ""),
                "query_params": dict(request.query_params)
            })

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = req_id

        log_with_context(logger, "INFO",
            f"Request completed: {request.method} {request.url.path} → {response.status_code}",
            context={"request_id": req_id},
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "status_code": response.status_code
            })
        return response

    register_exception_handlers(app)

    app.include_router(notifications.router, tags=["Notifications"])
    app.include_router(flags.router, tags=["Flags"])
    app.include_router(missing_papers.router, tags=["Missing Papers"])
    app.include_router(answer_sheets.router, tags=["Answer Sheets"])

    @app.get("/health", tags=["Health"])
    def health_check():
        return {"status": "healthy", "service": "answerdesk", "version": settings.version}

    @app.get("/", tags=["Root"])
    def root():
        """Root endpoint with API information."""
        return {
            "service": "Answer Desk",
            "version": settings.version,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "notifications": "GET /api/notifications",
                "flags": "GET /api/flags/{answer_sheet_id}",
                "auto_detect": "POST /api/flags/{answer_sheet_id}/auto-detect",
                "report_missing": "POST /api/missing-papers/report",
                "admin_missing": "GET /api/missing-papers/admin",
                "completion_status": "GET /api/missing-papers/completion-status/{exam_id}",
                "register_sheet": "POST /api/answer-sheets",
            }
        }

    return app

