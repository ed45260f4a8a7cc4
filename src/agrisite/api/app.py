"""FastAPI application for site analysis.

Provides REST API endpoints for:
- Site analysis (groundwater, precipitation, accessibility)
- Health checks
- Request and upstream statistics

Example:
    >>> from agrisite.api import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn agrisite.api.app:app --reload
"""

import argparse
import logging
import sys
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agrisite.api.monitoring import RequestStats
from agrisite.api.schemas import AnalyzeRequest, ErrorResponse, HealthResponse
from agrisite.config import Settings
from agrisite.exceptions import AgrisiteError, ConfigurationError, InternalError
from agrisite.gateway import RequestContext, RequestState
from agrisite.orchestrator import SiteOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# Upper bound on a single analysis, in seconds
ANALYZE_TIMEOUT = 180.0

# Global orchestrator (owns the process-wide caches)
_orchestrator: Optional[SiteOrchestrator] = None


def get_orchestrator() -> SiteOrchestrator:
    """Get or create the global orchestrator.

    Raises:
        ConfigurationError: If settings or Earth Engine credentials are invalid
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(Settings.from_env())
    return _orchestrator


def _error_response(status_code: int, error: str, message: str, context=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, context=context).model_dump(),
    )


def create_app(
    orchestrator: Optional[SiteOrchestrator] = None,
    initialize: bool = True,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        orchestrator: Orchestrator to serve (the global one is used if omitted)
        initialize: Whether to build the global orchestrator on startup

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Agrisite API",
        description="Borehole siting, precipitation and field accessibility analysis",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    stats = RequestStats()
    app.state.orchestrator = orchestrator

    @app.on_event("startup")
    async def startup_event():
        """Build the orchestrator on startup."""
        if app.state.orchestrator is None and initialize:
            try:
                app.state.orchestrator = get_orchestrator()
                logger.info("Orchestrator initialized on startup")
            except ConfigurationError as e:
                logger.error(f"Failed to initialize orchestrator on startup: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release upstream sessions and clear caches."""
        if app.state.orchestrator is not None:
            app.state.orchestrator.close()
            logger.info("Orchestrator closed")

    @app.middleware("http")
    async def record_request(request: Request, call_next):
        response = await call_next(request)
        stats.record(request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with custom response."""
        return _error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return _error_response(
            400,
            "ValidationError",
            first.get("msg", "Invalid request"),
            context=location or None,
        )

    @app.exception_handler(AgrisiteError)
    async def agrisite_exception_handler(request: Request, exc: AgrisiteError):
        original = f" (caused by {exc.original!r})" if exc.original else ""
        logger.error(f"{type(exc).__name__} in {exc.context}: {exc.message}{original}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error handling {request.method} {request.url.path}")
        error = InternalError(str(exc) or type(exc).__name__, original=exc)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.get("/", tags=["info"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Agrisite API",
            "version": API_VERSION,
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse, tags=["info"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            orchestrator_ready=app.state.orchestrator is not None,
            version=API_VERSION,
        )

    @app.get("/stats", tags=["info"])
    async def request_stats():
        """Request counters plus upstream call and cache statistics."""
        snapshot = stats.snapshot()
        if app.state.orchestrator is not None:
            snapshot["gateway"] = app.state.orchestrator.gateway.stats()
        return snapshot

    @app.post(
        "/analyze",
        responses={
            400: {"model": ErrorResponse, "description": "Invalid request"},
            422: {"model": ErrorResponse, "description": "Insufficient data"},
            500: {"model": ErrorResponse, "description": "Server error"},
            502: {"model": ErrorResponse, "description": "Upstream failure"},
            503: {"model": ErrorResponse, "description": "Service not ready"},
        },
        tags=["analysis"],
    )
    def analyze(request: AnalyzeRequest):
        """Analyze a field polygon.

        Runs precipitation, groundwater and accessibility analysis and returns
        the combined site report.
        """
        orchestrator = app.state.orchestrator
        if orchestrator is None:
            raise HTTPException(
                status_code=503,
                detail="Analysis service not initialized. Please try again later.",
            )

        context = RequestContext(timeout=ANALYZE_TIMEOUT)
        logger.info(f"[{context.request_id}] Site analysis requested")

        feature = request.polygon.model_dump()
        feature["properties"] = feature.get("properties") or {}
        report = orchestrator.analyze_site(
            feature,
            reference_places=[place.model_dump() for place in request.reference_places],
            context=context,
            start_date=request.start_date,
            end_date=request.end_date,
            source=request.source.lower(),
        )
        context.transition(RequestState.RESPONDED)
        return report.to_dict()

    return app


def main(argv: Optional[list[str]] = None) -> int:
    """Run the API server with uvicorn.

    Returns:
        0 on normal shutdown, 1 if initialization fails
    """
    import uvicorn

    parser = argparse.ArgumentParser(description="Run the agrisite analysis API")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        orchestrator = build_orchestrator(Settings.from_env())
    except ConfigurationError as e:
        logger.error(f"Initialization failed: {e}")
        return 1

    try:
        uvicorn.run(create_app(orchestrator=orchestrator), host=args.host, port=args.port)
    except OSError as e:
        logger.error(f"Server failed to start: {e}")
        return 1
    return 0


# Default app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    sys.exit(main())
