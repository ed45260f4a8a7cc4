"""Site analysis API for agrisite.

This module provides:

- create_app: Factory function to create FastAPI application
- AnalyzeRequest: Request schema for site analysis
- ErrorResponse: Error payload returned for failed requests
- get_orchestrator: Global orchestrator getter

Note: FastAPI-dependent exports (create_app, get_orchestrator) are lazy-loaded
to allow importing schemas without FastAPI installed.
"""

# Schemas can be imported directly (only depend on pydantic)
from agrisite.api.schemas import (
    AnalyzeRequest,
    ErrorResponse,
    HealthResponse,
    PolygonFeature,
    ReferencePlaceModel,
)


# Lazy imports for FastAPI-dependent components
def __getattr__(name):
    """Lazy load FastAPI-dependent components."""
    if name in ("create_app", "get_orchestrator", "main"):
        from agrisite.api import app as app_module

        return getattr(app_module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "create_app",
    "get_orchestrator",
    "main",
    "AnalyzeRequest",
    "ErrorResponse",
    "HealthResponse",
    "PolygonFeature",
    "ReferencePlaceModel",
]
