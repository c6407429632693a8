"""
Health Check Routes

Liveness and readiness endpoints.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, status

from nldb import __version__
from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container
from nldb.models.api import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    """
    Basic liveness check.

    Returns 200 OK if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/ready")
async def readiness(container: ServiceContainer = Depends(get_container)) -> dict[str, object]:
    """Report which services are usable without calling any of them."""
    return {
        "status": "ready",
        "checks": {
            "logged_in": container.session.logged_in,
            "env_configured": bool(container.session.env_id),
            "docs_indexed": container.index.ready,
            "doc_chunks": container.index.chunk_count,
        },
    }
