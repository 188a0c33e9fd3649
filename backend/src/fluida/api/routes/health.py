"""
Health check endpoint.

Provides system health status for monitoring and load balancers.
"""

from fastapi import APIRouter, Request, Response, status

from fluida import __version__
from fluida.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """
    Check system health.

    Returns 503 when the database is unreachable so load balancers
    take the instance out of rotation.
    """
    settings = request.app.state.settings
    repository = request.app.state.repository
    watcher = request.app.state.watcher

    database_ok = await repository.ping()
    if not database_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=__version__,
        database="connected" if database_ok else "unavailable",
        solana_network=settings.solana_network,
        watcher_running=watcher.is_running,
    )
