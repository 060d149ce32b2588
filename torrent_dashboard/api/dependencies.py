from fastapi import Request, status
from fastapi.responses import JSONResponse

from torrent_dashboard.cache import SnapshotCache
from torrent_dashboard.errors import (
    DashboardError, GatewayError, MappingError, ProtocolError, RemoteFault, TorrentNotFound, TransportError,
)
from torrent_dashboard.logger import logger


def get_cache(request: Request) -> SnapshotCache:
    """Dependency returning the application's snapshot cache."""
    return request.app.state.cache


def error_status(error: DashboardError) -> int:
    if isinstance(error, TorrentNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, RemoteFault):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, (ProtocolError, MappingError)):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, (GatewayError, TransportError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    """Render daemon errors as JSON instead of failing the request."""
    status_code = error_status(exc)
    logger.error(f"{request.method} {request.url.path} failed: {exc}")

    content = {"detail": str(exc)}
    if isinstance(exc, RemoteFault):
        content["fault_code"] = exc.code
        content["fault_message"] = exc.message
    return JSONResponse(status_code=status_code, content=content)
