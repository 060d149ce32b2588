from fastapi import APIRouter, Depends

from torrent_dashboard import __version__
from torrent_dashboard.cache import SnapshotCache
from ..dependencies import get_cache

router = APIRouter(tags=["pages"])


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@router.get("/api/status")
def daemon_status(cache: SnapshotCache = Depends(get_cache)):
    """Connection state for the dashboard's header and stale indicator."""
    snapshot = cache.current_snapshot()
    return {
        "version": __version__,
        "rtorrent_version": snapshot.client_version or "Disconnected",
        "connected": snapshot.fetched_at > 0 and not cache.is_stale,
        "stale": cache.is_stale,
        "fetched_at": snapshot.fetched_at,
        "error": str(cache.last_error) if cache.last_error else None,
        "error_at": cache.last_error_at,
    }
