from typing import Optional
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from torrent_dashboard.cache import SnapshotCache
from torrent_dashboard.errors import TorrentNotFound
from torrent_dashboard.logger import logger
from torrent_dashboard.models import TorrentState
from ..dependencies import get_cache
from ..schemas import AddTorrentRequest, SetLabelRequest, StatsView, TorrentView

router = APIRouter(prefix="/api", tags=["torrents"])


def torrent_response(cache: SnapshotCache, info_hash: str) -> dict:
    """The cached torrent after an action, or a bare acknowledgement if it is not cached yet."""
    torrent = cache.current_snapshot().get(info_hash)
    if torrent is None:
        return {"hash": info_hash}
    return TorrentView.from_torrent(torrent).model_dump()


@router.get("/torrents")
def list_torrents(
    state: Optional[TorrentState] = Query(None, description="Filter by lifecycle state"),
    label: Optional[str] = Query(None, description="Filter by label"),
    search: Optional[str] = Query(None, description="Case-insensitive name search"),
    starred: Optional[bool] = Query(None, description="Only starred (true) or unstarred (false)"),
    sort: Optional[str] = Query(None, description="name, size, progress, down_rate, up_rate or ratio"),
    order: str = Query("desc", description="asc or desc"),
    cache: SnapshotCache = Depends(get_cache),
):
    """
    List torrents from the cached snapshot.

    Never contacts the daemon; the background poller (or POST /api/refresh)
    keeps the snapshot current. ``stale`` is true when the last refresh failed.
    """
    try:
        torrents = cache.filtered(
            state=state, label=label, search=search, starred=starred,
            sort=sort, descending=order != "asc",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    snapshot = cache.current_snapshot()
    return {
        "torrents": [TorrentView.from_torrent(t).model_dump() for t in torrents],
        "counts": cache.counts(),
        "labels": cache.labels(),
        "fetched_at": snapshot.fetched_at,
        "stale": cache.is_stale,
        "error": str(cache.last_error) if cache.last_error else None,
    }


@router.get("/torrents/{info_hash}")
def get_torrent(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    torrent = cache.current_snapshot().get(info_hash)
    if torrent is None:
        raise TorrentNotFound(info_hash)
    return TorrentView.from_torrent(torrent).model_dump()


@router.get("/stats")
def get_stats(cache: SnapshotCache = Depends(get_cache)):
    return StatsView.from_stats(cache.current_snapshot().stats).model_dump()


@router.post("/refresh")
def refresh(cache: SnapshotCache = Depends(get_cache)):
    """Refresh the snapshot now instead of waiting for the poller."""
    snapshot = cache.refresh()
    return {"torrents": len(snapshot), "fetched_at": snapshot.fetched_at}


@router.post("/torrents/{info_hash}/pause")
def pause_torrent(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    cache.pause(info_hash)
    return torrent_response(cache, info_hash)


@router.post("/torrents/{info_hash}/resume")
def resume_torrent(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    cache.resume(info_hash)
    return torrent_response(cache, info_hash)


@router.post("/torrents/{info_hash}/stop")
def stop_torrent(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    cache.stop(info_hash)
    return torrent_response(cache, info_hash)


@router.post("/torrents/{info_hash}/star")
def toggle_star(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    cache.toggle_star(info_hash)
    return torrent_response(cache, info_hash)


@router.post("/torrents/{info_hash}/label")
def set_label(info_hash: str, request: SetLabelRequest, cache: SnapshotCache = Depends(get_cache)):
    cache.set_label(info_hash, request.label)
    return torrent_response(cache, info_hash)


@router.delete("/torrents/{info_hash}")
def remove_torrent(info_hash: str, cache: SnapshotCache = Depends(get_cache)):
    cache.remove(info_hash)
    return {"message": "Torrent removed", "hash": info_hash}


@router.post("/torrents")
def add_torrent(request: AddTorrentRequest, cache: SnapshotCache = Depends(get_cache)):
    """
    Add a torrent by HTTP/HTTPS URL or magnet URI.

    rTorrent fetches the URL itself. The torrent shows up after the next refresh.
    """
    url = request.url.strip()
    if not url.startswith(("http://", "https://", "magnet:")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Input must be a magnet link or HTTP/HTTPS URL"
        )
    cache.add_torrent_url(url, start=request.start)
    return {"message": "Torrent added successfully", "url": url}


@router.post("/torrents/upload")
def upload_torrent(
    file: UploadFile = File(...),
    start: bool = Query(True),
    cache: SnapshotCache = Depends(get_cache),
):
    """Add a torrent from an uploaded .torrent file."""
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    logger.debug(f"Received upload {file.filename} ({len(data)} bytes)")
    cache.add_torrent_file(data, start=start)
    return {"message": "Torrent added successfully", "filename": file.filename}
