import asyncio
from typing import Optional
from fastapi import FastAPI

from torrent_dashboard import __version__
from torrent_dashboard.cache import SnapshotCache
from torrent_dashboard.config import Config
from torrent_dashboard.errors import DashboardError
from torrent_dashboard.gateway import Gateway
from torrent_dashboard.logger import logger
from torrent_dashboard.polling import SnapshotPoller

from .dependencies import dashboard_error_handler
from .routes import pages, torrents


def create_app(cache: Optional[SnapshotCache] = None, poll: bool = True) -> FastAPI:
    """
    Build the dashboard application around a snapshot cache.

    With ``poll`` the background poller refreshes the cache every
    POLL_INTERVAL seconds while the app is running.
    """
    app = FastAPI(
        title="Torrent Dashboard",
        description="View and control torrents in an rTorrent daemon",
        version=__version__,
    )
    app.state.cache = cache or SnapshotCache(Gateway(Config.connection()))
    app.state.poller = SnapshotPoller(app.state.cache) if poll else None
    app.state.poll_task = None

    app.add_exception_handler(DashboardError, dashboard_error_handler)

    app.include_router(pages.router)
    app.include_router(torrents.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting Torrent Dashboard (rTorrent at {app.state.cache.gateway.config.target})")
        if app.state.poller is not None:
            app.state.poll_task = asyncio.create_task(app.state.poller.run())

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.poller is not None:
            app.state.poller.stop()
        if app.state.poll_task is not None:
            app.state.poll_task.cancel()

    return app


app = create_app()
