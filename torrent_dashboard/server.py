"""
Torrent Dashboard server

Usage:
    torrent-dashboard                               # Bind to HOST:PORT from the environment
    torrent-dashboard --port 8080                   # Run on custom port
    torrent-dashboard --socket 127.0.0.1:5000       # Talk to rTorrent over TCP
    torrent-dashboard --reload                      # Run with auto-reload (development)
"""

import argparse
import os
import uvicorn
from .config import Config
from .logger import intercept_stdlib_logging, logger


def main():
    parser = argparse.ArgumentParser(
        description="Torrent Dashboard - web UI for rTorrent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                 Run on HOST:PORT (default 0.0.0.0:3000)
  %(prog)s --socket ~/.rtorrent.sock       Use a specific SCGI socket
  %(prog)s --socket localhost:5000         Use rTorrent's TCP SCGI port
  %(prog)s --host 127.0.0.1 --port 8080    Listen on localhost only

Endpoints:
  GET    /api/torrents             Cached torrent list (state, label, search, sort filters)
  GET    /api/stats                Global transfer statistics
  GET    /api/status               Connection and staleness indicator
  POST   /api/refresh              Refresh the snapshot now
  POST   /api/torrents             Add by URL or magnet
  POST   /api/torrents/upload      Add by .torrent file
  POST   /api/torrents/<hash>/pause|resume|stop|star|label
  DELETE /api/torrents/<hash>      Remove
        """
    )

    parser.add_argument(
        "--host",
        type=str,
        default=Config.HOST,
        help=f"Host to bind to (default: {Config.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=Config.PORT,
        help=f"Port to bind to (default: {Config.PORT})"
    )
    parser.add_argument(
        "--socket",
        type=str,
        default=None,
        help=f"rTorrent SCGI socket path or host:port (default: {Config.RTORRENT_SCGI})"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (development mode)"
    )

    args = parser.parse_args()

    # The app reads its connection settings from the environment at import
    if args.socket:
        os.environ["RTORRENT_SCGI"] = args.socket
        Config.RTORRENT_SCGI = args.socket

    intercept_stdlib_logging()
    logger.info(f"Starting Torrent Dashboard on {args.host}:{args.port}")
    logger.info(f"rTorrent SCGI target: {Config.RTORRENT_SCGI}")

    uvicorn.run(
        "torrent_dashboard.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
