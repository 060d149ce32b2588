"""
Torrent Dashboard - view and control an rTorrent daemon from the browser.

Talks XML-RPC to rTorrent over its SCGI socket and keeps a consistent snapshot
of the torrent list and global stats for the web layer to poll.
"""

from .cache import SnapshotCache
from .config import Config, ConnectionConfig
from .gateway import Gateway

__version__ = "0.1.0"
__all__ = ["SnapshotCache", "Gateway", "Config", "ConnectionConfig"]
