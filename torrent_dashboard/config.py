import os
import tempfile
from dataclasses import dataclass

import dotenv


dotenv.load_dotenv()


# Defaults
DEBUG = True
VERBOSE = False
LOG_PATH = "torrent_dashboard.log"
LOG_LEVEL = "DEBUG" if DEBUG else "INFO"
LOG_ROTATION = "1 week"
LOG_RETENTION = "1 month"

# rTorrent SCGI endpoint: a UNIX socket path or host:port
RTORRENT_SCGI = "/tmp/rtorrent.sock"
RTORRENT_VIEW = "main"

RPC_TIMEOUT = 10.0         # Seconds for a whole request/response round trip
RPC_MAX_RETRIES = 2        # Extra attempts after a transport failure
RPC_RETRY_BACKOFF = 0.2    # Seconds, doubled on each retry

POLL_INTERVAL = 5          # Seconds between background snapshot refreshes


@dataclass(frozen=True)
class ConnectionConfig:
    """Immutable daemon connection settings, built once at startup."""
    target: str = RTORRENT_SCGI
    timeout: float = RPC_TIMEOUT
    max_retries: int = RPC_MAX_RETRIES
    retry_backoff: float = RPC_RETRY_BACKOFF
    view: str = RTORRENT_VIEW


class Config:
    VERBOSE = os.getenv("VERBOSE", str(VERBOSE)).lower() == "true"

    LOG_PATH = os.getenv("LOG_PATH", LOG_PATH)
    LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL)
    LOG_ROTATION = os.getenv("LOG_ROTATION", LOG_ROTATION)
    LOG_RETENTION = os.getenv("LOG_RETENTION", LOG_RETENTION)

    RTORRENT_SCGI = os.getenv("RTORRENT_SCGI", RTORRENT_SCGI)
    RTORRENT_VIEW = os.getenv("RTORRENT_VIEW", RTORRENT_VIEW)

    RPC_TIMEOUT = float(os.getenv("RPC_TIMEOUT", RPC_TIMEOUT))
    RPC_MAX_RETRIES = int(os.getenv("RPC_MAX_RETRIES", RPC_MAX_RETRIES))
    RPC_RETRY_BACKOFF = float(os.getenv("RPC_RETRY_BACKOFF", RPC_RETRY_BACKOFF))

    POLL_INTERVAL = int(os.getenv("POLL_INTERVAL", POLL_INTERVAL))

    # Dashboard HTTP listener
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3000"))

    @classmethod
    def connection(cls) -> ConnectionConfig:
        """Snapshot the daemon connection settings."""
        return ConnectionConfig(
            target=cls.RTORRENT_SCGI,
            timeout=cls.RPC_TIMEOUT,
            max_retries=cls.RPC_MAX_RETRIES,
            retry_backoff=cls.RPC_RETRY_BACKOFF,
            view=cls.RTORRENT_VIEW,
        )


class TestConfig:
    LOG_PATH = tempfile.NamedTemporaryFile().name

    RPC_TIMEOUT = 2.0
    RPC_MAX_RETRIES = 1
    RPC_RETRY_BACKOFF = 0.0
