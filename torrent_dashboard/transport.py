"""
Socket transport for rTorrent's SCGI listener.

Each round trip opens a fresh connection, writes the whole request, reads until
the response frame declared by its Content-Length has arrived (or the daemon
closes the socket), then closes. The timeout covers the complete round trip.
"""

import os
import socket
import time
from typing import Optional, Tuple, Union

from . import scgi
from .errors import DaemonUnreachable, TransportTimeout
from .logger import logger


RECV_SIZE = 65536

Address = Union[str, Tuple[str, int]]


def parse_target(target: str) -> Tuple[int, Address]:
    """
    Resolve a configured target into (address family, address).

    Paths (anything containing '/' or prefixed with 'unix:') use a UNIX socket,
    everything else is read as host:port.
    """
    if target.startswith("unix:"):
        return socket.AF_UNIX, target[len("unix:"):]
    if "/" in target:
        return socket.AF_UNIX, os.path.expanduser(target)

    host, sep, port = target.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Invalid SCGI target {target!r}, expected a socket path or host:port")
    try:
        return socket.AF_INET, (host.strip("[]"), int(port))
    except ValueError:
        raise ValueError(f"Invalid port in SCGI target {target!r}")


class ScgiTransport:
    def __init__(self, target: str, timeout: float = 10.0):
        self.target = target
        self.timeout = timeout
        self.family, self.address = parse_target(target)

    def __repr__(self):
        return f"ScgiTransport({self.target!r}, timeout={self.timeout})"

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransportTimeout(f"Timed out after {self.timeout}s talking to {self.target}")
        return remaining

    def _connect(self, deadline: float) -> socket.socket:
        if self.family == socket.AF_UNIX:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(self._remaining(deadline))
                sock.connect(self.address)
            except BaseException:
                sock.close()
                raise
            return sock
        return socket.create_connection(self.address, timeout=self._remaining(deadline))

    def send(self, request: bytes) -> bytes:
        """
        Perform one request/response round trip.

        Raises TransportTimeout when the deadline passes and DaemonUnreachable
        for connection-level failures. The returned bytes may still be an
        incomplete frame if the daemon closed early; the codec reports that.
        """
        deadline = time.monotonic() + self.timeout
        sock: Optional[socket.socket] = None
        try:
            sock = self._connect(deadline)
            sock.settimeout(self._remaining(deadline))
            sock.sendall(request)

            response = bytearray()
            expected = None
            while expected is None or len(response) < expected:
                sock.settimeout(self._remaining(deadline))
                chunk = sock.recv(RECV_SIZE)
                if not chunk:
                    break
                response += chunk
                if expected is None:
                    expected = scgi.frame_length(bytes(response))
            if not response:
                raise DaemonUnreachable(f"rTorrent at {self.target} closed the connection without responding")
            return bytes(response)
        except socket.timeout:
            raise TransportTimeout(f"Timed out after {self.timeout}s talking to {self.target}")
        except (FileNotFoundError, ConnectionError, socket.gaierror) as e:
            raise DaemonUnreachable(f"Cannot reach rTorrent at {self.target}: {e}")
        except OSError as e:
            raise DaemonUnreachable(f"I/O error talking to rTorrent at {self.target}: {e}")
        finally:
            if sock is not None:
                sock.close()

    def check_connection(self) -> bool:
        """Test whether a connection to the daemon can be opened."""
        deadline = time.monotonic() + self.timeout
        try:
            sock = self._connect(deadline)
        except (OSError, TransportTimeout) as e:
            logger.debug(f"rTorrent not reachable at {self.target}: {e}")
            return False
        sock.close()
        return True
