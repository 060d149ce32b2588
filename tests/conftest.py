import os
import shutil
import socket
import socketserver
import tempfile
import threading
from collections import OrderedDict

import pytest

os.environ.setdefault("LOG_PATH", os.path.join(tempfile.gettempdir(), "torrent_dashboard_test.log"))

from torrent_dashboard import scgi
from torrent_dashboard.cache import SnapshotCache
from torrent_dashboard.config import ConnectionConfig, TestConfig
from torrent_dashboard.gateway import Gateway
from torrent_dashboard.mapper import TORRENT_FIELDS
from torrent_dashboard.models import Fault, RemoteResponse


UNKNOWN_HASH = Fault(-501, "Could not find info-hash.")


def read_request(sock: socket.socket) -> bytes:
    data = b""
    while True:
        expected = scgi.request_length(data)
        if expected is not None and len(data) >= expected:
            return data
        chunk = sock.recv(65536)
        if not chunk:
            return data
        data += chunk


class _Handler(socketserver.BaseRequestHandler):
    def handle(self):
        request = read_request(self.request)
        if request:
            self.server.responder(request, self.request)


class ScgiServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True

    def __init__(self, path, responder):
        self.responder = responder
        super().__init__(path, _Handler)


@pytest.fixture
def socket_dir():
    # AF_UNIX paths are limited to ~100 bytes, so stay out of pytest's long tmp_path
    path = tempfile.mkdtemp(prefix="rt")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def scgi_server(socket_dir):
    """Factory starting an SCGI server whose responder(request, sock) writes the reply."""
    servers = []

    def start(responder, name="scgi.sock"):
        path = os.path.join(socket_dir, name)
        server = ScgiServer(path, responder)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append(server)
        return path

    yield start

    for server in servers:
        server.shutdown()
        server.server_close()


def make_torrent(info_hash, name=None, size=1000, completed=0, uploaded=0, down_rate=0, up_rate=0,
                 ratio=0, state=1, active=1, hashing=0, message="", label="", starred="", started=0):
    """Raw d.multicall2 fields for one torrent, keyed by field command."""
    values = [
        info_hash, name or f"torrent-{info_hash}", size, completed, uploaded, down_rate, up_rate,
        ratio, state, active, hashing, 1 if size and completed >= size else 0, message, label,
        starred, started,
    ]
    return dict(zip(TORRENT_FIELDS, values))


class FakeRTorrent:
    """In-process stand-in for rTorrent's XML-RPC interface over SCGI."""

    def __init__(self):
        self.torrents = OrderedDict()
        self.stats = {
            "throttle.global_down.rate": 0,
            "throttle.global_up.rate": 0,
            "system.time": 1_700_003_600,
            "system.startup_time": 1_700_000_000,
            "throttle.global_down.total": 0,
            "throttle.global_up.total": 0,
        }
        self.version = "0.9.8"
        self.faults = {}
        self.calls = []
        self.loaded = []
        self.lock = threading.Lock()
        self.target = None

    def add(self, info_hash, **fields):
        self.torrents[info_hash] = make_torrent(info_hash, **fields)

    def _torrent(self, info_hash):
        if info_hash not in self.torrents:
            raise LookupError(info_hash)
        return self.torrents[info_hash]

    def dispatch(self, method, args):
        self.calls.append((method, list(args)))
        if method in self.faults:
            return self.faults[method]
        try:
            return self._dispatch(method, args)
        except LookupError:
            return UNKNOWN_HASH

    def _dispatch(self, method, args):
        if method == "d.multicall2":
            fields = args[2:]
            return [[t.get(f, 0) for f in fields] for t in self.torrents.values()]
        if method == "system.client_version":
            return self.version
        if method in self.stats:
            return self.stats[method]
        if method == "d.pause":
            self._torrent(args[0])["d.is_active="] = 0
            return 0
        if method in ("d.resume", "d.start"):
            t = self._torrent(args[0])
            t["d.state="] = 1
            t["d.is_active="] = 1
            return 0
        if method == "d.stop":
            t = self._torrent(args[0])
            t["d.state="] = 0
            t["d.is_active="] = 0
            return 0
        if method == "d.close":
            self._torrent(args[0])
            return 0
        if method == "d.erase":
            self._torrent(args[0])
            del self.torrents[args[0]]
            return 0
        if method == "d.custom.set":
            self._torrent(args[0])[f"d.custom={args[1]}"] = args[2]
            return 0
        if method == "d.custom1.set":
            self._torrent(args[0])["d.custom1="] = args[1]
            return 0
        if method in ("load.start", "load.normal", "load.raw_start", "load.raw"):
            self.loaded.append((method, args[1]))
            return 0
        return Fault(-506, f"Method '{method}' not defined")

    def respond(self, request, sock):
        call = scgi.decode_request(request)
        with self.lock:
            if call.method == "system.multicall":
                results = []
                for entry in call.args[0]:
                    result = self.dispatch(entry["methodName"], entry["params"])
                    if isinstance(result, Fault):
                        results.append(RemoteResponse(fault=result))
                    else:
                        results.append(RemoteResponse(values=(result,)))
                response = scgi.encode_multicall_response(results)
            else:
                response = scgi.encode_response(self.dispatch(call.method, call.args))
        sock.sendall(response)

    def methods(self):
        return [method for method, _ in self.calls]


@pytest.fixture
def fake_rtorrent(scgi_server):
    daemon = FakeRTorrent()
    daemon.target = scgi_server(daemon.respond, name="rtorrent.sock")
    return daemon


@pytest.fixture
def connection_config(fake_rtorrent):
    return ConnectionConfig(
        target=fake_rtorrent.target,
        timeout=TestConfig.RPC_TIMEOUT,
        max_retries=TestConfig.RPC_MAX_RETRIES,
        retry_backoff=TestConfig.RPC_RETRY_BACKOFF,
    )


@pytest.fixture
def gateway(connection_config):
    return Gateway(connection_config)


@pytest.fixture
def cache(gateway):
    return SnapshotCache(gateway)
