import os
import socket
import threading
import time

import pytest

from torrent_dashboard import scgi
from torrent_dashboard.errors import DaemonUnreachable, IncompleteFrameError, TransportTimeout
from torrent_dashboard.models import RemoteCall
from torrent_dashboard.transport import ScgiTransport, parse_target


REQUEST = scgi.encode(RemoteCall("system.client_version"))


class TestParseTarget:
    def test_socket_path(self):
        assert parse_target("/tmp/rtorrent.sock") == (socket.AF_UNIX, "/tmp/rtorrent.sock")

    def test_unix_prefix(self):
        assert parse_target("unix:rtorrent.sock") == (socket.AF_UNIX, "rtorrent.sock")

    def test_home_relative_path(self):
        family, address = parse_target("~/.rtorrent/rpc.sock")
        assert family == socket.AF_UNIX
        assert address == os.path.expanduser("~/.rtorrent/rpc.sock")

    def test_host_port(self):
        assert parse_target("127.0.0.1:5000") == (socket.AF_INET, ("127.0.0.1", 5000))

    @pytest.mark.parametrize("target", ["localhost", ":5000", "localhost:port"])
    def test_invalid(self, target):
        with pytest.raises(ValueError):
            parse_target(target)


class TestScgiTransport:
    def test_round_trip(self, scgi_server):
        seen = []

        def responder(request, sock):
            seen.append(request)
            sock.sendall(scgi.encode_response("0.9.8"))

        transport = ScgiTransport(scgi_server(responder), timeout=2)
        response = transport.send(REQUEST)

        assert seen == [REQUEST]
        assert scgi.decode(response).values == ("0.9.8",)

    def test_partial_writes_are_reassembled(self, scgi_server):
        payload = scgi.encode_response(["x" * 5000, 1, 2, 3])

        def responder(request, sock):
            for i in range(0, len(payload), 7):
                sock.sendall(payload[i:i + 7])
                if i % 700 == 0:
                    time.sleep(0.001)

        transport = ScgiTransport(scgi_server(responder), timeout=5)
        assert transport.send(REQUEST) == payload

    def test_reads_only_declared_frame(self, scgi_server):
        payload = scgi.encode_response("done")
        release = threading.Event()

        def responder(request, sock):
            # Keep the connection open after the frame; the client must not wait for EOF
            sock.sendall(payload)
            release.wait(5)

        transport = ScgiTransport(scgi_server(responder), timeout=2)
        try:
            started = time.monotonic()
            assert transport.send(REQUEST) == payload
            assert time.monotonic() - started < 1
        finally:
            release.set()

    def test_early_close_returns_incomplete_frame(self, scgi_server):
        payload = scgi.encode_response("truncated response")

        def responder(request, sock):
            sock.sendall(payload[:-8])

        transport = ScgiTransport(scgi_server(responder), timeout=2)
        response = transport.send(REQUEST)
        with pytest.raises(IncompleteFrameError):
            scgi.decode(response)

    def test_timeout(self, scgi_server):
        release = threading.Event()

        def responder(request, sock):
            release.wait(5)

        transport = ScgiTransport(scgi_server(responder), timeout=0.2)
        try:
            started = time.monotonic()
            with pytest.raises(TransportTimeout):
                transport.send(REQUEST)
            assert time.monotonic() - started < 2
        finally:
            release.set()

    def test_timeout_covers_slow_trickle(self, scgi_server):
        payload = scgi.encode_response("slow")
        release = threading.Event()

        def responder(request, sock):
            for byte in payload:
                if release.wait(0.05):
                    return
                try:
                    sock.sendall(bytes([byte]))
                except OSError:
                    return

        transport = ScgiTransport(scgi_server(responder), timeout=0.3)
        try:
            with pytest.raises(TransportTimeout):
                transport.send(REQUEST)
        finally:
            release.set()

    def test_missing_socket_is_unreachable(self, socket_dir):
        transport = ScgiTransport(os.path.join(socket_dir, "missing.sock"), timeout=1)
        with pytest.raises(DaemonUnreachable):
            transport.send(REQUEST)

    def test_refused_tcp_connection_is_unreachable(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            port = probe.getsockname()[1]
        transport = ScgiTransport(f"127.0.0.1:{port}", timeout=1)
        with pytest.raises(DaemonUnreachable):
            transport.send(REQUEST)

    def test_stale_socket_file_is_unreachable(self, socket_dir):
        path = os.path.join(socket_dir, "stale.sock")
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        listener.bind(path)
        listener.close()
        transport = ScgiTransport(path, timeout=1)
        with pytest.raises(DaemonUnreachable):
            transport.send(REQUEST)

    def test_tcp_round_trip(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]

        def serve():
            conn, _ = listener.accept()
            with conn:
                data = b""
                while scgi.request_length(data) is None or len(data) < scgi.request_length(data):
                    data += conn.recv(4096)
                conn.sendall(scgi.encode_response(scgi.decode_request(data).method))

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        try:
            transport = ScgiTransport(f"127.0.0.1:{port}", timeout=2)
            assert scgi.decode(transport.send(REQUEST)).values == ("system.client_version",)
        finally:
            thread.join(2)
            listener.close()

    def test_fresh_connection_per_call(self, scgi_server):
        connections = []

        def responder(request, sock):
            connections.append(sock.fileno())
            sock.sendall(scgi.encode_response(len(connections)))

        transport = ScgiTransport(scgi_server(responder), timeout=2)
        first = scgi.decode(transport.send(REQUEST)).values
        second = scgi.decode(transport.send(REQUEST)).values

        assert first == (1,)
        assert second == (2,)

    def test_check_connection(self, scgi_server, socket_dir):
        path = scgi_server(lambda request, sock: sock.sendall(scgi.encode_response(0)))
        assert ScgiTransport(path, timeout=1).check_connection() is True
        assert ScgiTransport(os.path.join(socket_dir, "nope.sock"), timeout=1).check_connection() is False
