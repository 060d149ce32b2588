"""
Exception hierarchy for talking to rTorrent.

ProtocolError      malformed or incomplete SCGI frame, unsupported XML-RPC type.
                   A bug or version mismatch; never retried.
TransportError     daemon unreachable or too slow. Expected while rTorrent
                   restarts; retried by the gateway.
GatewayError       retries exhausted, or the daemon rejected the call (fault).
MappingError       the daemon returned fewer fields than the mapper expects.
"""


class DashboardError(Exception):
    """Base class for all errors raised by the daemon-communication layer."""


class ProtocolError(DashboardError):
    pass


class IncompleteFrameError(ProtocolError):
    """The frame ended before the declared content was received."""


class MalformedFrameError(ProtocolError):
    """The frame is structurally invalid."""


class UnsupportedTypeError(ProtocolError):
    """A value of a type outside string/integer/array was encountered."""


class TransportError(DashboardError):
    pass


class DaemonUnreachable(TransportError):
    """Connection refused, reset, or the socket does not exist."""


class TransportTimeout(TransportError):
    """The round trip did not finish within the configured timeout."""


class GatewayError(DashboardError):
    pass


class DaemonUnavailable(GatewayError):
    """Every attempt failed with a transport error."""


class RemoteFault(GatewayError):
    """The daemon answered with an XML-RPC fault."""

    def __init__(self, code: int, message: str):
        super().__init__(f"rTorrent fault {code}: {message}")
        self.code = code
        self.message = message


class MappingError(DashboardError):
    pass


class ShortRecordError(MappingError):
    def __init__(self, kind: str, expected: int, actual: int):
        super().__init__(f"{kind} record has {actual} fields, expected at least {expected}")
        self.kind = kind
        self.expected = expected
        self.actual = actual


class InvalidFieldError(MappingError):
    """A field holds a value of the wrong type."""


class TorrentNotFound(DashboardError):
    def __init__(self, info_hash: str):
        super().__init__(f"Torrent {info_hash} not found")
        self.info_hash = info_hash
