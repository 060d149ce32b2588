"""
Remote-call gateway: the only path to the rTorrent daemon.

Builds RemoteCall values, encodes them with the SCGI codec, sends them over a
fresh transport connection and decodes the answer. Transport failures are
retried with exponential backoff; protocol errors and daemon faults are not,
since resending the same call cannot change the outcome.
"""

import time
from typing import Callable, List, Optional, Sequence, TypeVar

from . import scgi
from .config import Config, ConnectionConfig
from .errors import DaemonUnavailable, MalformedFrameError, ProtocolError, TransportError
from .logger import logger
from .models import RemoteCall, RemoteResponse, Value
from .transport import ScgiTransport


T = TypeVar("T")


class Gateway:
    def __init__(self, config: Optional[ConnectionConfig] = None, transport: Optional[ScgiTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config or Config.connection()
        self.transport = transport or ScgiTransport(self.config.target, timeout=self.config.timeout)
        self._sleep = sleep

    def _round_trip(self, call: RemoteCall, decoder: Callable[[bytes], T]) -> T:
        request = scgi.encode(call)
        attempts = self.config.max_retries + 1
        last_error: Optional[TransportError] = None

        for attempt in range(attempts):
            if attempt:
                delay = self.config.retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    f"Retrying {call.method} in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{attempts}): {last_error}"
                )
                self._sleep(delay)
            try:
                response = self.transport.send(request)
            except TransportError as e:
                last_error = e
                continue

            try:
                return decoder(response)
            except ProtocolError as e:
                logger.error(f"Protocol error in response to {call.method}: {e}")
                raise

        logger.error(f"rTorrent unavailable after {attempts} attempts for {call.method}: {last_error}")
        raise DaemonUnavailable(f"rTorrent unavailable at {self.config.target}: {last_error}") from last_error

    def call(self, method: str, *args) -> Value:
        """
        Call a single remote method and return its result.

        Raises RemoteFault if the daemon rejects the call, DaemonUnavailable
        once transport retries are exhausted and ProtocolError for responses
        that cannot be decoded.
        """
        logger.debug(f"rTorrent call {method}{args!r}")
        response = self._round_trip(RemoteCall(method, tuple(args)), scgi.decode)
        return response.unwrap()

    def multicall(self, calls: Sequence[RemoteCall]) -> List[RemoteResponse]:
        """
        Send several calls in a single system.multicall round trip.

        Returns one RemoteResponse per call, in order. A fault in one sub-call
        does not affect the others; callers inspect each result. A fault for
        the whole batch is raised as RemoteFault.
        """
        if not calls:
            return []
        entries = [{"methodName": c.method, "params": list(c.args)} for c in calls]
        logger.debug(f"rTorrent multicall {[c.method for c in calls]}")
        results = self._round_trip(RemoteCall("system.multicall", (entries,)), scgi.decode_multicall)

        if len(results) != len(calls):
            if len(results) == 1 and results[0].is_fault:
                results[0].unwrap()
            raise MalformedFrameError(
                f"system.multicall returned {len(results)} results for {len(calls)} calls"
            )
        return results

    def client_version(self) -> str:
        return str(self.call("system.client_version"))

    def check_connection(self) -> bool:
        return self.transport.check_connection()
