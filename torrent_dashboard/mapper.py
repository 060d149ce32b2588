"""
Positional mapping from rTorrent field lists to domain records.

``TORRENT_FIELDS`` is the d.multicall2 command list; ``torrent_from_fields``
reads a row back by the same positions. Sizes and rates stay in bytes and
bytes/second, ratios in rTorrent's permil scale.
"""

import datetime
from typing import List, Sequence

from .errors import InvalidFieldError, ShortRecordError
from .models import GlobalStats, RemoteCall, Torrent, TorrentState


STARRED_KEY = "starred"

TORRENT_FIELDS = [
    "d.hash=",
    "d.name=",
    "d.size_bytes=",
    "d.completed_bytes=",
    "d.up.total=",
    "d.down.rate=",
    "d.up.rate=",
    "d.ratio=",
    "d.state=",
    "d.is_active=",
    "d.is_hash_checking=",
    "d.complete=",
    "d.message=",
    "d.custom1=",
    f"d.custom={STARRED_KEY}",
    "d.timestamp.started=",
]

(
    HASH, NAME, SIZE, COMPLETED, UPLOADED, DOWN_RATE, UP_RATE, RATIO, STATE,
    IS_ACTIVE, IS_HASHING, COMPLETE, MESSAGE, LABEL, STARRED, STARTED,
) = range(len(TORRENT_FIELDS))

# d.state: 0 closed/stopped, 1 started
STATE_STOPPED = 0
STATE_STARTED = 1

STATS_CALLS = [
    RemoteCall("throttle.global_down.rate"),
    RemoteCall("throttle.global_up.rate"),
    RemoteCall("system.time"),
    RemoteCall("system.startup_time"),
    RemoteCall("throttle.global_down.total"),
    RemoteCall("throttle.global_up.total"),
]

STATS_REQUIRED = 3


def _int(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidFieldError(f"Field {field} is not an integer: {value!r}")


def torrent_state(state: int, is_active: bool, is_hashing: bool, complete: bool,
                  message: str) -> TorrentState:
    """Map rTorrent's status flags to a lifecycle state."""
    if is_hashing:
        return TorrentState.HASHING
    if message:
        return TorrentState.ERROR
    if state == STATE_STOPPED:
        return TorrentState.STOPPED
    if state != STATE_STARTED:
        return TorrentState.UNKNOWN
    if not is_active:
        return TorrentState.PAUSED
    if complete:
        return TorrentState.SEEDING
    return TorrentState.DOWNLOADING


def _timestamp(value: int):
    if value <= 0:
        return None
    try:
        return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
    except (ValueError, OverflowError, OSError):
        raise InvalidFieldError(f"Field d.timestamp.started is out of range: {value!r}")


def torrent_from_fields(values: Sequence) -> Torrent:
    if len(values) < len(TORRENT_FIELDS):
        raise ShortRecordError("torrent", len(TORRENT_FIELDS), len(values))

    message = str(values[MESSAGE])
    state = torrent_state(
        state=_int(values[STATE], "d.state"),
        is_active=_int(values[IS_ACTIVE], "d.is_active") == 1,
        is_hashing=_int(values[IS_HASHING], "d.is_hash_checking") != 0,
        complete=_int(values[COMPLETE], "d.complete") == 1,
        message=message,
    )
    return Torrent(
        hash=str(values[HASH]),
        name=str(values[NAME]),
        size_bytes=_int(values[SIZE], "d.size_bytes"),
        completed_bytes=_int(values[COMPLETED], "d.completed_bytes"),
        uploaded_bytes=_int(values[UPLOADED], "d.up.total"),
        down_rate=_int(values[DOWN_RATE], "d.down.rate"),
        up_rate=_int(values[UP_RATE], "d.up.rate"),
        ratio_permil=_int(values[RATIO], "d.ratio"),
        state=state,
        starred=str(values[STARRED]) == "1",
        label=str(values[LABEL]),
        message=message,
        started_at=_timestamp(_int(values[STARTED], "d.timestamp.started")),
    )


def torrents_from_rows(rows: Sequence[Sequence]) -> List[Torrent]:
    if not isinstance(rows, list):
        raise InvalidFieldError(f"d.multicall2 result is not a list: {rows!r}")
    torrents = []
    for row in rows:
        if not isinstance(row, list):
            raise InvalidFieldError(f"d.multicall2 row is not a list: {row!r}")
        torrents.append(torrent_from_fields(row))
    return torrents


def stats_from_fields(values: Sequence) -> GlobalStats:
    """
    Build GlobalStats from [down_rate, up_rate, uptime_seconds, down_total, up_total].

    The two totals are optional.
    """
    if len(values) < STATS_REQUIRED:
        raise ShortRecordError("stats", STATS_REQUIRED, len(values))
    return GlobalStats(
        down_rate=_int(values[0], "down_rate"),
        up_rate=_int(values[1], "up_rate"),
        uptime=datetime.timedelta(seconds=_int(values[2], "uptime")),
        down_total=_int(values[3], "down_total") if len(values) > 3 else 0,
        up_total=_int(values[4], "up_total") if len(values) > 4 else 0,
    )


def stats_record(results: Sequence) -> list:
    """Turn the STATS_CALLS results into the positional stats record."""
    if len(results) < len(STATS_CALLS):
        raise ShortRecordError("stats", len(STATS_CALLS), len(results))
    down_rate, up_rate, now, started, down_total, up_total = results[:len(STATS_CALLS)]
    uptime = max(_int(now, "system.time") - _int(started, "system.startup_time"), 0)
    return [down_rate, up_rate, uptime, down_total, up_total]
