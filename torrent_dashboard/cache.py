"""
Snapshot cache of rTorrent state.

Holds the last successfully fetched torrent list and global stats as one
immutable Snapshot. ``refresh`` fetches everything in a single
system.multicall round trip and swaps the snapshot in under a lock; reads never
wait on a refresh. Control actions call the daemon directly and, on success,
patch the affected torrent in a copy of the snapshot so the change is visible
before the next refresh. The daemon remains the source of truth: a refresh
overwrites any patch.

The refresh cadence is not decided here; see polling.py.
"""

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from .errors import DashboardError, GatewayError, MappingError, TorrentNotFound
from .gateway import Gateway
from .logger import logger
from .mapper import (
    STARRED_KEY, STATS_CALLS, TORRENT_FIELDS, stats_from_fields, stats_record, torrents_from_rows,
)
from .models import RemoteCall, Snapshot, Torrent, TorrentState


SORT_KEYS: Dict[str, Callable[[Torrent], object]] = {
    "name": lambda t: t.name.lower(),
    "size": lambda t: t.size_bytes,
    "progress": lambda t: t.progress,
    "down_rate": lambda t: t.down_rate,
    "up_rate": lambda t: t.up_rate,
    "ratio": lambda t: t.ratio_permil,
}


class SnapshotCache:
    def __init__(self, gateway: Gateway, view: Optional[str] = None):
        self.gateway = gateway
        self.view = view or gateway.config.view
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._last_error: Optional[DashboardError] = None
        self._last_error_at: Optional[float] = None

    def current_snapshot(self) -> Snapshot:
        """Last good snapshot, possibly stale. Never blocks on a refresh."""
        return self._snapshot

    @property
    def last_error(self) -> Optional[DashboardError]:
        return self._last_error

    @property
    def last_error_at(self) -> Optional[float]:
        return self._last_error_at

    @property
    def is_stale(self) -> bool:
        """True when the most recent refresh failed."""
        return self._last_error is not None

    def _record_error(self, error: DashboardError):
        with self._lock:
            self._last_error = error
            self._last_error_at = time.time()

    def _refresh_calls(self) -> List[RemoteCall]:
        return [
            RemoteCall("d.multicall2", ("", self.view, *TORRENT_FIELDS)),
            RemoteCall("system.client_version"),
            *STATS_CALLS,
        ]

    def refresh(self) -> Snapshot:
        """
        Fetch torrents and stats in one round trip and replace the snapshot.

        Transport and protocol failures leave the snapshot untouched. If only
        some sub-calls fail, the parts that succeeded are still applied (the
        torrent list as a whole, or the stats as a whole) and the first
        failure is raised afterwards so callers can flag the data as stale.
        """
        try:
            results = self.gateway.multicall(self._refresh_calls())
        except DashboardError as e:
            logger.warning(f"Snapshot refresh failed: {e}")
            self._record_error(e)
            raise

        failures: List[DashboardError] = []

        torrents = None
        try:
            rows = results[0].unwrap()
            torrents = {t.hash: t for t in torrents_from_rows(rows)}
        except (GatewayError, MappingError) as e:
            logger.error(f"Failed to read torrent list: {e}")
            failures.append(e)

        client_version = None
        if not results[1].is_fault:
            client_version = str(results[1].unwrap())

        stats = None
        try:
            stats = stats_from_fields(stats_record([r.unwrap() for r in results[2:]]))
        except (GatewayError, MappingError) as e:
            logger.error(f"Failed to read global stats: {e}")
            failures.append(e)

        with self._lock:
            previous = self._snapshot
            snapshot = Snapshot(
                torrents=torrents if torrents is not None else previous.torrents,
                stats=stats if stats is not None else previous.stats,
                fetched_at=time.time() if torrents is not None else previous.fetched_at,
                client_version=client_version or previous.client_version,
            )
            self._snapshot = snapshot
            if failures:
                self._last_error = failures[0]
                self._last_error_at = time.time()
            else:
                self._last_error = None
                self._last_error_at = None

        if failures:
            raise failures[0]
        logger.debug(f"Snapshot refreshed: {len(snapshot)} torrents")
        return snapshot

    def filtered(
        self,
        state: Optional[TorrentState] = None,
        label: Optional[str] = None,
        search: Optional[str] = None,
        starred: Optional[bool] = None,
        predicate: Optional[Callable[[Torrent], bool]] = None,
        sort: Optional[str] = None,
        descending: bool = True,
    ) -> List[Torrent]:
        """
        Torrents of the current snapshot matching every given filter.

        Without ``sort`` the daemon's list order is kept. ``search`` is a
        case-insensitive substring match on the name.
        """
        if sort is not None and sort not in SORT_KEYS:
            raise ValueError(f"Unknown sort key {sort!r}")
        needle = search.lower() if search else None

        torrents = []
        for torrent in self.current_snapshot().torrents.values():
            if state is not None and torrent.state != TorrentState(state):
                continue
            if label is not None and torrent.label != label:
                continue
            if needle and needle not in torrent.name.lower():
                continue
            if starred is not None and torrent.starred != starred:
                continue
            if predicate is not None and not predicate(torrent):
                continue
            torrents.append(torrent)

        if sort is not None:
            torrents.sort(key=SORT_KEYS[sort], reverse=descending)
        return torrents

    def counts(self) -> Dict[str, int]:
        """Number of torrents per state, plus totals for 'all' and 'starred'."""
        torrents = list(self.current_snapshot().torrents.values())
        counts = {state.value: 0 for state in TorrentState}
        for torrent in torrents:
            counts[torrent.state.value] += 1
        counts["all"] = len(torrents)
        counts["starred"] = sum(1 for t in torrents if t.starred)
        return counts

    def labels(self) -> List[str]:
        return sorted({t.label for t in self.current_snapshot().torrents.values() if t.label})

    def _patch(self, info_hash: str, **changes):
        with self._lock:
            current = self._snapshot
            torrent = current.torrents.get(info_hash)
            if torrent is None:
                return
            torrents = dict(current.torrents)
            torrents[info_hash] = replace(torrent, **changes)
            self._snapshot = replace(current, torrents=torrents)

    def _drop(self, info_hash: str):
        with self._lock:
            current = self._snapshot
            if info_hash not in current.torrents:
                return
            torrents = {h: t for h, t in current.torrents.items() if h != info_hash}
            self._snapshot = replace(current, torrents=torrents)

    def _call_all(self, calls: Sequence[RemoteCall]):
        """Run several control calls in one round trip, raising the first fault."""
        for response in self.gateway.multicall(calls):
            response.unwrap()

    def pause(self, info_hash: str):
        self.gateway.call("d.pause", info_hash)
        logger.info(f"Paused {info_hash}")
        self._patch(info_hash, state=TorrentState.PAUSED)

    def resume(self, info_hash: str):
        self._call_all([
            RemoteCall("d.start", (info_hash,)),
            RemoteCall("d.resume", (info_hash,)),
        ])
        logger.info(f"Resumed {info_hash}")
        torrent = self.current_snapshot().get(info_hash)
        if torrent is not None:
            state = TorrentState.SEEDING if torrent.complete else TorrentState.DOWNLOADING
            self._patch(info_hash, state=state)

    def stop(self, info_hash: str):
        self._call_all([
            RemoteCall("d.stop", (info_hash,)),
            RemoteCall("d.close", (info_hash,)),
        ])
        logger.info(f"Stopped {info_hash}")
        self._patch(info_hash, state=TorrentState.STOPPED)

    def remove(self, info_hash: str):
        self.gateway.call("d.erase", info_hash)
        logger.info(f"Removed {info_hash}")
        self._drop(info_hash)

    def toggle_star(self, info_hash: str) -> bool:
        """Flip the starred flag stored in the torrent's custom field. Returns the new value."""
        torrent = self.current_snapshot().get(info_hash)
        if torrent is None:
            raise TorrentNotFound(info_hash)
        starred = not torrent.starred
        self.gateway.call("d.custom.set", info_hash, STARRED_KEY, "1" if starred else "")
        logger.info(f"{'Starred' if starred else 'Unstarred'} {info_hash}")
        self._patch(info_hash, starred=starred)
        return starred

    def set_label(self, info_hash: str, label: str):
        """Set the ruTorrent-compatible label (d.custom1)."""
        label = label.strip()
        self.gateway.call("d.custom1.set", info_hash, label)
        logger.info(f"Labelled {info_hash} as {label!r}")
        self._patch(info_hash, label=label)

    def add_torrent_url(self, url: str, start: bool = True):
        """
        Ask rTorrent to load a torrent from a URL or magnet link.

        The snapshot is not patched; the next refresh picks the torrent up.
        """
        url = url.strip()
        if not url:
            raise ValueError("Torrent URL is empty")
        self.gateway.call("load.start" if start else "load.normal", "", url)
        logger.info(f"Added torrent from URL: {url}")

    def add_torrent_file(self, data: bytes, start: bool = True):
        """Load raw .torrent file contents into rTorrent. Not patched locally."""
        if not data:
            raise ValueError("Torrent file is empty")
        self.gateway.call("load.raw_start" if start else "load.raw", "", data)
        logger.info(f"Added torrent from file ({len(data)} bytes)")
