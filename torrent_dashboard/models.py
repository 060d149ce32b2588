"""
Data model for the daemon-communication layer.

Remote calls and responses are plain frozen dataclasses. Decoded XML-RPC values
are restricted to str, int and lists of those (see ``Value``). Torrent,
GlobalStats and Snapshot are immutable; the snapshot cache replaces them rather
than mutating them.
"""

import datetime
import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple, Union

from .errors import RemoteFault


Value = Union[str, int, List["Value"]]


@dataclass(frozen=True)
class RemoteCall:
    method: str
    args: Tuple = ()


@dataclass(frozen=True)
class Fault:
    code: int
    message: str


@dataclass(frozen=True)
class RemoteResponse:
    """A successful list of values, or a fault. Never both."""
    values: Tuple = ()
    fault: Optional[Fault] = None

    def __post_init__(self):
        if self.fault is not None and self.values:
            raise ValueError("A response carries either values or a fault, not both")

    @property
    def is_fault(self) -> bool:
        return self.fault is not None

    def unwrap(self) -> Value:
        """Return the single result value, raising RemoteFault for a fault."""
        if self.fault is not None:
            raise RemoteFault(self.fault.code, self.fault.message)
        if not self.values:
            return None
        return self.values[0]


class TorrentState(str, enum.Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    DOWNLOADING = "downloading"
    SEEDING = "seeding"
    HASHING = "hashing"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Torrent:
    hash: str
    name: str
    size_bytes: int
    completed_bytes: int
    uploaded_bytes: int
    down_rate: int
    up_rate: int
    ratio_permil: int
    state: TorrentState
    starred: bool = False
    label: str = ""
    message: str = ""
    started_at: Optional[datetime.datetime] = None

    @property
    def ratio(self) -> float:
        return self.ratio_permil / 1000

    @property
    def progress(self) -> float:
        """Completion in percent."""
        if self.size_bytes <= 0:
            return 0.0
        return self.completed_bytes / self.size_bytes * 100

    @property
    def complete(self) -> bool:
        return self.size_bytes > 0 and self.completed_bytes >= self.size_bytes

    @property
    def eta(self) -> Optional[int]:
        """Seconds left at the current download rate, None when not downloading."""
        if self.complete or self.down_rate <= 0:
            return None
        return (self.size_bytes - self.completed_bytes) // self.down_rate


@dataclass(frozen=True)
class GlobalStats:
    down_rate: int = 0
    up_rate: int = 0
    uptime: datetime.timedelta = datetime.timedelta(0)
    down_total: int = 0
    up_total: int = 0


@dataclass(frozen=True)
class Snapshot:
    """
    Point-in-time view of the daemon.

    All torrents come from the same fetch cycle; ``torrents`` keeps the
    daemon's list order and is read-only.
    """
    torrents: Mapping[str, Torrent] = field(default_factory=lambda: MappingProxyType({}))
    stats: GlobalStats = field(default_factory=GlobalStats)
    fetched_at: float = 0.0
    client_version: str = ""

    def __post_init__(self):
        if not isinstance(self.torrents, MappingProxyType):
            object.__setattr__(self, "torrents", MappingProxyType(dict(self.torrents)))

    def __len__(self):
        return len(self.torrents)

    def get(self, info_hash: str) -> Optional[Torrent]:
        return self.torrents.get(info_hash)
