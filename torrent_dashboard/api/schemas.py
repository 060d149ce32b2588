import datetime
from typing import Optional
from pydantic import BaseModel

from torrent_dashboard.models import GlobalStats, Torrent
from torrent_dashboard.utils import format_bytes, format_duration, format_rate


class AddTorrentRequest(BaseModel):
    url: str  # HTTP/HTTPS URL to a .torrent file or a magnet URI
    start: bool = True


class SetLabelRequest(BaseModel):
    label: str


class TorrentView(BaseModel):
    hash: str
    name: str
    state: str
    starred: bool
    label: str
    message: str
    size_bytes: int
    completed_bytes: int
    uploaded_bytes: int
    down_rate: int
    up_rate: int
    ratio: float
    progress: float
    eta: Optional[int] = None
    started_at: Optional[datetime.datetime] = None
    # Preformatted for display
    size: str
    down_rate_formatted: str
    up_rate_formatted: str
    eta_formatted: str

    @classmethod
    def from_torrent(cls, torrent: Torrent) -> "TorrentView":
        return cls(
            hash=torrent.hash,
            name=torrent.name,
            state=torrent.state.value,
            starred=torrent.starred,
            label=torrent.label,
            message=torrent.message,
            size_bytes=torrent.size_bytes,
            completed_bytes=torrent.completed_bytes,
            uploaded_bytes=torrent.uploaded_bytes,
            down_rate=torrent.down_rate,
            up_rate=torrent.up_rate,
            ratio=torrent.ratio,
            progress=round(torrent.progress, 1),
            eta=torrent.eta,
            started_at=torrent.started_at,
            size=format_bytes(torrent.size_bytes),
            down_rate_formatted=format_rate(torrent.down_rate),
            up_rate_formatted=format_rate(torrent.up_rate),
            eta_formatted=format_duration(torrent.eta) if torrent.eta is not None else "",
        )


class StatsView(BaseModel):
    down_rate: int
    up_rate: int
    uptime: int
    down_total: int
    up_total: int
    down_rate_formatted: str
    up_rate_formatted: str
    uptime_formatted: str

    @classmethod
    def from_stats(cls, stats: GlobalStats) -> "StatsView":
        uptime = int(stats.uptime.total_seconds())
        return cls(
            down_rate=stats.down_rate,
            up_rate=stats.up_rate,
            uptime=uptime,
            down_total=stats.down_total,
            up_total=stats.up_total,
            down_rate_formatted=format_rate(stats.down_rate),
            up_rate_formatted=format_rate(stats.up_rate),
            uptime_formatted=format_duration(uptime),
        )
