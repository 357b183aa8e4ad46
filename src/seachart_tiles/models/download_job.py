from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class DownloadState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = (DownloadState.PREPARING, DownloadState.DOWNLOADING)


@dataclass
class DownloadJob:
    """State of the single archive download slot"""
    region: Optional[str] = None
    state: DownloadState = DownloadState.IDLE
    bytes_downloaded: int = 0
    bytes_total: int = 0
    started_at: Optional[float] = None
    eta_seconds: Optional[float] = None
    message: str = ""

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def progress(self) -> float:
        if self.bytes_total <= 0:
            return 0.0
        return min(1.0, self.bytes_downloaded / self.bytes_total)

    def update_progress(self, bytes_downloaded: int, bytes_total: int, now: float) -> None:
        """Record a received chunk and recompute the remaining-time estimate"""
        self.bytes_downloaded = bytes_downloaded
        self.bytes_total = bytes_total
        self.eta_seconds = estimate_eta(self.started_at, now, bytes_downloaded, bytes_total)

    def copy(self) -> "DownloadJob":
        return replace(self)


def estimate_eta(started_at: Optional[float], now: float,
                 bytes_downloaded: int, bytes_total: int) -> Optional[float]:
    """elapsed / fraction - elapsed; None while the fraction is unknown or zero"""
    if started_at is None or bytes_total <= 0 or bytes_downloaded <= 0:
        return None
    elapsed = max(0.0, now - started_at)
    fraction = bytes_downloaded / bytes_total
    return max(0.0, elapsed / fraction - elapsed)
