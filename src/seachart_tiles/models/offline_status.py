from dataclasses import dataclass
from enum import Enum


class OfflineState(str, Enum):
    CHECKING = "checking"
    ONLINE = "online"
    OFFLINE = "offline"
    PARTIALLY_OFFLINE = "partially_offline"


_ICONS = {
    OfflineState.CHECKING: "hourglass",
    OfflineState.ONLINE: "wifi",
    OfflineState.OFFLINE: "wifi.slash",
    OfflineState.PARTIALLY_OFFLINE: "wifi.exclamationmark",
}


@dataclass(frozen=True)
class OfflineStatus:
    """How much of a map view can be served from local archives"""
    state: OfflineState
    percentage: float = 0.0

    @classmethod
    def from_coverage(cls, available: int, total: int) -> "OfflineStatus":
        if total <= 0 or available <= 0:
            return cls(OfflineState.ONLINE)
        if available >= total:
            return cls(OfflineState.OFFLINE, 1.0)
        return cls(OfflineState.PARTIALLY_OFFLINE, available / total)

    @property
    def icon(self) -> str:
        return _ICONS[self.state]

    @property
    def text(self) -> str:
        if self.state == OfflineState.CHECKING:
            return "Checking..."
        if self.state == OfflineState.ONLINE:
            return "Online"
        if self.state == OfflineState.OFFLINE:
            return "Offline"
        return f"Partially Offline ({int(self.percentage * 100)}%)"
