from abc import ABC, abstractmethod
from typing import Any, Dict


class ITileDownloader(ABC):
    """Interface for tile downloader implementations"""

    @abstractmethod
    def download_tile(self, session, tile, output_path: str) -> int:
        """Download a single tile, return bytes written"""
        pass

    @abstractmethod
    def run(self, name: str, region, min_zoom: int, max_zoom: int, cancel_event=None):
        """Download every tile of a region over a zoom range"""
        pass


class IConfigLoader(ABC):
    """Interface for configuration loading"""

    @abstractmethod
    def load_config(self, config_path: str) -> Any:
        """Load configuration from file"""
        pass

    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration"""
        pass


class INotifier(ABC):
    """Delivers short user-facing messages"""

    @abstractmethod
    def notify(self, title: str, body: str) -> None:
        pass
