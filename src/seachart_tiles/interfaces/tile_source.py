from abc import ABC, abstractmethod
from typing import Dict, Optional, Set

from seachart_tiles.models.geo import GeoBounds


class ITileSource(ABC):
    """Interface for local tile sources answering XYZ lookups"""

    @abstractmethod
    def get_name(self) -> str:
        """Get source name"""
        pass

    @abstractmethod
    def get_tile(self, zoom: int, x: int, y: int) -> Optional[bytes]:
        """Get tile data for given XYZ coordinates, None when absent"""
        pass

    @abstractmethod
    def has_tile(self, zoom: int, x: int, y: int) -> bool:
        """Check whether a tile is present without reading it"""
        pass

    @abstractmethod
    def get_bounds(self) -> Optional[GeoBounds]:
        """Get source bounds, None when unrestricted"""
        pass

    @abstractmethod
    def get_zoom_levels(self) -> Set[int]:
        """Get zoom levels present in the source"""
        pass

    @abstractmethod
    def get_metadata(self) -> Dict[str, str]:
        """Get raw source metadata"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying handle"""
        pass
