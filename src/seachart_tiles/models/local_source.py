from dataclasses import dataclass, field
from typing import FrozenSet, Optional
import os

from seachart_tiles.models.geo import GeoBounds


@dataclass(frozen=True)
class RegionRecord:
    """One pre-packaged MBTiles archive found under the storage root"""
    id: str
    archive_path: str
    bounds: Optional[GeoBounds] = None
    zoom_levels_present: FrozenSet[int] = field(default_factory=frozenset)

    def has_bounds(self) -> bool:
        return self.bounds is not None

    def covers(self, lat: float, lon: float) -> bool:
        """Archives without bounds never match a coordinate"""
        return self.bounds is not None and self.bounds.contains(lat, lon)

    def is_available(self) -> bool:
        """Check if archive file exists"""
        return os.path.isfile(self.archive_path)

    def get_file_size(self) -> Optional[int]:
        """Get archive file size in bytes"""
        if self.is_available():
            return os.path.getsize(self.archive_path)
        return None
