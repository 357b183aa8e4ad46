from dataclasses import dataclass
from typing import List, Optional

from shapely.geometry import Point, box

from seachart_tiles.exceptions.tile_downloader_exceptions import ValidationError


@dataclass(frozen=True, order=True)
class TileIndex:
    """XYZ tile address (row counted from the top)"""
    z: int
    x: int
    y: int

    def __iter__(self):
        return iter((self.z, self.x, self.y))

    def path_parts(self) -> List[str]:
        """Relative path components for a {z}/{x}/{y}.png layout"""
        return [str(self.z), str(self.x), f"{self.y}.png"]


@dataclass(frozen=True)
class GeoBounds:
    """Rectangle in degrees: [min_lon, min_lat, max_lon, max_lat]"""
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self):
        if not (self.min_lon < self.max_lon and self.min_lat < self.max_lat):
            raise ValidationError(
                f"Invalid bounds {self.to_list()}: min must be smaller than max"
            )

    @classmethod
    def from_list(cls, values: List[float]) -> "GeoBounds":
        if len(values) != 4:
            raise ValidationError(f"Bounds need 4 values, got {len(values)}")
        return cls(*(float(v) for v in values))

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["GeoBounds"]:
        """Parse 'minLon,minLat,maxLon,maxLat'; malformed input gives None"""
        if not text:
            return None
        try:
            values = [float(part.strip()) for part in text.split(',')]
            return cls.from_list(values)
        except (ValueError, ValidationError):
            return None

    def to_list(self) -> List[float]:
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]

    def to_polygon(self):
        """Shapely polygon for geometric tests"""
        return box(self.min_lon, self.min_lat, self.max_lon, self.max_lat)

    def contains(self, lat: float, lon: float) -> bool:
        """Inclusive on all edges"""
        return self.to_polygon().covers(Point(lon, lat))


@dataclass(frozen=True)
class CoordinateRegion:
    """Map viewport: center plus span in degrees"""
    center_lat: float
    center_lon: float
    span_lat: float
    span_lon: float

    def __post_init__(self):
        if self.span_lat <= 0 or self.span_lon <= 0:
            raise ValidationError("Region span must be positive")

    def expanded(self, buffer: float = 0.0) -> List[float]:
        """[min_lon, min_lat, max_lon, max_lat] grown by buffer * span on every side"""
        half_lat = self.span_lat * (0.5 + buffer)
        half_lon = self.span_lon * (0.5 + buffer)
        return [
            self.center_lon - half_lon,
            self.center_lat - half_lat,
            self.center_lon + half_lon,
            self.center_lat + half_lat,
        ]

    def bounds(self) -> GeoBounds:
        return GeoBounds.from_list(self.expanded())

