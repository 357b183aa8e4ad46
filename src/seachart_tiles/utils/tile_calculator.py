import math
from typing import Set

from seachart_tiles.models.geo import CoordinateRegion, GeoBounds, TileIndex


REGION_BUFFER = 0.2


class TileCalculator:
    """Utility class for tile coordinate calculations"""

    @staticmethod
    def tile_for_coordinate(lat_deg: float, lon_deg: float, zoom: int) -> TileIndex:
        """Convert lat/lon to the XYZ tile containing it (no clamping)"""
        lat_rad = math.radians(lat_deg)
        n = 2.0 ** zoom
        xtile = int(math.floor((lon_deg + 180.0) / 360.0 * n))
        ytile = int(math.floor(
            (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
        ))
        return TileIndex(zoom, xtile, ytile)

    @staticmethod
    def lat_to_y(lat_deg: float, zoom: int) -> int:
        """Mercator tile row for a latitude, clamped to the grid"""
        n = 2 ** zoom
        lat_rad = math.radians(lat_deg)
        merc = math.log(math.tan(lat_rad / 2.0 + math.pi / 4.0))
        y = int(math.floor((1.0 - merc / math.pi) * n / 2.0))
        return max(0, min(n - 1, y))

    @staticmethod
    def lon_to_x(lon_deg: float, zoom: int) -> int:
        """Tile column for a longitude, clamped to the grid"""
        n = 2 ** zoom
        x = int(math.floor((lon_deg + 180.0) / 360.0 * n))
        return max(0, min(n - 1, x))

    @staticmethod
    def tiles_for_region(region: CoordinateRegion, zoom: int,
                         buffer: float = REGION_BUFFER) -> Set[TileIndex]:
        """All tiles covering the region grown by buffer * span on every side"""
        min_lon, min_lat, max_lon, max_lat = region.expanded(buffer)

        min_x = TileCalculator.lon_to_x(min_lon, zoom)
        max_x = TileCalculator.lon_to_x(max_lon, zoom)
        # Rows grow southwards
        min_y = TileCalculator.lat_to_y(max_lat, zoom)
        max_y = TileCalculator.lat_to_y(min_lat, zoom)

        return {
            TileIndex(zoom, x, y)
            for x in range(min_x, max_x + 1)
            for y in range(min_y, max_y + 1)
        }

    @staticmethod
    def count_tiles(region: CoordinateRegion, min_zoom: int, max_zoom: int,
                    buffer: float = REGION_BUFFER) -> int:
        """Total number of tiles for a region over a zoom range"""
        return sum(
            len(TileCalculator.tiles_for_region(region, zoom, buffer))
            for zoom in range(min_zoom, max_zoom + 1)
        )

    @staticmethod
    def tms_row(y: int, zoom: int) -> int:
        """Flip a row between XYZ and TMS numbering; applying it twice is a no-op"""
        return (1 << zoom) - 1 - y

    @staticmethod
    def tile_bounds(zoom: int, x: int, y: int) -> GeoBounds:
        """Return geographic bounds of an XYZ tile."""
        n = 2 ** zoom
        lon_min = x / n * 360.0 - 180.0
        lon_max = (x + 1) / n * 360.0 - 180.0

        def y_to_lat(y_val: int) -> float:
            return math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y_val / n))))

        lat_max = y_to_lat(y)
        lat_min = y_to_lat(y + 1)
        return GeoBounds(lon_min, lat_min, lon_max, lat_max)
