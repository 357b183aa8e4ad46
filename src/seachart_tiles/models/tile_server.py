from dataclasses import dataclass, field
from typing import Dict, List

from seachart_tiles.models.geo import TileIndex


DEFAULT_TILE_URL = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
DEFAULT_ARCHIVE_BASE_URL = (
    "https://ftp.gwdg.de/pub/misc/openstreetmap/openseamap/charts/mbtiles/OSM-OpenCPN2-"
)
DEFAULT_REGIONS = [
    "adria",
    "baltic",
    "channel",
    "gulfofbiscay",
    "magellan",
    "medieast",
    "mediwest",
    "northsea",
]


@dataclass
class TileServer:
    """Data model for a remote single-tile endpoint"""
    name: str
    url: str
    headers: Dict[str, str]
    tile_type: str = 'raster'

    def get_tile_url(self, zoom: int, x: int, y: int) -> str:
        """Generate tile URL for given coordinates"""
        return self.url.format(z=zoom, x=x, y=y)

    def get_url_for(self, tile: TileIndex) -> str:
        return self.get_tile_url(tile.z, tile.x, tile.y)

    def get_headers(self) -> Dict[str, str]:
        """Get request headers"""
        return self.headers.copy()

    def get_name(self) -> str:
        """Get server name"""
        return self.name


@dataclass
class DownloadConfig:
    """Data model for service configuration"""
    storage_root: str = "map_tiles"
    archive_base_url: str = DEFAULT_ARCHIVE_BASE_URL
    tile_url: str = DEFAULT_TILE_URL
    max_concurrent: int = 4
    retry_attempts: int = 3
    timeout: int = 30
    user_agent: str = "seachart-tiles/0.1"
    regions: List[str] = field(default_factory=lambda: list(DEFAULT_REGIONS))
    logging: Dict[str, str] = field(default_factory=dict)

    def tile_server(self) -> TileServer:
        return TileServer(
            name="OpenStreetMap",
            url=self.tile_url,
            headers={"User-Agent": self.user_agent},
        )
