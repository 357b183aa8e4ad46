import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Set

from seachart_tiles.adapters.base_adapter import BaseAdapter
from seachart_tiles.exceptions.tile_downloader_exceptions import ArchiveOpenError
from seachart_tiles.interfaces.tile_source import ITileSource
from seachart_tiles.models.geo import GeoBounds
from seachart_tiles.utils.mbtiles_utils import MBTilesUtils
from seachart_tiles.utils.tile_calculator import TileCalculator


logger = logging.getLogger(__name__)


class MBTilesAdapter(BaseAdapter, ITileSource):
    """Read-only adapter for one MBTiles archive.

    Rows in the ``tiles`` table use the TMS scheme (counted from the
    bottom). Every public lookup takes XYZ coordinates and flips the row
    exactly once before querying.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.connection: Optional[sqlite3.Connection] = None
        self._metadata: Dict[str, str] = {}
        self._bounds: Optional[GeoBounds] = None
        self._zoom_counts: Dict[int, int] = {}

    @classmethod
    def open(cls, path: str, name: Optional[str] = None) -> "MBTilesAdapter":
        """Open an archive; raises ArchiveOpenError when missing or corrupt"""
        adapter = cls({'name': name or Path(path).stem, 'path': path})
        adapter.initialize()
        return adapter

    def initialize(self) -> None:
        """Open the database and load metadata"""
        if not self.is_available():
            raise ArchiveOpenError(f"Archive not found: {self.file_path}")

        try:
            conn = MBTilesUtils.connect_readonly(self.file_path)
        except sqlite3.Error as e:
            raise ArchiveOpenError(f"Cannot open archive {self.file_path}: {e}") from e

        try:
            if 'tiles' not in MBTilesUtils.list_tables(conn):
                raise ArchiveOpenError(f"Archive {self.file_path} has no tiles table")
            self._metadata = MBTilesUtils.read_metadata(conn)
            self._zoom_counts = MBTilesUtils.read_zoom_levels(conn)
        except sqlite3.Error as e:
            conn.close()
            raise ArchiveOpenError(f"Corrupt archive {self.file_path}: {e}") from e
        except ArchiveOpenError:
            conn.close()
            raise

        self._bounds = MBTilesUtils.parse_bounds(self._metadata.get('bounds'))
        if self._bounds is None:
            logger.info("Archive %s has no usable bounds metadata", self.name)
        self.connection = conn
        logger.debug("Opened archive %s, zoom levels %s", self.name, sorted(self._zoom_counts))

    def _query_one(self, sql: str, params: tuple):
        with self._lock:
            if self.connection is None:
                return None
            try:
                return self.connection.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                logger.warning("Query on archive %s failed: %s", self.name, e)
                return None

    def get_tile(self, zoom: int, x: int, y: int) -> Optional[bytes]:
        """Get tile data for given XYZ coordinates"""
        row = self._query_one(
            "SELECT tile_data FROM tiles WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?",
            (zoom, x, TileCalculator.tms_row(y, zoom)),
        )
        if row is None or row[0] is None:
            return None
        return bytes(row[0])

    def has_tile(self, zoom: int, x: int, y: int) -> bool:
        row = self._query_one(
            "SELECT COUNT(*) FROM tiles WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?",
            (zoom, x, TileCalculator.tms_row(y, zoom)),
        )
        return bool(row and row[0] > 0)

    def get_bounds(self) -> Optional[GeoBounds]:
        return self._bounds

    def get_zoom_levels(self) -> Set[int]:
        return set(self._zoom_counts)

    def get_zoom_counts(self) -> Dict[int, int]:
        """Tile count per zoom level (diagnostics)"""
        return dict(self._zoom_counts)

    def get_metadata(self) -> Dict[str, str]:
        return dict(self._metadata)

    def is_open(self) -> bool:
        return self.connection is not None

    def close(self) -> None:
        with self._lock:
            if self.connection is not None:
                self.connection.close()
                self.connection = None

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
