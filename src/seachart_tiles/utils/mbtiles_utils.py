import sqlite3
import os
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple

from seachart_tiles.models.geo import GeoBounds
from seachart_tiles.utils.tile_calculator import TileCalculator


MBTILES_SUFFIX = ".mbtiles"


class MBTilesUtils:
    """Utility class for MBTiles operations"""

    @staticmethod
    def connect_readonly(file_path: str) -> sqlite3.Connection:
        """Open an MBTiles file read-only; raises sqlite3.Error on failure"""
        uri = Path(file_path).resolve().as_uri() + "?mode=ro"
        return sqlite3.connect(uri, uri=True, check_same_thread=False)

    @staticmethod
    def list_tables(conn: sqlite3.Connection) -> Set[str]:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        return {row[0] for row in cursor.fetchall()}

    @staticmethod
    def validate_mbtiles_file(file_path: str) -> bool:
        """Validate if file is a readable MBTiles database"""
        if not os.path.isfile(file_path):
            return False

        try:
            conn = MBTilesUtils.connect_readonly(file_path)
            try:
                return 'tiles' in MBTilesUtils.list_tables(conn)
            finally:
                conn.close()
        except sqlite3.Error:
            return False

    @staticmethod
    def read_metadata(conn: sqlite3.Connection) -> Dict[str, str]:
        """Read the metadata table; an archive without one has no metadata"""
        try:
            cursor = conn.execute("SELECT name, value FROM metadata")
        except sqlite3.OperationalError:
            return {}
        return {str(name): str(value) for name, value in cursor.fetchall() if name is not None}

    @staticmethod
    def parse_bounds(value: Optional[str]) -> Optional[GeoBounds]:
        """'minLon,minLat,maxLon,maxLat' to GeoBounds, None when malformed"""
        return GeoBounds.parse(value)

    @staticmethod
    def read_zoom_levels(conn: sqlite3.Connection) -> Dict[int, int]:
        """Tile count per zoom level present in the tiles table"""
        cursor = conn.execute(
            "SELECT zoom_level, COUNT(*) FROM tiles GROUP BY zoom_level ORDER BY zoom_level"
        )
        return {int(zoom): int(count) for zoom, count in cursor.fetchall()}

    @staticmethod
    def create_mbtiles(file_path: str, tiles: Iterable[Tuple[int, int, int, bytes]],
                       metadata: Optional[Dict[str, str]] = None) -> None:
        """Write an MBTiles file from XYZ-addressed tiles (rows stored as TMS)"""
        conn = sqlite3.connect(file_path)
        try:
            with conn:
                conn.execute("CREATE TABLE IF NOT EXISTS metadata (name TEXT, value TEXT)")
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS tiles (zoom_level INTEGER, tile_column INTEGER, "
                    "tile_row INTEGER, tile_data BLOB)"
                )
                conn.execute(
                    "CREATE UNIQUE INDEX IF NOT EXISTS tile_index "
                    "ON tiles (zoom_level, tile_column, tile_row)"
                )
                for name, value in (metadata or {}).items():
                    conn.execute("INSERT INTO metadata (name, value) VALUES (?, ?)", (name, value))
                conn.executemany(
                    "INSERT OR REPLACE INTO tiles (zoom_level, tile_column, tile_row, tile_data) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        (zoom, x, TileCalculator.tms_row(y, zoom), sqlite3.Binary(data))
                        for zoom, x, y, data in tiles
                    ),
                )
        finally:
            conn.close()
