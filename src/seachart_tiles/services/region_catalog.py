import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from seachart_tiles.adapters.mbtiles_adapter import MBTilesAdapter
from seachart_tiles.exceptions.tile_downloader_exceptions import (
    ArchiveOpenError,
    RegionNotFoundError,
    StorageError,
)
from seachart_tiles.models.geo import CoordinateRegion
from seachart_tiles.models.local_source import RegionRecord
from seachart_tiles.models.offline_status import OfflineStatus
from seachart_tiles.utils.mbtiles_utils import MBTILES_SUFFIX
from seachart_tiles.utils.tile_calculator import TileCalculator


logger = logging.getLogger(__name__)


class RegionCatalog:
    """Owns every regional archive under the storage root.

    The open archives are kept as an immutable, sorted snapshot that is
    swapped atomically by ``reload()``. Readers take the current snapshot
    without blocking writers.
    """

    def __init__(self, storage_root: str):
        self.storage_root = Path(storage_root)
        self._lock = threading.Lock()
        self._entries: Tuple[Tuple[RegionRecord, MBTilesAdapter], ...] = ()

    def archive_path(self, region_id: str) -> Path:
        return self.storage_root / f"{region_id}{MBTILES_SUFFIX}"

    def reload(self) -> List[RegionRecord]:
        """Rescan the storage root and replace the archive list"""
        self.storage_root.mkdir(parents=True, exist_ok=True)

        entries = []
        for path in sorted(self.storage_root.glob(f"*{MBTILES_SUFFIX}")):
            if not path.is_file():
                continue
            try:
                adapter = MBTilesAdapter.open(str(path), name=path.stem)
            except ArchiveOpenError as e:
                logger.warning("Skipping unavailable archive %s: %s", path.name, e)
                continue
            record = RegionRecord(
                id=path.stem,
                archive_path=str(path),
                bounds=adapter.get_bounds(),
                zoom_levels_present=frozenset(adapter.get_zoom_levels()),
            )
            entries.append((record, adapter))

        # Archives with bounds take precedence, then by id
        entries.sort(key=lambda entry: (not entry[0].has_bounds(), entry[0].id))

        with self._lock:
            previous = self._entries
            self._entries = tuple(entries)

        for _, adapter in previous:
            adapter.close()

        logger.info("Region catalog loaded %d archive(s) from %s", len(entries), self.storage_root)
        return [record for record, _ in entries]

    def _snapshot(self) -> Tuple[Tuple[RegionRecord, MBTilesAdapter], ...]:
        with self._lock:
            return self._entries

    def records(self) -> List[RegionRecord]:
        """Current region records in lookup order"""
        return [record for record, _ in self._snapshot()]

    def region_ids(self) -> List[str]:
        return sorted(record.id for record, _ in self._snapshot())

    def is_downloaded(self, region_id: str) -> bool:
        return self.archive_path(region_id).is_file()

    def get_tile(self, zoom: int, x: int, y: int) -> Optional[Tuple[bytes, str]]:
        """First archive holding the tile, as (bytes, region_id)"""
        for record, adapter in self._snapshot():
            data = adapter.get_tile(zoom, x, y)
            if data is not None:
                return data, record.id
        logger.debug("No archive holds tile %d/%d/%d", zoom, x, y)
        return None

    def is_tile_available_offline(self, zoom: int, x: int, y: int) -> bool:
        return any(adapter.has_tile(zoom, x, y) for _, adapter in self._snapshot())

    def region_for(self, lat: float, lon: float) -> Optional[str]:
        """First region whose bounds contain the coordinate"""
        for record, _ in self._snapshot():
            if record.covers(lat, lon):
                return record.id
        return None

    def offline_status(self, region: CoordinateRegion, zoom: int) -> OfflineStatus:
        """Share of a view's tiles that local archives can serve"""
        tiles = TileCalculator.tiles_for_region(region, zoom)
        available = sum(1 for tile in tiles if self.is_tile_available_offline(tile.z, tile.x, tile.y))
        return OfflineStatus.from_coverage(available, len(tiles))

    def zoom_statistics(self) -> Dict[str, Dict[int, int]]:
        """Tile count per zoom level for every archive"""
        return {record.id: adapter.get_zoom_counts() for record, adapter in self._snapshot()}

    def delete(self, region_id: str) -> None:
        """Remove an archive file and drop it from the catalog"""
        path = self.archive_path(region_id)
        with self._lock:
            entries = self._entries
            removed = [adapter for record, adapter in entries if record.id == region_id]
            if not removed and not path.exists():
                raise RegionNotFoundError(f"Region '{region_id}' is not downloaded")
            self._entries = tuple(entry for entry in entries if entry[0].id != region_id)

        for adapter in removed:
            adapter.close()

        try:
            if path.exists():
                os.remove(path)
        except OSError as e:
            raise StorageError(f"Could not delete archive {path.name}: {e}") from e
        logger.info("Deleted region archive %s", region_id)

    def close(self) -> None:
        with self._lock:
            previous = self._entries
            self._entries = ()
        for _, adapter in previous:
            adapter.close()
