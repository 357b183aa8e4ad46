import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from seachart_tiles.exceptions.tile_downloader_exceptions import (
    DownloadError,
    FetchAbortedError,
    FetchCancelledError,
    NetworkError,
    RegionNotFoundError,
    StorageError,
    ValidationError,
)
from seachart_tiles.interfaces.tile_server import ITileDownloader
from seachart_tiles.models.geo import CoordinateRegion, TileIndex
from seachart_tiles.models.tile_server import TileServer
from seachart_tiles.utils.file_utils import FileUtils
from seachart_tiles.utils.metadata_manager import CustomTileSetManifest, MetadataManager
from seachart_tiles.utils.tile_calculator import TileCalculator


logger = logging.getLogger(__name__)

MAX_CONCURRENT_FETCHES = 4
_VALID_NAME = re.compile(r"[\w][\w\- ]*")

ProgressCallback = Callable[[int, int], None]


class TileDownloadService(ITileDownloader):
    """Downloads every tile of a custom area into <storage_root>/regions/<name>.

    Zoom levels are processed one after another; within a level at most
    four requests are in flight. The fetch is all-or-nothing: tiles go to a
    hidden staging folder that replaces the final folder only after every
    tile and the manifest have been written.
    """

    def __init__(self, storage_root: str, server: TileServer,
                 metadata: Optional[MetadataManager] = None,
                 max_workers: int = MAX_CONCURRENT_FETCHES,
                 retry_attempts: int = 3, timeout: int = 30):
        self.regions_dir = Path(storage_root) / "regions"
        self.server = server
        self.metadata = metadata or MetadataManager(str(self.regions_dir))
        self.max_workers = max(1, min(max_workers, MAX_CONCURRENT_FETCHES))
        self.retry_attempts = retry_attempts
        self.timeout = timeout

        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._completed = 0
        self._total = 0
        self._status = ""
        self._is_loading = False

    def create_session(self) -> requests.Session:
        """Create session for tile downloads"""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.retry_attempts,
            backoff_factor=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=MAX_CONCURRENT_FETCHES,
            pool_maxsize=MAX_CONCURRENT_FETCHES
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    # Progress, read by the display layer

    @property
    def progress(self) -> float:
        with self._state_lock:
            if self._total == 0:
                return 0.0
            return self._completed / self._total

    @property
    def status(self) -> str:
        with self._state_lock:
            return self._status

    @property
    def is_loading(self) -> bool:
        with self._state_lock:
            return self._is_loading

    def _set_status(self, status: str) -> None:
        with self._state_lock:
            self._status = status

    def _advance(self) -> int:
        with self._state_lock:
            self._completed += 1
            return self._completed

    # Paths

    def folder_for(self, name: str) -> Path:
        return self.regions_dir / name

    def staging_folder_for(self, name: str) -> Path:
        return self.regions_dir / f".{name}.partial"

    @staticmethod
    def validate_name(name: str) -> None:
        if not name or not _VALID_NAME.fullmatch(name):
            raise ValidationError(f"Invalid tile set name: {name!r}")

    # Fetching

    def download_tile(self, session, tile: TileIndex, output_dir: str) -> int:
        """Download a single tile into output_dir/{z}/{x}/{y}.png"""
        tile_url = self.server.get_url_for(tile)
        try:
            response = session.get(tile_url, headers=self.server.get_headers(),
                                   timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download tile {tile.z}/{tile.x}/{tile.y}: {e}") from e

        content = response.content
        # Reject empty content to avoid creating zero-byte tiles
        if not content:
            raise DownloadError(f"Empty content received for tile {tile.z}/{tile.x}/{tile.y}")

        try:
            tile_path = FileUtils.get_tile_path(output_dir, tile)
            return FileUtils.write_bytes(tile_path, content)
        except OSError as e:
            raise StorageError(f"Cannot write tile {tile.z}/{tile.x}/{tile.y}: {e}") from e

    def _fetch_one(self, session, tile: TileIndex, output_dir: Path,
                   cancel_event: threading.Event, aborted: threading.Event) -> TileIndex:
        if cancel_event.is_set() or aborted.is_set():
            raise FetchCancelledError("Download cancelled", tile)
        self.download_tile(session, tile, str(output_dir))
        return tile

    def _fetch_zoom_level(self, session, tiles, output_dir: Path,
                          cancel_event: threading.Event,
                          progress_callback: Optional[ProgressCallback]) -> None:
        # Set on the first failure; the caller's event is only read
        aborted = threading.Event()
        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix="tile-fetch") as executor:
            futures = [
                executor.submit(self._fetch_one, session, tile, output_dir,
                                cancel_event, aborted)
                for tile in sorted(tiles)
            ]
            try:
                for future in as_completed(futures):
                    future.result()
                    completed = self._advance()
                    if progress_callback is not None:
                        progress_callback(completed, self._total)
            except BaseException:
                # Stop queued work; in-flight requests drain on executor exit
                aborted.set()
                for pending in futures:
                    pending.cancel()
                raise

    def run(self, name: str, region: CoordinateRegion, min_zoom: int, max_zoom: int,
            cancel_event: Optional[threading.Event] = None,
            progress_callback: Optional[ProgressCallback] = None) -> CustomTileSetManifest:
        """Fetch all tiles of region for zooms min_zoom..max_zoom and record a manifest"""
        self.validate_name(name)
        if min_zoom < 0 or max_zoom < min_zoom:
            raise ValidationError(f"Invalid zoom range {min_zoom}-{max_zoom}")
        if not self._run_lock.acquire(blocking=False):
            raise DownloadError("A tile download is already running")

        cancel_event = cancel_event or threading.Event()
        try:
            with self._state_lock:
                self._completed = 0
                self._total = 0
                self._is_loading = True
                self._status = "Calculating tiles..."

            tile_sets = {
                zoom: TileCalculator.tiles_for_region(region, zoom)
                for zoom in range(min_zoom, max_zoom + 1)
            }
            total = sum(len(tiles) for tiles in tile_sets.values())
            with self._state_lock:
                self._total = total
            self._set_status(f"Downloading {total} tiles...")
            logger.info("Fetching %d tiles for '%s' (zoom %d-%d)", total, name, min_zoom, max_zoom)

            staging = self.staging_folder_for(name)
            try:
                FileUtils.remove_path(staging)
                FileUtils.ensure_directory_exists(staging)
            except OSError as e:
                raise StorageError(f"Cannot prepare folder for '{name}': {e}") from e

            session = self.create_session()
            try:
                for zoom in range(min_zoom, max_zoom + 1):
                    self._fetch_zoom_level(session, tile_sets[zoom], staging,
                                           cancel_event, progress_callback)
                    logger.debug("Zoom %d done for '%s'", zoom, name)
            except FetchAbortedError:
                raise
            except (DownloadError, StorageError) as e:
                raise FetchAbortedError(f"Tile download failed: {e}") from e
            finally:
                session.close()

            manifest = self._finish(name, region, min_zoom, max_zoom, staging)
            self._set_status("Download complete")
            return manifest

        except FetchCancelledError:
            self._set_status("Download cancelled")
            logger.info("Tile download for '%s' cancelled", name)
            raise
        except Exception as e:
            self._set_status(f"Error: {e}")
            logger.error("Error downloading tile set '%s': %s", name, e)
            raise
        finally:
            with self._state_lock:
                self._is_loading = False
            self._run_lock.release()

    def _finish(self, name: str, region: CoordinateRegion, min_zoom: int, max_zoom: int,
                staging: Path) -> CustomTileSetManifest:
        final = self.folder_for(name)
        with self._state_lock:
            tile_count = self._completed
        manifest = CustomTileSetManifest(
            name=name,
            bounds=region.bounds().to_list(),
            min_zoom=min_zoom,
            max_zoom=max_zoom,
            tile_count=tile_count,
            size_bytes=FileUtils.folder_size(staging),
            storage_path=str(final),
        )
        self.metadata.save_manifest(manifest, staging)
        try:
            FileUtils.replace_directory(staging, final)
        except OSError as e:
            raise StorageError(f"Cannot publish tile set '{name}': {e}") from e

        self.metadata.append(manifest)
        logger.info("Tile set '%s' saved: %d tiles, %.2f MB", name, tile_count, manifest.size_mb)
        return manifest

    # Housekeeping

    def load_all(self):
        """Reload every tile set manifest from disk"""
        return self.metadata.load_all()

    def manifests(self):
        return self.metadata.manifests()

    def delete(self, name: str) -> None:
        """Delete a tile set folder and drop its manifest"""
        folder = self.folder_for(name)
        if not folder.is_dir():
            raise RegionNotFoundError(f"Tile set '{name}' not found")
        try:
            FileUtils.remove_path(folder)
        except OSError as e:
            raise StorageError(f"Could not delete tile set '{name}': {e}") from e
        self.metadata.remove(name)
        logger.info("Deleted tile set %s", name)

    def clear_all(self) -> None:
        """Delete every known tile set"""
        for manifest in self.metadata.manifests():
            try:
                FileUtils.remove_path(self.folder_for(manifest.name))
            except OSError as e:
                raise StorageError(f"Error clearing tile sets: {e}") from e
            self.metadata.remove(manifest.name)
        self.metadata.clear()
        logger.info("Cleared all tile sets")
