import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from seachart_tiles.exceptions.tile_downloader_exceptions import (
    NetworkError,
    StorageError,
    TileDownloaderException,
    ValidationError,
)
from seachart_tiles.interfaces.tile_server import INotifier
from seachart_tiles.models.download_job import DownloadJob, DownloadState
from seachart_tiles.models.tile_server import DEFAULT_ARCHIVE_BASE_URL, DEFAULT_REGIONS
from seachart_tiles.services.notification_service import LoggingNotifier
from seachart_tiles.services.region_catalog import RegionCatalog


logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024

# Remote file names that do not follow the capitalize-first-letter rule
REMOTE_NAMES: Dict[str, str] = {
    "magellan": "MagellanStrait",
    "medieast": "MediEast",
    "mediwest": "MediWest",
    "gulfofbiscay": "GulfOfBiscay",
    "northsea": "NorthSea",
}

ProgressCallback = Callable[[DownloadJob], None]


def remote_region_name(region_id: str) -> str:
    """Camel-case file name used by the archive server for a region id"""
    if region_id in REMOTE_NAMES:
        return REMOTE_NAMES[region_id]
    return region_id[:1].upper() + region_id[1:]


def region_id_from_remote(remote_name: str) -> str:
    """Inverse of remote_region_name"""
    lowered = remote_name.lower()
    for region_id, camel in REMOTE_NAMES.items():
        if camel.lower() == lowered:
            return region_id
    return lowered


class ArchiveDownloadService:
    """Downloads whole regional MBTiles archives, one at a time.

    The job slot is a lock-guarded state machine: ``start()`` checks and
    claims it atomically, so a second caller is rejected deterministically.
    The transfer runs on a single background worker and is returned as a
    Future; progress is published through ``snapshot()`` and an optional
    callback.
    """

    def __init__(self, catalog: RegionCatalog, base_url: str = DEFAULT_ARCHIVE_BASE_URL,
                 notifier: Optional[INotifier] = None, timeout: int = 60,
                 retry_attempts: int = 3, regions: Optional[List[str]] = None,
                 user_agent: str = "seachart-tiles/0.1"):
        self.catalog = catalog
        self.base_url = base_url
        self.notifier = notifier or LoggingNotifier()
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.regions = list(regions) if regions is not None else list(DEFAULT_REGIONS)
        self.user_agent = user_agent

        self._lock = threading.Lock()
        self._job = DownloadJob()
        self._cancel_event = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="archive-download")
        self._response: Optional[requests.Response] = None
        self._progress_callback: Optional[ProgressCallback] = None

    def create_session(self) -> requests.Session:
        """Create session for archive transfers"""
        session = requests.Session()
        retry_strategy = Retry(
            total=self.retry_attempts,
            connect=self.retry_attempts,
            read=0,
            backoff_factor=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})
        return session

    def url_for(self, region_id: str) -> str:
        return f"{self.base_url}{remote_region_name(region_id)}.mbtiles"

    def destination_for(self, region_id: str) -> Path:
        return self.catalog.archive_path(region_id)

    def available_regions(self) -> List[str]:
        return list(self.regions)

    def is_file_downloaded(self, region_id: str) -> bool:
        return self.destination_for(region_id).is_file()

    def snapshot(self) -> DownloadJob:
        """Copy of the current job, safe to read from any thread"""
        with self._lock:
            return self._job.copy()

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._job.is_active

    def _update_job(self, **changes) -> DownloadJob:
        with self._lock:
            for key, value in changes.items():
                setattr(self._job, key, value)
            job = self._job.copy()
        if self._progress_callback is not None:
            try:
                self._progress_callback(job)
            except Exception as e:
                logger.warning("Progress callback failed: %s", e)
        return job

    def start(self, region_id: str,
              progress_callback: Optional[ProgressCallback] = None) -> Optional["Future[DownloadJob]"]:
        """Begin downloading a region archive; None when a job is already active"""
        if not region_id or '/' in region_id or region_id.startswith('.'):
            raise ValidationError(f"Invalid region id: {region_id!r}")

        with self._lock:
            if self._job.is_active:
                logger.info("Archive download for %s ignored: %s is in progress",
                            region_id, self._job.region)
                return None
            self._cancel_event = threading.Event()
            self._job = DownloadJob(
                region=region_id,
                state=DownloadState.PREPARING,
                started_at=time.monotonic(),
            )
            cancel_event = self._cancel_event
            self._progress_callback = progress_callback

        logger.info("Starting archive download for %s from %s", region_id, self.url_for(region_id))
        return self._executor.submit(self._run, region_id, cancel_event)

    def cancel(self) -> None:
        """Abort the in-flight transfer; the partial file is discarded"""
        with self._lock:
            if not self._job.is_active:
                return
            self._cancel_event.set()
            region = self._job.region
            response = self._response
        logger.info("Cancelling archive download for %s", region)
        # Closing the response wakes a worker blocked waiting for data
        if response is not None:
            try:
                response.close()
            except Exception as e:
                logger.warning("Error closing archive response: %s", e)

    def _run(self, region_id: str, cancel_event: threading.Event) -> DownloadJob:
        destination = self.destination_for(region_id)
        partial = destination.with_name(destination.name + ".part")
        try:
            completed = self._transfer(region_id, destination, partial, cancel_event)
        except TileDownloaderException as e:
            if not cancel_event.is_set():
                self._discard(partial)
                logger.error("Archive download for %s failed: %s", region_id, e)
                return self._update_job(state=DownloadState.FAILED, eta_seconds=None,
                                        message=f"Download failed: {e}")
            # The closed response surfaced as an error
            completed = False
        except Exception as e:
            if not cancel_event.is_set():
                self._discard(partial)
                logger.exception("Unexpected error downloading %s", region_id)
                return self._update_job(state=DownloadState.FAILED, eta_seconds=None,
                                        message=f"Download failed: {e}")
            completed = False

        if not completed:
            self._discard(partial)
            logger.info("Archive download for %s cancelled", region_id)
            with self._lock:
                self._job = DownloadJob()
                job = self._job.copy()
            return job

        return self._complete(region_id, destination, partial)

    def _transfer(self, region_id: str, destination: Path, partial: Path,
                  cancel_event: threading.Event) -> bool:
        """Stream the archive into the partial file; False when cancelled"""
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create {destination.parent}: {e}") from e

        session = self.create_session()
        try:
            try:
                response = session.get(self.url_for(region_id), stream=True,
                                       timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                raise NetworkError(f"Cannot reach archive server: {e}") from e

            with self._lock:
                self._response = response
            try:
                total = int(response.headers.get('content-length', 0) or 0)
                downloaded = 0
                if cancel_event.is_set():
                    return False
                self._update_job(state=DownloadState.DOWNLOADING, bytes_total=total)

                with open(partial, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if cancel_event.is_set():
                            return False
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)
                        self._record_progress(downloaded, total)
                if cancel_event.is_set():
                    return False
            except requests.RequestException as e:
                raise NetworkError(f"Transfer interrupted: {e}") from e
            except OSError as e:
                raise StorageError(f"Cannot write archive: {e}") from e
            finally:
                with self._lock:
                    self._response = None
                response.close()
        finally:
            session.close()

        if total and downloaded < total:
            raise NetworkError(f"Transfer incomplete: {downloaded} of {total} bytes")
        return True

    def _record_progress(self, downloaded: int, total: int) -> None:
        now = time.monotonic()
        with self._lock:
            self._job.update_progress(downloaded, total, now)
            job = self._job.copy()
        if self._progress_callback is not None:
            try:
                self._progress_callback(job)
            except Exception as e:
                logger.warning("Progress callback failed: %s", e)

    def _complete(self, region_id: str, destination: Path, partial: Path) -> DownloadJob:
        try:
            os.replace(partial, destination)
        except OSError as e:
            self._discard(partial)
            logger.error("Error moving downloaded file for %s: %s", region_id, e)
            return self._update_job(state=DownloadState.FAILED, eta_seconds=None,
                                    message=f"Download failed: cannot store archive ({e})")

        self.catalog.reload()
        job = self._update_job(state=DownloadState.DONE, eta_seconds=0.0,
                               message="Download complete")
        logger.info("Archive for %s stored at %s", region_id, destination)

        self.notifier.notify(
            "Map Download Complete",
            f"The map for {region_id.capitalize()} has been downloaded successfully",
        )
        return job

    @staticmethod
    def _discard(partial: Path) -> None:
        try:
            if partial.exists():
                partial.unlink()
        except OSError as e:
            logger.warning("Could not remove partial file %s: %s", partial, e)

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)
