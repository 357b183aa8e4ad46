import os
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Set

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest
import requests

from seachart_tiles.exceptions.tile_downloader_exceptions import (
    FetchAbortedError,
    FetchCancelledError,
    RegionNotFoundError,
    ValidationError,
)
from seachart_tiles.models.geo import CoordinateRegion
from seachart_tiles.models.tile_server import TileServer
from seachart_tiles.services.tile_download_service import TileDownloadService
from seachart_tiles.utils.file_utils import FileUtils
from seachart_tiles.utils.tile_calculator import TileCalculator


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"valid"


class DummyResponse:
    def __init__(self, status_code: int, content: bytes):
        self.status_code = status_code
        self.content = content

    def raise_for_status(self):
        if not (200 <= self.status_code < 300):
            raise requests.HTTPError(f"HTTP {self.status_code}")


class DummySession:
    """Serves PNG bytes for every URL except the ones listed as missing"""

    def __init__(self, missing: Optional[Set[str]] = None, delay: float = 0.01):
        self.missing = missing or set()
        self.delay = delay
        self.requested = []
        self.closed = False
        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak = 0

    def get(self, url, headers=None, timeout=None):
        with self._lock:
            self.requested.append(url)
            self._in_flight += 1
            self.peak = max(self.peak, self._in_flight)
        try:
            time.sleep(self.delay)
            if url in self.missing:
                return DummyResponse(404, b"")
            return DummyResponse(200, PNG_BYTES)
        finally:
            with self._lock:
                self._in_flight -= 1

    def close(self):
        self.closed = True


def thirteen_tile_region():
    b = TileCalculator.tile_bounds(11, 1064, 660)
    return CoordinateRegion(
        center_lat=(b.min_lat + b.max_lat) / 2,
        center_lon=(b.min_lon + b.max_lon) / 2,
        span_lat=(b.max_lat - b.min_lat) / 0.7,
        span_lon=(b.max_lon - b.min_lon) / 0.7,
    )


def make_service_with_mocked_session(tmp_path: Path, session: DummySession,
                                     max_workers: int = 4) -> TileDownloadService:
    server = TileServer(name="OSM", url="https://t.example.com/{z}/{x}/{y}.png", headers={})
    service = TileDownloadService(str(tmp_path), server, max_workers=max_workers,
                                  retry_attempts=1, timeout=5)

    def create_session_override():
        return session

    # Monkeypatch instance method
    service.create_session = create_session_override  # type: ignore
    return service


def test_fetch_writes_every_tile_and_manifest(tmp_path: Path):
    session = DummySession()
    service = make_service_with_mocked_session(tmp_path, session)
    progress = []

    manifest = service.run("harbour", thirteen_tile_region(), 10, 11,
                           progress_callback=lambda done, total: progress.append((done, total)))

    folder = tmp_path / "regions" / "harbour"
    assert manifest.tile_count == 13
    assert manifest.storage_path == str(folder)
    assert FileUtils.count_files(folder) == 13
    assert (folder / "metadata.json").is_file()
    assert (folder / "11" / "1064" / "660.png").read_bytes() == PNG_BYTES
    assert not service.staging_folder_for("harbour").exists()

    assert len(progress) == 13
    assert progress[-1] == (13, 13)
    assert service.progress == 1.0
    assert service.status == "Download complete"
    assert not service.is_loading
    assert session.closed


def test_manifest_is_found_after_reload(tmp_path: Path):
    service = make_service_with_mocked_session(tmp_path, DummySession())
    service.run("harbour", thirteen_tile_region(), 10, 11)

    fresh = make_service_with_mocked_session(tmp_path, DummySession())
    manifests = fresh.load_all()

    assert [m.name for m in manifests] == ["harbour"]
    assert manifests[0].min_zoom == 10
    assert manifests[0].max_zoom == 11
    assert manifests[0].size_bytes == 13 * len(PNG_BYTES)


def test_at_most_four_requests_in_flight(tmp_path: Path):
    session = DummySession(delay=0.02)
    service = make_service_with_mocked_session(tmp_path, session, max_workers=16)

    service.run("wide", CoordinateRegion(54.0, 7.0, 0.5, 0.5), 11, 11)

    assert service.max_workers == 4
    assert 1 <= session.peak <= 4


def test_missing_tile_aborts_whole_fetch(tmp_path: Path):
    region = thirteen_tile_region()
    server_url = "https://t.example.com/11/1064/660.png"
    session = DummySession(missing={server_url})
    service = make_service_with_mocked_session(tmp_path, session)

    with pytest.raises(FetchAbortedError):
        service.run("harbour", region, 10, 11)

    assert not (tmp_path / "regions" / "harbour").exists()
    # Partial tiles stay in the hidden staging folder
    assert service.staging_folder_for("harbour").is_dir()
    assert service.manifests() == []
    assert service.load_all() == []
    assert service.status.startswith("Error:")
    assert not service.is_loading


def test_failed_refetch_keeps_previous_tile_set(tmp_path: Path):
    region = thirteen_tile_region()
    service = make_service_with_mocked_session(tmp_path, DummySession())
    service.run("harbour", region, 10, 11)

    service.create_session = lambda: DummySession(  # type: ignore
        missing={"https://t.example.com/10/532/330.png"})
    with pytest.raises(FetchAbortedError):
        service.run("harbour", region, 10, 10)

    folder = tmp_path / "regions" / "harbour"
    assert FileUtils.count_files(folder) == 13
    assert [m.tile_count for m in service.manifests()] == [13]


def test_cancelled_before_start(tmp_path: Path):
    session = DummySession()
    service = make_service_with_mocked_session(tmp_path, session)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(FetchCancelledError):
        service.run("harbour", thirteen_tile_region(), 10, 11, cancel_event=cancel)

    assert session.requested == []
    assert not (tmp_path / "regions" / "harbour").exists()
    assert service.status == "Download cancelled"


def test_cancel_during_fetch(tmp_path: Path):
    cancel = threading.Event()

    class CancellingSession(DummySession):
        def get(self, url, headers=None, timeout=None):
            cancel.set()
            return super().get(url, headers, timeout)

    session = CancellingSession()
    service = make_service_with_mocked_session(tmp_path, session, max_workers=1)

    with pytest.raises(FetchCancelledError):
        service.run("harbour", thirteen_tile_region(), 10, 11, cancel_event=cancel)

    assert len(session.requested) < 13
    assert service.manifests() == []


@pytest.mark.parametrize("name", ["", "../escape", ".hidden", "a/b", "harbour\n"])
def test_invalid_names_rejected(tmp_path: Path, name):
    service = make_service_with_mocked_session(tmp_path, DummySession())

    with pytest.raises(ValidationError):
        service.run(name, thirteen_tile_region(), 10, 11)


def test_invalid_zoom_range(tmp_path: Path):
    service = make_service_with_mocked_session(tmp_path, DummySession())

    with pytest.raises(ValidationError):
        service.run("harbour", thirteen_tile_region(), 12, 11)


def test_delete_and_clear(tmp_path: Path):
    service = make_service_with_mocked_session(tmp_path, DummySession())
    region = thirteen_tile_region()
    service.run("one", region, 10, 10)
    service.run("two", region, 10, 10)

    service.delete("one")

    assert not (tmp_path / "regions" / "one").exists()
    assert [m.name for m in service.manifests()] == ["two"]
    with pytest.raises(RegionNotFoundError):
        service.delete("one")

    service.clear_all()
    assert service.manifests() == []
    assert not (tmp_path / "regions" / "two").exists()


def test_load_all_skips_bad_manifests(tmp_path: Path):
    service = make_service_with_mocked_session(tmp_path, DummySession())
    service.run("good", thirteen_tile_region(), 10, 10)

    regions = tmp_path / "regions"
    (regions / "no_manifest").mkdir()
    (regions / "broken").mkdir()
    (regions / "broken" / "metadata.json").write_text("{not json", encoding="utf-8")
    (regions / "bad_bounds").mkdir()
    (regions / "bad_bounds" / "metadata.json").write_text(
        '{"name": "bad_bounds", "bounds": [5, 5, 1, 1], "min_zoom": 1, "max_zoom": 2,'
        ' "tile_count": 1, "size_bytes": 1, "storage_path": "x"}', encoding="utf-8")

    assert [m.name for m in service.load_all()] == ["good"]


def test_failure_leaves_caller_cancel_event_untouched(tmp_path: Path):
    region = thirteen_tile_region()
    cancel = threading.Event()
    service = make_service_with_mocked_session(
        tmp_path, DummySession(missing={"https://t.example.com/10/532/330.png"}))

    with pytest.raises(FetchAbortedError):
        service.run("harbour", region, 10, 10, cancel_event=cancel)

    assert not cancel.is_set()

    # The same event works for the next run
    service.create_session = lambda: DummySession()  # type: ignore
    manifest = service.run("harbour", region, 10, 10, cancel_event=cancel)
    assert manifest.tile_count == 4
