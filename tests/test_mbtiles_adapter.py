import os
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from seachart_tiles.adapters.mbtiles_adapter import MBTilesAdapter
from seachart_tiles.exceptions.tile_downloader_exceptions import ArchiveOpenError
from seachart_tiles.models.geo import GeoBounds
from seachart_tiles.utils.mbtiles_utils import MBTilesUtils
from seachart_tiles.utils.tile_calculator import TileCalculator


PNG = b"\x89PNG\r\n\x1a\n"


def make_archive(path: Path, tiles, bounds="-10.0,40.0,5.0,55.0"):
    metadata = {"name": path.stem, "format": "png"}
    if bounds is not None:
        metadata["bounds"] = bounds
    MBTilesUtils.create_mbtiles(str(path), tiles, metadata)
    return path


def test_tile_round_trip(tmp_path: Path):
    tiles = [
        (3, 4, 2, PNG + b"a"),
        (3, 4, 5, PNG + b"b"),
        (10, 531, 328, PNG + b"north"),
    ]
    archive = make_archive(tmp_path / "channel.mbtiles", tiles)

    with MBTilesAdapter.open(str(archive)) as adapter:
        for z, x, y, data in tiles:
            assert adapter.get_tile(z, x, y) == data
            assert adapter.has_tile(z, x, y)


def test_rows_are_stored_as_tms(tmp_path: Path):
    archive = make_archive(tmp_path / "baltic.mbtiles", [(2, 1, 0, PNG + b"top")])

    conn = sqlite3.connect(str(archive))
    try:
        row = conn.execute("SELECT tile_row FROM tiles WHERE zoom_level = 2").fetchone()
    finally:
        conn.close()
    assert row[0] == TileCalculator.tms_row(0, 2) == 3

    with MBTilesAdapter.open(str(archive)) as adapter:
        assert adapter.get_tile(2, 1, 0) == PNG + b"top"
        # The TMS row read as XYZ is a different tile
        assert adapter.get_tile(2, 1, 3) is None


def test_missing_tile_is_none(tmp_path: Path):
    archive = make_archive(tmp_path / "adria.mbtiles", [(5, 1, 1, PNG)])

    with MBTilesAdapter.open(str(archive)) as adapter:
        assert adapter.get_tile(5, 2, 2) is None
        assert not adapter.has_tile(5, 2, 2)


def test_bounds_parsed(tmp_path: Path):
    archive = make_archive(tmp_path / "channel.mbtiles", [(1, 0, 0, PNG)])

    with MBTilesAdapter.open(str(archive)) as adapter:
        assert adapter.get_bounds() == GeoBounds(min_lon=-10.0, min_lat=40.0, max_lon=5.0, max_lat=55.0)


@pytest.mark.parametrize("bounds", ["1,2,3", "a,b,c,d", "", "5,40,-10,55", None])
def test_malformed_bounds_are_absent(tmp_path: Path, bounds):
    archive = make_archive(tmp_path / "odd.mbtiles", [(1, 0, 0, PNG)], bounds=bounds)

    with MBTilesAdapter.open(str(archive)) as adapter:
        assert adapter.get_bounds() is None


def test_zoom_levels_present(tmp_path: Path):
    archive = make_archive(tmp_path / "medieast.mbtiles",
                           [(4, 1, 1, PNG), (4, 1, 2, PNG), (7, 3, 3, PNG)])

    with MBTilesAdapter.open(str(archive)) as adapter:
        assert adapter.get_zoom_levels() == {4, 7}
        assert adapter.get_zoom_counts() == {4: 2, 7: 1}
        assert adapter.get_metadata()["name"] == "medieast"


def test_open_missing_file(tmp_path: Path):
    with pytest.raises(ArchiveOpenError):
        MBTilesAdapter.open(str(tmp_path / "nothing.mbtiles"))


def test_open_corrupt_file(tmp_path: Path):
    corrupt = tmp_path / "broken.mbtiles"
    corrupt.write_bytes(b"this is not a sqlite database at all" * 10)

    with pytest.raises(ArchiveOpenError):
        MBTilesAdapter.open(str(corrupt))
    assert not MBTilesUtils.validate_mbtiles_file(str(corrupt))


def test_lookups_after_close_return_none(tmp_path: Path):
    archive = make_archive(tmp_path / "channel.mbtiles", [(1, 0, 0, PNG)])
    adapter = MBTilesAdapter.open(str(archive))

    adapter.close()

    assert not adapter.is_open()
    assert adapter.get_tile(1, 0, 0) is None


def test_bounds_parse_helper():
    assert GeoBounds.parse("-10.0,40.0,5.0,55.0") == GeoBounds(-10.0, 40.0, 5.0, 55.0)
    assert GeoBounds.parse(" 3, 51, 9, 56 ") == GeoBounds(3.0, 51.0, 9.0, 56.0)
    assert GeoBounds.parse("1,2,3") is None
