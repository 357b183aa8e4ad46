import json
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from seachart_tiles.exceptions.tile_downloader_exceptions import ConfigurationError, ValidationError
from seachart_tiles.models.tile_server import DEFAULT_REGIONS, DEFAULT_TILE_URL
from seachart_tiles.services.config_service import ConfigService


def write_config(tmp_path: Path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_missing_file_gives_defaults(tmp_path: Path):
    config = ConfigService().load_config(str(tmp_path / "absent.json"))

    assert config.storage_root == "map_tiles"
    assert config.tile_url == DEFAULT_TILE_URL
    assert config.regions == DEFAULT_REGIONS
    assert config.max_concurrent == 4


def test_values_are_loaded(tmp_path: Path):
    path = write_config(tmp_path, {
        "storage_root": str(tmp_path / "tiles"),
        "regions": ["northsea", "baltic"],
        "timeout": 10,
        "logging": {"level": "DEBUG"},
    })

    config = ConfigService().load_config(path)

    assert config.storage_root == str(tmp_path / "tiles")
    assert config.regions == ["northsea", "baltic"]
    assert config.timeout == 10
    assert config.logging == {"level": "DEBUG"}


def test_concurrency_is_capped(tmp_path: Path):
    config = ConfigService().load_config(write_config(tmp_path, {"max_concurrent": 12}))

    assert config.max_concurrent == 4


def test_invalid_json(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigService().load_config(str(path))


@pytest.mark.parametrize("data", [
    {"unknown_key": 1},
    {"timeout": -1},
    {"max_concurrent": 0},
    {"retry_attempts": "three"},
    {"regions": "northsea"},
    {"tile_url": "https://tiles.example.com/{z}/{x}.png"},
    {"logging": "DEBUG"},
    ["not", "an", "object"],
])
def test_invalid_values_rejected(tmp_path: Path, data):
    with pytest.raises(ValidationError):
        ConfigService().load_config(write_config(tmp_path, data))


def test_tile_server_uses_user_agent(tmp_path: Path):
    config = ConfigService().load_config(write_config(tmp_path, {"user_agent": "chartplotter/2"}))

    server = config.tile_server()

    assert server.get_headers() == {"User-Agent": "chartplotter/2"}
    assert server.get_tile_url(3, 4, 5) == "https://tile.openstreetmap.org/3/4/5.png"
