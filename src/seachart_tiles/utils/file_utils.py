import os
import shutil
from pathlib import Path
from typing import Union

from seachart_tiles.models.geo import TileIndex


PathLike = Union[str, Path]


class FileUtils:
    """Utility class for file operations"""

    @staticmethod
    def ensure_directory_exists(directory_path: PathLike) -> None:
        """Create directory if it doesn't exist"""
        os.makedirs(directory_path, exist_ok=True)

    @staticmethod
    def get_tile_path(folder: PathLike, tile: TileIndex) -> Path:
        """Generate {z}/{x}/{y}.png path under folder, creating parent directories"""
        tile_path = Path(folder).joinpath(*tile.path_parts())
        FileUtils.ensure_directory_exists(tile_path.parent)
        return tile_path

    @staticmethod
    def write_bytes(path: PathLike, content: bytes) -> int:
        with open(path, 'wb') as f:
            f.write(content)
        return len(content)

    @staticmethod
    def get_file_size(file_path: PathLike) -> int:
        """Get file size in bytes"""
        return os.path.getsize(file_path) if os.path.exists(file_path) else 0

    @staticmethod
    def folder_size(folder: PathLike) -> int:
        """Total size in bytes of every file below folder"""
        total = 0
        for root, _, files in os.walk(folder):
            for name in files:
                total += FileUtils.get_file_size(os.path.join(root, name))
        return total

    @staticmethod
    def count_files(folder: PathLike, suffix: str = ".png") -> int:
        return sum(1 for path in Path(folder).rglob(f"*{suffix}") if path.is_file())

    @staticmethod
    def replace_directory(source: PathLike, destination: PathLike) -> None:
        """Move source over destination, removing any previous destination"""
        destination = Path(destination)
        if destination.exists():
            shutil.rmtree(destination)
        os.replace(source, destination)

    @staticmethod
    def remove_path(path: PathLike) -> None:
        """Delete a file or directory tree if present"""
        path = Path(path)
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
