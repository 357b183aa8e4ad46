import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from seachart_tiles.exceptions.tile_downloader_exceptions import StorageError, ValidationError
from seachart_tiles.models.geo import GeoBounds


logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "metadata.json"


@dataclass
class CustomTileSetManifest:
    """Summary of a finished bulk tile fetch"""
    name: str
    bounds: List[float]  # [min_lon, min_lat, max_lon, max_lat]
    min_zoom: int
    max_zoom: int
    tile_count: int
    size_bytes: int
    storage_path: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def get_bounds(self) -> GeoBounds:
        return GeoBounds.from_list(self.bounds)

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomTileSetManifest":
        manifest = cls(
            name=str(data['name']),
            bounds=[float(v) for v in data['bounds']],
            min_zoom=int(data['min_zoom']),
            max_zoom=int(data['max_zoom']),
            tile_count=int(data['tile_count']),
            size_bytes=int(data['size_bytes']),
            storage_path=str(data['storage_path']),
            created_at=str(data.get('created_at', '')),
            id=str(data.get('id') or uuid.uuid4()),
        )
        manifest.get_bounds()
        return manifest


class MetadataManager:
    """Sidecar manifests for custom tile sets under <storage_root>/regions"""

    def __init__(self, regions_dir: str):
        self.regions_dir = Path(regions_dir)
        self._lock = threading.Lock()
        self._manifests: List[CustomTileSetManifest] = []

    def manifest_path(self, folder: Path) -> Path:
        return Path(folder) / MANIFEST_FILENAME

    def save_manifest(self, manifest: CustomTileSetManifest, folder: Optional[Path] = None) -> Path:
        """Write the manifest next to its tiles"""
        target = self.manifest_path(folder or Path(manifest.storage_path))
        try:
            with open(target, 'w', encoding='utf-8') as f:
                json.dump(manifest.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise StorageError(f"Could not write manifest {target}: {e}") from e
        return target

    def read_manifest(self, folder: Path) -> Optional[CustomTileSetManifest]:
        """Parse a folder's manifest; None when missing or unparsable"""
        path = self.manifest_path(folder)
        if not path.is_file():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return CustomTileSetManifest.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.debug("Ignoring unreadable manifest %s: %s", path, e)
            return None

    def load_all(self) -> List[CustomTileSetManifest]:
        """Rebuild the in-memory list from the folders on disk"""
        manifests = []
        if self.regions_dir.is_dir():
            for folder in sorted(self.regions_dir.iterdir()):
                # Staging folders start with a dot
                if not folder.is_dir() or folder.name.startswith('.'):
                    continue
                manifest = self.read_manifest(folder)
                if manifest is not None:
                    manifests.append(manifest)

        with self._lock:
            self._manifests = manifests
        logger.info("Loaded %d custom tile set(s)", len(manifests))
        return list(manifests)

    def append(self, manifest: CustomTileSetManifest) -> None:
        with self._lock:
            self._manifests = [m for m in self._manifests if m.name != manifest.name] + [manifest]

    def remove(self, name: str) -> None:
        with self._lock:
            self._manifests = [m for m in self._manifests if m.name != name]

    def clear(self) -> None:
        with self._lock:
            self._manifests = []

    def manifests(self) -> List[CustomTileSetManifest]:
        with self._lock:
            return list(self._manifests)

    def get_metadata_summary(self) -> Dict[str, Any]:
        """Metadata summary"""
        manifests = self.manifests()
        total_size = sum(m.size_bytes for m in manifests)
        return {
            'total_tile_sets': len(manifests),
            'total_tiles': sum(m.tile_count for m in manifests),
            'total_size_bytes': total_size,
            'total_size_mb': round(total_size / (1024 * 1024), 2),
        }
