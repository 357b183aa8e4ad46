import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict


class BaseAdapter(ABC):
    """Base adapter class for file-backed tile sources"""

    def __init__(self, config: Dict[str, Any]):
        self.file_path = config.get('path', '')
        self.name = config.get('name') or Path(self.file_path).stem or 'unknown'
        # Serializes access to the underlying handle
        self._lock = threading.Lock()

    @abstractmethod
    def initialize(self) -> None:
        """Open the underlying resource; raise on failure"""

    def get_name(self) -> str:
        return self.name

    def is_available(self) -> bool:
        """Check if the backing file exists"""
        return bool(self.file_path) and os.path.isfile(self.file_path)

    def get_file_size(self) -> int:
        return os.path.getsize(self.file_path) if self.is_available() else 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        pass
