import json
import logging
import os
from dataclasses import fields
from typing import Any, Dict, Optional

from seachart_tiles.exceptions.tile_downloader_exceptions import ConfigurationError, ValidationError
from seachart_tiles.interfaces.tile_server import IConfigLoader
from seachart_tiles.models.tile_server import DownloadConfig


logger = logging.getLogger(__name__)


class ConfigService(IConfigLoader):
    """Service for loading and validating configuration"""

    def load_config(self, config_path: Optional[str]) -> DownloadConfig:
        """Load configuration from a JSON file; defaults when the file is absent"""
        if not config_path or not os.path.exists(config_path):
            if config_path:
                logger.info("Config file %s not found, using defaults", config_path)
            return DownloadConfig()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading config: {e}")

        self.validate_config(config)
        return self._process_config(config)

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration structure"""
        if not isinstance(config, dict):
            raise ValidationError("Configuration must be a JSON object")

        known = {f.name for f in fields(DownloadConfig)}
        unknown = set(config) - known
        if unknown:
            raise ValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        for key in ('max_concurrent', 'retry_attempts', 'timeout'):
            if key in config and (not isinstance(config[key], int) or config[key] < 0):
                raise ValidationError(f"{key} must be a non-negative integer")

        if config.get('max_concurrent', 1) < 1:
            raise ValidationError("max_concurrent must be at least 1")

        if 'regions' in config and not (
            isinstance(config['regions'], list)
            and all(isinstance(r, str) for r in config['regions'])
        ):
            raise ValidationError("regions must be a list of region ids")

        if 'tile_url' in config:
            url = config['tile_url']
            if not isinstance(url, str) or not all(k in url for k in ('{z}', '{x}', '{y}')):
                raise ValidationError("tile_url must contain {z}, {x} and {y} placeholders")

        if 'logging' in config and not isinstance(config['logging'], dict):
            raise ValidationError("logging must be an object")

        return True

    def _process_config(self, config: Dict[str, Any]) -> DownloadConfig:
        """Build the typed configuration"""
        result = DownloadConfig(**config)
        if result.max_concurrent > 4:
            logger.warning("max_concurrent %d capped at 4", result.max_concurrent)
            result.max_concurrent = 4
        return result
