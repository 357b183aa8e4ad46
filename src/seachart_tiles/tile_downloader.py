#!/usr/bin/env python3
"""
Sea chart tiles - Main Entry Point
Offline nautical map tiles: regional archives and custom tile sets
"""

import sys
import logging

from seachart_tiles.core.tile_download_manager import TileDownloadManager, build_parser
from seachart_tiles.exceptions.tile_downloader_exceptions import TileDownloaderException
from seachart_tiles.infrastructure.logging import LoggingManager
from seachart_tiles.services.config_service import ConfigService


def main(argv=None):
    """Main entry point for the tile application"""
    args = build_parser().parse_args(argv)
    manager = None
    try:
        config = ConfigService().load_config(args.config)
        LoggingManager.setup_logging(config.logging)
        logger = logging.getLogger(__name__)

        logger.info("Starting seachart-tiles")

        manager = TileDownloadManager(config)
        sys.exit(manager.execute(args))

    except KeyboardInterrupt:
        print("\nDownload interrupted by user.")
        sys.exit(1)
    except TileDownloaderException as e:
        print(f"\nError: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        print("Please check your configuration and try again.")
        sys.exit(1)
    finally:
        if manager is not None:
            manager.shutdown()


if __name__ == "__main__":
    main()
